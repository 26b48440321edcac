import json
from typing import Callable

import httpx
import pytest

SUBJECT_URI = "data:image/jpeg;base64,c3ViamVjdA=="
GARMENT_URI = "data:image/png;base64,Z2FybWVudA=="


class FakeClock:
    """Simulated monotonic clock; sleep() advances it instead of blocking."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class RecordingHandler:
    """MockTransport handler that records requests and delegates to a function."""

    def __init__(self, respond: Callable[[httpx.Request], httpx.Response]) -> None:
        self.respond = respond
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.respond(request)

    def bodies(self, path: str | None = None) -> list[dict]:
        return [
            json.loads(r.content)
            for r in self.requests
            if path is None or r.url.path == path
        ]


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
