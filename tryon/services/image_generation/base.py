"""
Base classes and types for image generation adapters.
Used by the factory, the dispatcher and both adapters (gemini, grsai).
"""
import contextlib
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Iterator

import httpx

from tryon.core.errors import InvalidImageFormat
from tryon.schemas.generation import AspectRatio
from tryon.services.image_generation.cancellation import CancelToken
from tryon.services.image_generation.progress import ProgressReporter
from tryon.services.key_pool import KeyPool

_DATA_URI_RE = re.compile(r"^data:(image/[\w.+-]+);base64,(.*)$", re.DOTALL)


@dataclass(frozen=True)
class EncodedImage:
    """Image already normalized by the caller: MIME type + base64 payload."""
    mime_type: str
    data: str

    @classmethod
    def from_data_uri(cls, value: str) -> "EncodedImage":
        match = _DATA_URI_RE.match(value or "")
        if not match or not match.group(2):
            raise InvalidImageFormat(
                "Image is not a base64 data URI",
                detail={"prefix": (value or "")[:30]},
            )
        return cls(mime_type=match.group(1), data=match.group(2))

    def to_data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


@dataclass(frozen=True)
class GenerationRequest:
    """Request for one try-on generation. Images are data URIs."""
    subject_image: str
    garment_image: str
    prompt: str
    temperature: float
    aspect_ratio: AspectRatio | None = None
    model: str | None = None


def build_gemini_error_detail(result: dict[str, Any]) -> dict[str, Any]:
    """
    Extract error-related fields from a raw Gemini response for logging.
    Normalized keys: block_reason, finish_reason, finish_message, safety_ratings, error_message.
    """
    detail: dict[str, Any] = {}
    if not result:
        return detail
    error = result.get("error")
    if isinstance(error, dict) and error.get("message"):
        detail["error_message"] = error["message"]
    prompt_feedback = result.get("promptFeedback")
    if isinstance(prompt_feedback, dict) and prompt_feedback.get("blockReason"):
        detail["block_reason"] = prompt_feedback["blockReason"]
    candidates = result.get("candidates")
    if isinstance(candidates, list) and candidates and isinstance(candidates[0], dict):
        c0 = candidates[0]
        if "finishReason" in c0:
            detail["finish_reason"] = c0["finishReason"]
        if "finishMessage" in c0:
            detail["finish_message"] = c0["finishMessage"]
        if "safetyRatings" in c0:
            detail["safety_ratings"] = c0["safetyRatings"]
    return detail


def _sanitize_value(value: Any) -> Any:
    """Recursively replace base64 data with placeholder."""
    if value is None:
        return None
    if isinstance(value, dict):
        if "data" in value and ("mimeType" in value or "mime_type" in value):
            mime = value.get("mimeType") or value.get("mime_type")
            return {"mimeType": mime, "data": "[REDACTED]"}
        return {k: _sanitize_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_sanitize_value(v) for v in value]
    return value


def sanitize_gemini_response_for_log(result: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of the Gemini response safe for logging (no base64 image data)."""
    if not result:
        return {}
    out = _sanitize_value(result)
    return out if isinstance(out, dict) else {}


class ProviderAdapter(ABC):
    """
    Base class for provider adapters.

    An adapter turns a GenerationRequest into an image reference (data URI or
    URL), emitting progress on the given reporter and raising a typed
    ImageGenerationError on failure, after a single terminal failed event.
    """

    name: str = ""

    def __init__(
        self,
        config: dict,
        key_pool: KeyPool,
        client: httpx.Client | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.config = config
        self.key_pool = key_pool
        self.timeout = float(config.get("timeout", 120.0))
        self._client = client
        # Injected time source and sleeper for waits between remote calls
        self.clock = clock
        self._sleep = sleep

    @contextlib.contextmanager
    def http_client(self) -> Iterator[httpx.Client]:
        """Injected client if any (kept open), else a short-lived one."""
        if self._client is not None:
            yield self._client
            return
        with httpx.Client(timeout=self.timeout) as client:
            yield client

    def is_available(self) -> bool:
        """Check if the adapter has at least one usable credential."""
        return self.key_pool.has_usable()

    @abstractmethod
    def submit(
        self,
        request: GenerationRequest,
        reporter: ProgressReporter,
        cancel: CancelToken | None = None,
    ) -> str:
        """Run one generation. Returns an image reference or raises ImageGenerationError."""
        pass
