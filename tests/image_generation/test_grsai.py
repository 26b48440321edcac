"""Tests for the Grsai submit + poll adapter with a simulated clock."""
import json

import httpx
import pytest

from conftest import GARMENT_URI, SUBJECT_URI, FakeClock, RecordingHandler, mock_client
from tryon.core.errors import (
    GenerationCancelled,
    MalformedResponse,
    NetworkError,
    PollTimeout,
    ProviderError,
    ProviderErrorKind,
    TaskNotFound,
)
from tryon.schemas.generation import AspectRatio
from tryon.services.image_generation import (
    CancelToken,
    GenerationRequest,
    ProgressEvent,
    ProgressReporter,
    Stage,
)
from tryon.services.image_generation.providers.grsai import (
    DRAW_ENDPOINT,
    RESULT_ENDPOINT,
    GrsaiAdapter,
    adapt_prompt,
)
from tryon.services.key_pool import KeyPool, KeyStatus

CONFIG = {"api_host": "https://grsai.test", "poll_interval": 2.0, "poll_timeout": 120.0}
SUBMIT_OK = {"code": 0, "data": {"id": "t1"}}


def _request(**kwargs) -> GenerationRequest:
    params = {
        "subject_image": SUBJECT_URI,
        "garment_image": GARMENT_URI,
        "prompt": "一个穿着[服装]的人",
        "temperature": 0.7,
    }
    params.update(kwargs)
    return GenerationRequest(**params)


def _response(item) -> httpx.Response:
    if isinstance(item, tuple):
        status, body = item
        return httpx.Response(status, json=body) if body is not None else httpx.Response(status)
    return httpx.Response(200, json=item)


class Script:
    """
    Answers the submit call, then plays poll responses in order (the last one repeats).
    Items: dict (200 JSON body), (status, body) tuple, or an exception to raise.
    """

    def __init__(self, clock: FakeClock, polls: list, submit=(200, SUBMIT_OK)) -> None:
        self.clock = clock
        self.polls = polls
        self.submit = submit
        self.poll_times: list[float] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == DRAW_ENDPOINT:
            return _response(self.submit)
        self.poll_times.append(self.clock.now)
        item = self.polls[min(len(self.poll_times), len(self.polls)) - 1]
        if isinstance(item, Exception):
            raise item
        return _response(item)


class Harness:
    def __init__(self, clock: FakeClock, script: Script, sleep=None) -> None:
        self.handler = RecordingHandler(script)
        self.pool = KeyPool.from_values(["grsai-key"], name="grsai")
        self.adapter = GrsaiAdapter(
            CONFIG, self.pool, mock_client(self.handler), clock=clock, sleep=sleep or clock.sleep,
        )
        self.reporter = ProgressReporter()

    def submit(self, request: GenerationRequest | None = None, cancel: CancelToken | None = None) -> str:
        return self.adapter.submit(request or _request(), self.reporter, cancel)


SUCCEEDED = {"code": 0, "data": {"status": "succeeded", "results": [{"url": "u"}]}}


def _running(progress):
    return {"code": 0, "data": {"status": "running", "progress": progress}}


class TestHappyPath:
    def test_running_then_succeeded(self, clock):
        script = Script(clock, [
            _running(40),
            {"code": 0, "data": {"status": "succeeded", "results": [{"url": "https://x/y.png"}]}},
        ])
        harness = Harness(clock, script)

        result = harness.submit()

        assert result == "https://x/y.png"
        assert [(e.stage, e.progress) for e in harness.reporter.events] == [
            (Stage.STARTING, 0),
            (Stage.REQUESTING, 5),
            (Stage.PENDING, 10),
            (Stage.RUNNING, 40),
            (Stage.SUCCEEDED, 100),
        ]
        assert script.poll_times == [0.0, 2.0]
        assert clock.sleeps == [2.0]

    def test_wire_format(self, clock):
        harness = Harness(clock, Script(clock, [SUCCEEDED]))

        harness.submit(_request(aspect_ratio=AspectRatio.PORTRAIT_3_4))

        submit, poll = harness.handler.requests
        assert submit.url.path == DRAW_ENDPOINT
        assert submit.headers["Authorization"] == "Bearer grsai-key"
        assert json.loads(submit.content) == {
            "model": "nano-banana-fast",
            "prompt": "一个穿着这件衣服的人",
            "aspectRatio": "3:4",
            "webHook": "-1",
        }
        assert poll.url.path == RESULT_ENDPOINT
        assert poll.headers["Authorization"] == "Bearer grsai-key"
        assert json.loads(poll.content) == {"id": "t1"}

    def test_default_aspect_ratio_is_auto(self, clock):
        harness = Harness(clock, Script(clock, [SUCCEEDED]))
        harness.submit()
        assert json.loads(harness.handler.requests[0].content)["aspectRatio"] == "auto"

    def test_lower_reported_progress_does_not_go_backwards(self, clock):
        harness = Harness(clock, Script(clock, [_running(60), _running(30), SUCCEEDED]))
        harness.submit()
        progress = [e.progress for e in harness.reporter.events if e.progress is not None]
        assert progress == [0, 5, 10, 60, 60, 100]

    def test_unknown_status_nonzero_code_and_server_error_keep_polling(self, clock):
        script = Script(clock, [
            {"code": 0, "data": {"status": "queued"}},
            {"code": -1, "msg": "busy"},
            (503, None),
            SUCCEEDED,
        ])
        assert Harness(clock, script).submit() == "u"
        assert script.poll_times == [0.0, 2.0, 4.0, 6.0]

    def test_second_job_has_its_own_progress_sequence(self, clock):
        first = Harness(clock, Script(clock, [_running(90), SUCCEEDED]))
        first.submit()
        second = Harness(clock, Script(clock, [_running(20), SUCCEEDED]))
        second.submit()
        assert [e.progress for e in second.reporter.events] == [0, 5, 10, 20, 100]


class TestSubmitFailures:
    def test_http_error(self, clock):
        script = Script(clock, [], submit=(401, {"msg": "unauthorized"}))
        with pytest.raises(ProviderError) as exc_info:
            Harness(clock, script).submit()
        assert "unauthorized" in str(exc_info.value)
        assert exc_info.value.kind == ProviderErrorKind.HTTP

    def test_nonzero_code(self, clock):
        script = Script(clock, [], submit=(200, {"code": 5, "msg": "no credits"}))
        with pytest.raises(ProviderError):
            Harness(clock, script).submit()
        assert script.poll_times == []

    def test_missing_task_id(self, clock):
        harness = Harness(clock, Script(clock, [], submit=(200, {"code": 0, "data": {}})))
        with pytest.raises(MalformedResponse):
            harness.submit()
        assert [e.stage for e in harness.reporter.events] == [Stage.STARTING, Stage.REQUESTING, Stage.FAILED]


class TestPollFailures:
    def test_task_not_found_stops_after_first_poll(self, clock):
        script = Script(clock, [{"code": -22, "msg": "task not found"}])
        with pytest.raises(TaskNotFound):
            Harness(clock, script).submit()
        assert len(script.poll_times) == 1
        assert clock.sleeps == []

    def test_running_forever_times_out_after_120s_not_before(self, clock):
        script = Script(clock, [_running(50)])
        harness = Harness(clock, script)

        with pytest.raises(PollTimeout):
            harness.submit()

        assert script.poll_times[-1] == 120.0
        assert len(script.poll_times) == 61
        assert clock.now == 122.0
        assert harness.reporter.events[-1].stage == Stage.FAILED

    def test_server_errors_retry_every_interval_until_timeout(self, clock):
        script = Script(clock, [(503, None)])

        with pytest.raises(PollTimeout):
            Harness(clock, script).submit()

        assert set(clock.sleeps) == {2.0}
        assert script.poll_times == [2.0 * i for i in range(61)]

    def test_client_error_fails_immediately(self, clock):
        script = Script(clock, [(403, {"msg": "forbidden"})])
        with pytest.raises(ProviderError) as exc_info:
            Harness(clock, script).submit()
        assert exc_info.value.detail["http_status"] == 403
        assert len(script.poll_times) == 1

    def test_job_failed_carries_reason(self, clock):
        script = Script(clock, [{
            "code": 0,
            "data": {"status": "failed", "failure_reason": "output_moderation", "error": "nsfw"},
        }])
        with pytest.raises(ProviderError) as exc_info:
            Harness(clock, script).submit()
        assert exc_info.value.kind == ProviderErrorKind.JOB_FAILED
        assert exc_info.value.detail["failure_reason"] == "output_moderation"
        assert "nsfw" in str(exc_info.value)

    def test_succeeded_without_url(self, clock):
        script = Script(clock, [{"code": 0, "data": {"status": "succeeded", "results": []}}])
        with pytest.raises(MalformedResponse):
            Harness(clock, script).submit()

    def test_network_error_is_not_retried(self, clock):
        script = Script(clock, [_running(20), httpx.ReadTimeout("timed out"), _running(90)])
        harness = Harness(clock, script)

        with pytest.raises(NetworkError):
            harness.submit()

        assert len(script.poll_times) == 2
        assert harness.reporter.events[-1] == ProgressEvent(Stage.FAILED, None)
        assert [r.status for r in harness.pool.records()] == [KeyStatus.UNKNOWN]


class TestCancellation:
    def test_cancel_during_wait(self, clock):
        cancel = CancelToken()

        def sleep(seconds):
            clock.sleep(seconds)
            if clock.now >= 6.0:
                cancel.cancel()

        script = Script(clock, [_running(10)])
        harness = Harness(clock, script, sleep=sleep)

        with pytest.raises(GenerationCancelled):
            harness.submit(cancel=cancel)

        assert len(script.poll_times) == 3
        assert [e.stage for e in harness.reporter.events].count(Stage.FAILED) == 1

    def test_cancelled_before_first_poll(self, clock):
        cancel = CancelToken()
        cancel.cancel()
        script = Script(clock, [_running(10)])
        with pytest.raises(GenerationCancelled):
            Harness(clock, script).submit(cancel=cancel)
        assert script.poll_times == []

    def test_real_wait_wakes_up_on_cancel(self):
        cancel = CancelToken()
        cancel.cancel()
        assert cancel.wait(30.0) is True


def test_adapt_prompt():
    assert adapt_prompt("穿着[服装]的人") == "穿着这件衣服的人"
    assert adapt_prompt("a person in [garment]") == "a person in this garment"
    assert adapt_prompt("no placeholder") == "no placeholder"
