"""
Grsai nano-banana provider: submit a draw job, then poll its result.
webHook "-1" turns off push delivery, so the result endpoint is polled at a
fixed interval until the job ends or the poll timeout passes.
"""
import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx

from tryon.core.errors import (
    GenerationCancelled,
    ImageGenerationError,
    MalformedResponse,
    NetworkError,
    PollTimeout,
    ProviderError,
    ProviderErrorKind,
    TaskNotFound,
)
from tryon.schemas.generation import AspectRatio
from tryon.services.image_generation.base import GenerationRequest, ProviderAdapter
from tryon.services.image_generation.cancellation import CancelToken
from tryon.services.image_generation.progress import ProgressReporter, Stage
from tryon.utils.metrics import grsai_poll_attempts_total

logger = logging.getLogger(__name__)

DRAW_ENDPOINT = "/v1/draw/nano-banana"
RESULT_ENDPOINT = "/v1/draw/result"
DEFAULT_MODEL = "nano-banana-fast"
NO_WEBHOOK = "-1"
CODE_OK = 0
CODE_TASK_NOT_FOUND = -22

POLL_INTERVAL = 2.0
POLL_TIMEOUT = 120.0

# Prompt placeholder for the garment; Grsai gets no garment image, so it is spelled out
GARMENT_PLACEHOLDERS = {
    "[服装]": "这件衣服",
    "[garment]": "this garment",
}


def adapt_prompt(prompt: str) -> str:
    for placeholder, replacement in GARMENT_PLACEHOLDERS.items():
        prompt = prompt.replace(placeholder, replacement)
    return prompt


@dataclass
class JobState:
    job_id: str
    stage: Stage
    progress: int
    started_at: float


class GrsaiAdapter(ProviderAdapter):
    """Grsai draw API with a bounded polling loop."""

    name = "grsai"

    def __init__(
        self,
        config: dict,
        key_pool,
        client: httpx.Client | None = None,
        **kwargs,
    ) -> None:
        super().__init__(config, key_pool, client, **kwargs)
        self.api_host = (config.get("api_host") or "https://grsai.dakka.com.cn").rstrip("/")
        self.model_name = (config.get("model") or DEFAULT_MODEL).strip()
        self.poll_interval = float(config.get("poll_interval", POLL_INTERVAL))
        self.poll_timeout = float(config.get("poll_timeout", POLL_TIMEOUT))

    def submit(
        self,
        request: GenerationRequest,
        reporter: ProgressReporter,
        cancel: CancelToken | None = None,
    ) -> str:
        try:
            reporter.emit(Stage.STARTING, 0)
            api_key = self.key_pool.acquire_next().value
            headers = {"Authorization": f"Bearer {api_key}"}
            with self.http_client() as client:
                job_id = self.start_job(client, headers, request, reporter)
                return self.poll_result(client, headers, job_id, reporter, cancel)
        except ImageGenerationError:
            reporter.fail()
            raise

    def start_job(
        self,
        client: httpx.Client,
        headers: dict[str, str],
        request: GenerationRequest,
        reporter: ProgressReporter,
    ) -> str:
        """Phase 1: create the draw task and return its id."""
        reporter.emit(Stage.REQUESTING, 5)
        aspect_ratio = request.aspect_ratio or AspectRatio.AUTO
        payload = {
            "model": (request.model or self.model_name).strip() or self.model_name,
            "prompt": adapt_prompt(request.prompt),
            "aspectRatio": aspect_ratio.value,
            "webHook": NO_WEBHOOK,
        }
        try:
            resp = client.post(f"{self.api_host}{DRAW_ENDPOINT}", headers=headers, json=payload)
        except httpx.TransportError as e:
            raise NetworkError(str(e) or type(e).__name__, detail={"error": type(e).__name__}) from e

        if resp.is_error:
            body = _json_or_empty(resp)
            raise ProviderError(
                f"Failed to start task: {body.get('msg') or resp.reason_phrase or 'Unknown error'}",
                kind=ProviderErrorKind.HTTP,
                detail={"http_status": resp.status_code},
            )

        body = _json_or_empty(resp)
        if body.get("code") != CODE_OK:
            raise ProviderError(
                f"Invalid response from start task: {body.get('msg')}",
                kind=ProviderErrorKind.API,
                detail={"code": body.get("code")},
            )
        data = body.get("data") or {}
        job_id = data.get("id") if isinstance(data, dict) else None
        if not job_id:
            raise MalformedResponse("Start task response has no task id")

        reporter.emit(Stage.PENDING, 10)
        logger.info("grsai_task_started", extra={"provider": self.name, "job_id": job_id})
        return str(job_id)

    def poll_result(
        self,
        client: httpx.Client,
        headers: dict[str, str],
        job_id: str,
        reporter: ProgressReporter,
        cancel: CancelToken | None = None,
    ) -> str:
        """Phase 2: poll until a terminal status; returns the first result URL."""
        job = JobState(job_id=job_id, stage=Stage.PENDING, progress=reporter.progress, started_at=self.clock())

        while True:
            elapsed = self.clock() - job.started_at
            if elapsed > self.poll_timeout:
                logger.warning(
                    "grsai_poll_timeout",
                    extra={"provider": self.name, "job_id": job_id, "elapsed_ms": int(elapsed * 1000)},
                )
                raise PollTimeout(
                    f"Polling timed out after {self.poll_timeout:g}s",
                    detail={"job_id": job_id, "stage": job.stage.value},
                )
            if cancel is not None and cancel.cancelled:
                raise GenerationCancelled("Generation cancelled", detail={"job_id": job_id})

            try:
                resp = client.post(f"{self.api_host}{RESULT_ENDPOINT}", headers=headers, json={"id": job_id})
            except httpx.TransportError as e:
                raise NetworkError(
                    f"Network error during polling: {e}",
                    detail={"job_id": job_id, "error": type(e).__name__},
                ) from e

            if resp.status_code >= 500:
                grsai_poll_attempts_total.labels(outcome="retry").inc()
                logger.info(
                    "grsai_poll_server_error",
                    extra={"provider": self.name, "job_id": job_id, "http_status": resp.status_code},
                )
                self._wait(cancel, job_id)
                continue
            if resp.is_error:
                body = _json_or_empty(resp)
                raise ProviderError(
                    f"Polling failed: {body.get('msg') or resp.reason_phrase or 'Unknown error'}",
                    kind=ProviderErrorKind.HTTP,
                    detail={"job_id": job_id, "http_status": resp.status_code},
                )

            body = _json_or_empty(resp)
            code = body.get("code")
            if code == CODE_TASK_NOT_FOUND:
                grsai_poll_attempts_total.labels(outcome="not_found").inc()
                raise TaskNotFound(
                    f"Task not found or expired. (Code: {code})",
                    detail={"job_id": job_id, "code": code},
                )
            if code != CODE_OK:
                grsai_poll_attempts_total.labels(outcome="retry").inc()
                logger.info(
                    "grsai_poll_api_error",
                    extra={"provider": self.name, "job_id": job_id, "code": code},
                )
                self._wait(cancel, job_id)
                continue

            data = body.get("data") or {}
            status = data.get("status") if isinstance(data, dict) else None

            if status == "succeeded":
                url = _first_result_url(data.get("results"))
                if not url:
                    raise MalformedResponse(
                        "Task succeeded but no image URL was found.",
                        detail={"job_id": job_id},
                    )
                grsai_poll_attempts_total.labels(outcome="succeeded").inc()
                job.stage = Stage.SUCCEEDED
                reporter.emit(Stage.SUCCEEDED, 100)
                return url

            if status == "failed":
                grsai_poll_attempts_total.labels(outcome="failed").inc()
                reason = data.get("failure_reason")
                error = data.get("error")
                raise ProviderError(
                    f"Image generation failed: {reason} - {error}",
                    kind=ProviderErrorKind.JOB_FAILED,
                    detail={"job_id": job_id, "failure_reason": reason, "error": error},
                )

            if status == "running":
                grsai_poll_attempts_total.labels(outcome="running").inc()
                event = reporter.emit(Stage.RUNNING, data.get("progress"))
                job.stage = Stage.RUNNING
                if event is not None and event.progress is not None:
                    job.progress = event.progress
                logger.debug(
                    "grsai_poll_status",
                    extra={"provider": self.name, "job_id": job_id, "progress": job.progress},
                )
            self._wait(cancel, job_id)

    def _wait(self, cancel: CancelToken | None, job_id: str) -> None:
        if self._sleep is not None:
            self._sleep(self.poll_interval)
            cancelled = cancel is not None and cancel.cancelled
        elif cancel is not None:
            cancelled = cancel.wait(self.poll_interval)
        else:
            time.sleep(self.poll_interval)
            cancelled = False
        if cancelled:
            raise GenerationCancelled("Generation cancelled", detail={"job_id": job_id})


def _json_or_empty(resp: httpx.Response) -> dict[str, Any]:
    try:
        body = resp.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _first_result_url(results: Any) -> str | None:
    if not isinstance(results, list) or not results:
        return None
    first = results[0]
    if isinstance(first, dict) and first.get("url"):
        return str(first["url"])
    return None
