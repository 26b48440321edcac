"""
Gemini provider (Google AI generateContent), one request/response cycle.
Takes a credential from the key pool per call; the generated image comes back inline.
"""
import logging
from typing import Any

import httpx

from tryon.core.errors import (
    ImageGenerationError,
    MalformedResponse,
    NetworkError,
    ProviderError,
    ProviderErrorKind,
    SafetyBlocked,
)
from tryon.core.logging import mask_key
from tryon.services.image_generation.base import (
    EncodedImage,
    GenerationRequest,
    ProviderAdapter,
    build_gemini_error_detail,
    sanitize_gemini_response_for_log,
)
from tryon.services.image_generation.cancellation import CancelToken
from tryon.services.image_generation.failure_types import (
    is_invalid_key_message,
    is_safety_finish_reason,
)
from tryon.services.image_generation.progress import ProgressReporter, Stage

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash-image-preview"
DEFAULT_MIME_TYPE = "image/png"


def _find_inline_image(parts: Any) -> tuple[str, str] | None:
    """(mime_type, base64) of the first part carrying inline image data."""
    if not isinstance(parts, list):
        return None
    for part in parts:
        if not isinstance(part, dict):
            continue
        inline = part.get("inlineData") or part.get("inline_data")
        if isinstance(inline, dict) and isinstance(inline.get("data"), str) and inline["data"]:
            mime = inline.get("mimeType") or inline.get("mime_type") or DEFAULT_MIME_TYPE
            return mime, inline["data"]
    return None


class GeminiAdapter(ProviderAdapter):
    """Try-on generation via Google AI generateContent API."""

    name = "gemini"

    def __init__(self, config: dict, key_pool, client: httpx.Client | None = None, **kwargs) -> None:
        super().__init__(config, key_pool, client, **kwargs)
        endpoint = (config.get("api_endpoint") or "https://generativelanguage.googleapis.com").rstrip("/")
        self.base_url = f"{endpoint}/v1beta/models"
        self.model_name = (config.get("model") or DEFAULT_MODEL).strip()

    def build_payload(self, request: GenerationRequest) -> dict[str, Any]:
        subject = EncodedImage.from_data_uri(request.subject_image)
        garment = EncodedImage.from_data_uri(request.garment_image)
        return {
            "contents": [
                {
                    "parts": [
                        {"text": request.prompt},
                        {"inlineData": {"mimeType": subject.mime_type, "data": subject.data}},
                        {"inlineData": {"mimeType": garment.mime_type, "data": garment.data}},
                    ],
                },
            ],
            "generationConfig": {
                "temperature": request.temperature,
            },
        }

    def submit(
        self,
        request: GenerationRequest,
        reporter: ProgressReporter,
        cancel: CancelToken | None = None,
    ) -> str:
        try:
            return self._submit(request, reporter)
        except ImageGenerationError:
            reporter.fail()
            raise

    def _submit(self, request: GenerationRequest, reporter: ProgressReporter) -> str:
        reporter.emit(Stage.STARTING, 0)
        credential = self.key_pool.acquire_next()
        api_key = credential.value

        reporter.emit(Stage.REQUESTING, 25)
        payload = self.build_payload(request)
        model = (request.model or self.model_name).strip() or self.model_name
        url = f"{self.base_url}/{model}:generateContent"

        reporter.emit(Stage.RUNNING, 50)
        try:
            with self.http_client() as client:
                resp = client.post(url, params={"key": api_key}, json=payload)
        except httpx.TransportError as e:
            logger.warning(
                "gemini_transport_error",
                extra={"provider": self.name, "key_hint": mask_key(api_key), "error": type(e).__name__},
            )
            raise NetworkError(str(e) or type(e).__name__, detail={"error": type(e).__name__}) from e

        reporter.emit(Stage.PROCESSING, 75)

        if resp.is_error:
            self._raise_for_error_response(resp, api_key)

        try:
            result = resp.json()
        except ValueError as e:
            raise MalformedResponse("Gemini response is not JSON", detail={"http_status": resp.status_code}) from e
        if not isinstance(result, dict):
            raise MalformedResponse("Gemini response is not an object")

        image = self._extract_image(result)
        self.key_pool.report_valid(api_key)
        logger.info(
            "gemini_generation_succeeded",
            extra={"provider": self.name, "key_hint": mask_key(api_key)},
        )
        reporter.emit(Stage.SUCCEEDED, 100)
        return image.to_data_uri()

    def _raise_for_error_response(self, resp: httpx.Response, api_key: str) -> None:
        try:
            err_body = resp.json()
        except ValueError:
            err_body = {}
        if not isinstance(err_body, dict):
            err_body = {}
        detail = build_gemini_error_detail(err_body)
        detail["http_status"] = resp.status_code
        error = err_body.get("error")
        message = error.get("message") if isinstance(error, dict) else None
        message = message or resp.reason_phrase or f"HTTP {resp.status_code}"

        if is_invalid_key_message(message):
            self.key_pool.report_invalid(api_key)
            raise ProviderError(message, kind=ProviderErrorKind.INVALID_KEY, detail=detail)

        logger.warning(
            "gemini_http_error",
            extra={"provider": self.name, "http_status": resp.status_code, "error": message},
        )
        raise ProviderError(message, kind=ProviderErrorKind.HTTP, detail=detail)

    def _extract_image(self, result: dict[str, Any]) -> EncodedImage:
        prompt_feedback = result.get("promptFeedback")
        if isinstance(prompt_feedback, dict) and prompt_feedback.get("blockReason"):
            raise SafetyBlocked(prompt_feedback["blockReason"], detail=build_gemini_error_detail(result))

        candidates = result.get("candidates") or []
        if not isinstance(candidates, list):
            raise MalformedResponse("Gemini candidates is not a list", detail=build_gemini_error_detail(result))
        if not candidates:
            raise SafetyBlocked("No candidates in Gemini response", detail=build_gemini_error_detail(result))

        c0 = candidates[0]
        if not isinstance(c0, dict):
            raise MalformedResponse("Gemini candidate is not an object", detail=build_gemini_error_detail(result))
        if is_safety_finish_reason(c0.get("finishReason")):
            detail = build_gemini_error_detail(result)
            raise SafetyBlocked(c0.get("finishMessage") or c0["finishReason"], detail=detail)

        content = c0.get("content")
        found = _find_inline_image(content.get("parts")) if isinstance(content, dict) else None
        if found is None:
            detail = build_gemini_error_detail(result)
            detail["response"] = sanitize_gemini_response_for_log(result)
            raise MalformedResponse("No image in Gemini response", detail=detail)
        mime_type, data = found
        return EncodedImage(mime_type=mime_type, data=data)
