"""
Failure normalization for the dispatcher.
Maps whatever an adapter raised onto the typed taxonomy for logging and metrics.
"""
import httpx

from tryon.core.errors import (
    FailureType,
    ImageGenerationError,
    NetworkError,
    ProviderError,
    ProviderErrorKind,
)

# Gemini error phrasing that means the credential itself was rejected
INVALID_KEY_MARKER = "api key not valid"

# Gemini finishReason that means the output was blocked for safety
SAFETY_FINISH_REASON = "SAFETY"


def is_invalid_key_message(message: str | None) -> bool:
    return INVALID_KEY_MARKER in (message or "").lower()


def is_safety_finish_reason(finish_reason: str | None) -> bool:
    return (finish_reason or "").strip().upper() == SAFETY_FINISH_REASON


def classify_failure(exc: BaseException) -> FailureType:
    """FailureType for any exception raised during generation."""
    if isinstance(exc, ImageGenerationError):
        return exc.code
    if isinstance(exc, httpx.RequestError):
        return FailureType.NETWORK_ERROR
    return FailureType.PROVIDER_ERROR


def normalize_error(exc: ImageGenerationError | httpx.HTTPError) -> ImageGenerationError:
    """Typed errors pass through unchanged; stray httpx errors are wrapped."""
    if isinstance(exc, ImageGenerationError):
        return exc
    if isinstance(exc, httpx.HTTPStatusError):
        return ProviderError(
            str(exc),
            kind=ProviderErrorKind.HTTP,
            detail={"http_status": exc.response.status_code},
        )
    return NetworkError(str(exc) or type(exc).__name__, detail={"error": type(exc).__name__})
