"""
Typed failure taxonomy for image generation.
Every error carries a stable code; turning codes into user-facing text is the caller's job.
"""
from enum import Enum
from typing import Any


class FailureType(str, Enum):
    NO_AVAILABLE_KEY = "no_available_key"
    INVALID_IMAGE_FORMAT = "invalid_image_format"
    MISSING_SUBJECT_IMAGE = "missing_subject_image"
    MISSING_GARMENT_IMAGE = "missing_garment_image"
    SAFETY_BLOCKED = "safety_blocked"
    MALFORMED_RESPONSE = "malformed_response"
    NETWORK_ERROR = "network_error"
    POLL_TIMEOUT = "poll_timeout"
    TASK_NOT_FOUND = "task_not_found"
    PROVIDER_ERROR = "provider_error"
    UNKNOWN_PROVIDER = "unknown_provider"
    CANCELLED = "cancelled"


class ProviderErrorKind(str, Enum):
    INVALID_KEY = "invalid_key"
    HTTP = "http"
    API = "api"
    JOB_FAILED = "job_failed"
    UNKNOWN_PROVIDER = "unknown_provider"


class ImageGenerationError(Exception):
    """Raised when generation fails; detail holds provider fields for logging."""
    code: FailureType = FailureType.PROVIDER_ERROR

    def __init__(self, message: str = "", detail: dict[str, Any] | None = None):
        super().__init__(message or self.code.value)
        self.detail = detail or {}


class NoAvailableKey(ImageGenerationError):
    code = FailureType.NO_AVAILABLE_KEY


class InvalidImageFormat(ImageGenerationError):
    code = FailureType.INVALID_IMAGE_FORMAT


class MissingSubjectImage(ImageGenerationError):
    code = FailureType.MISSING_SUBJECT_IMAGE


class MissingGarmentImage(ImageGenerationError):
    code = FailureType.MISSING_GARMENT_IMAGE


class SafetyBlocked(ImageGenerationError):
    code = FailureType.SAFETY_BLOCKED


class MalformedResponse(ImageGenerationError):
    code = FailureType.MALFORMED_RESPONSE


class NetworkError(ImageGenerationError):
    code = FailureType.NETWORK_ERROR


class PollTimeout(ImageGenerationError):
    code = FailureType.POLL_TIMEOUT


class TaskNotFound(ImageGenerationError):
    code = FailureType.TASK_NOT_FOUND


class GenerationCancelled(ImageGenerationError):
    code = FailureType.CANCELLED


class ProviderError(ImageGenerationError):
    """Back end refused or failed the request. kind says how."""
    code = FailureType.PROVIDER_ERROR

    def __init__(
        self,
        message: str = "",
        kind: ProviderErrorKind = ProviderErrorKind.API,
        detail: dict[str, Any] | None = None,
    ):
        super().__init__(message or kind.value, detail=detail)
        self.kind = kind


class UnknownProvider(ProviderError):
    code = FailureType.UNKNOWN_PROVIDER

    def __init__(self, provider_kind: str, available: list[str] | None = None):
        super().__init__(
            f"Unknown provider: {provider_kind}",
            kind=ProviderErrorKind.UNKNOWN_PROVIDER,
            detail={"provider": provider_kind, "available": available or []},
        )
        self.provider_kind = provider_kind
