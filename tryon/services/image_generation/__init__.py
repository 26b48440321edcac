"""
Try-on image generation with multi-provider support.
"""
from tryon.core.errors import (
    FailureType,
    GenerationCancelled,
    ImageGenerationError,
    InvalidImageFormat,
    MalformedResponse,
    MissingGarmentImage,
    MissingSubjectImage,
    NetworkError,
    NoAvailableKey,
    PollTimeout,
    ProviderError,
    ProviderErrorKind,
    SafetyBlocked,
    TaskNotFound,
    UnknownProvider,
)
from .base import (
    EncodedImage,
    GenerationRequest,
    ProviderAdapter,
    build_gemini_error_detail,
    sanitize_gemini_response_for_log,
)
from .cancellation import CancelToken
from .progress import ProgressEvent, ProgressReporter, Stage
from .factory import AdapterFactory
from .dispatcher import Dispatcher, build_request
from .failure_types import classify_failure
from .verify import verify_all_keys, verify_api_key

__all__ = [
    "FailureType",
    "ImageGenerationError",
    "NoAvailableKey",
    "InvalidImageFormat",
    "MissingSubjectImage",
    "MissingGarmentImage",
    "SafetyBlocked",
    "MalformedResponse",
    "NetworkError",
    "PollTimeout",
    "TaskNotFound",
    "ProviderError",
    "ProviderErrorKind",
    "UnknownProvider",
    "GenerationCancelled",
    "EncodedImage",
    "GenerationRequest",
    "ProviderAdapter",
    "build_gemini_error_detail",
    "sanitize_gemini_response_for_log",
    "CancelToken",
    "ProgressEvent",
    "ProgressReporter",
    "Stage",
    "AdapterFactory",
    "Dispatcher",
    "build_request",
    "classify_failure",
    "verify_api_key",
    "verify_all_keys",
]
