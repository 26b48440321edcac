"""
Single entry point for try-on generation.

Checks preconditions, picks the adapter for config.provider_kind, relays the
adapter's progress events to the caller, and surfaces typed failures after
exactly one terminal failed event. One structured log line per call.
"""
import logging
import time
from typing import Any, Callable

import httpx

from tryon.core.config import Settings, settings as default_settings
from tryon.core.errors import (
    ImageGenerationError,
    MissingGarmentImage,
    MissingSubjectImage,
    NoAvailableKey,
    ProviderError,
    ProviderErrorKind,
)
from tryon.schemas.generation import GenerationConfig
from tryon.services.image_generation.base import GenerationRequest
from tryon.services.image_generation.cancellation import CancelToken
from tryon.services.image_generation.factory import AdapterFactory
from tryon.services.image_generation.failure_types import classify_failure, normalize_error
from tryon.services.image_generation.progress import ProgressListener, ProgressReporter
from tryon.services.key_pool import (
    CredentialRecord,
    InMemoryKeyPoolStore,
    KeyPool,
    KeyPoolStore,
)
from tryon.utils.metrics import (
    image_generation_duration_seconds,
    image_generation_requests_total,
)

logger = logging.getLogger(__name__)

# Keys for structured logging
LOG_KEYS = (
    "provider",
    "stage",
    "progress",
    "failure_type",
    "http_status",
    "elapsed_ms",
    "error",
)


def build_request(
    config: GenerationConfig,
    subject_image: str | None,
    garment_image: str | None,
) -> GenerationRequest:
    """GenerationRequest from the configured prompt/parameters and the two images."""
    return GenerationRequest(
        subject_image=subject_image or "",
        garment_image=garment_image or "",
        prompt=config.prompt,
        temperature=config.temperature,
        aspect_ratio=config.aspect_ratio,
        model=config.model,
    )


class Dispatcher:
    """
    Routes generation calls to provider adapters.

    Gemini credentials live in a persisted KeyPool (one per dispatcher, store
    from store_factory); configured keys missing from the store are added on
    each call. Grsai uses the single configured key.
    """

    def __init__(
        self,
        store_factory: Callable[[str], KeyPoolStore] | None = None,
        settings: Settings | None = None,
        client: httpx.Client | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.settings = settings or default_settings
        self.store_factory = store_factory or (lambda name: InMemoryKeyPoolStore())
        self.client = client
        self.clock = clock
        self.sleep = sleep
        self._pools: dict[str, KeyPool] = {}

    def key_pool_for(self, config: GenerationConfig) -> KeyPool:
        provider = AdapterFactory.adapter_class(config.provider_kind).name
        if provider == "grsai":
            return KeyPool.from_values([config.grsai_api_key or ""], name="grsai")

        pool = self._pools.get(provider)
        if pool is None:
            pool = KeyPool(self.store_factory(provider), name=provider)
            self._pools[provider] = pool
        pool.seed(CredentialRecord(value=c.key, status=c.status) for c in config.api_keys)
        return pool

    def check_preconditions(self, config: GenerationConfig, request: GenerationRequest) -> KeyPool:
        """
        Raises, in this order: MissingSubjectImage, MissingGarmentImage,
        UnknownProvider, NoAvailableKey.
        """
        if not request.subject_image:
            raise MissingSubjectImage("Subject image is required")
        if not request.garment_image:
            raise MissingGarmentImage("Garment image is required")
        key_pool = self.key_pool_for(config)
        if not key_pool.has_usable():
            raise NoAvailableKey(
                f"No usable API key configured for {key_pool.name}",
                detail={"pool": key_pool.name},
            )
        return key_pool

    def generate(
        self,
        config: GenerationConfig,
        request: GenerationRequest,
        on_progress: ProgressListener | None = None,
        cancel: CancelToken | None = None,
    ) -> str:
        """
        Generate one try-on image.

        Returns:
            Image reference: data URI (gemini) or URL (grsai)

        Raises:
            ImageGenerationError subclass describing the failure
        """
        key_pool = self.check_preconditions(config, request)
        provider = key_pool.name
        adapter = AdapterFactory.create(
            provider,
            AdapterFactory.config_from_settings(provider, self.settings, model=config.model),
            key_pool,
            self.client,
            clock=self.clock,
            sleep=self.sleep,
        )
        reporter = ProgressReporter(on_progress)
        started = self.clock()
        try:
            result = adapter.submit(request, reporter, cancel)
        except (ImageGenerationError, httpx.HTTPError) as e:
            error = normalize_error(e)
            reporter.fail()
            elapsed = self.clock() - started
            image_generation_requests_total.labels(provider=provider, status=error.code.value).inc()
            image_generation_duration_seconds.labels(provider=provider).observe(elapsed)
            _log_structured(
                provider=provider,
                stage=reporter.stage.value if reporter.stage else None,
                progress=reporter.progress,
                failure_type=error.code.value,
                http_status=error.detail.get("http_status"),
                elapsed_ms=int(elapsed * 1000),
                error=str(error),
            )
            if error is e:
                raise
            raise error from e
        except Exception as e:
            reporter.fail()
            elapsed = self.clock() - started
            error = ProviderError(
                f"Unexpected error: {type(e).__name__}: {e}",
                kind=ProviderErrorKind.API,
                detail={"error": type(e).__name__},
            )
            image_generation_requests_total.labels(provider=provider, status=error.code.value).inc()
            image_generation_duration_seconds.labels(provider=provider).observe(elapsed)
            logger.exception(
                "image_generation_unexpected_error",
                extra={
                    "provider": provider,
                    "failure_type": classify_failure(e).value,
                    "elapsed_ms": int(elapsed * 1000),
                },
            )
            raise error from e

        elapsed = self.clock() - started
        image_generation_requests_total.labels(provider=provider, status="succeeded").inc()
        image_generation_duration_seconds.labels(provider=provider).observe(elapsed)
        _log_structured(
            provider=provider,
            stage=reporter.stage.value if reporter.stage else None,
            progress=reporter.progress,
            elapsed_ms=int(elapsed * 1000),
        )
        return result


def _log_structured(**kwargs: Any) -> None:
    """Emit one structured log line for observability."""
    extra = {k: v for k, v in kwargs.items() if k in LOG_KEYS and v is not None}
    logger.info("image_generation_result", extra=extra)
