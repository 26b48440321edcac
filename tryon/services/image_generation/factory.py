"""
Factory for creating provider adapters based on configuration.
"""
import logging

import httpx

from tryon.core.errors import UnknownProvider
from tryon.services.image_generation.base import ProviderAdapter
from tryon.services.image_generation.providers.gemini import GeminiAdapter
from tryon.services.image_generation.providers.grsai import GrsaiAdapter
from tryon.services.key_pool import KeyPool

logger = logging.getLogger(__name__)


class AdapterFactory:
    """Factory for creating provider adapters."""

    PROVIDERS: dict[str, type[ProviderAdapter]] = {
        "gemini": GeminiAdapter,
        "grsai": GrsaiAdapter,
    }

    @classmethod
    def adapter_class(cls, provider_name: str) -> type[ProviderAdapter]:
        """
        Raises:
            UnknownProvider: If provider name is not registered
        """
        adapter_class = cls.PROVIDERS.get((provider_name or "").strip().lower())
        if not adapter_class:
            raise UnknownProvider(provider_name, available=cls.get_available_providers())
        return adapter_class

    @classmethod
    def create(
        cls,
        provider_name: str,
        config: dict,
        key_pool: KeyPool,
        client: httpx.Client | None = None,
        **kwargs,
    ) -> ProviderAdapter:
        """
        Create adapter instance by name.

        Args:
            provider_name: Name of provider (gemini, grsai)
            config: Provider-specific configuration dict
            key_pool: Credentials the adapter draws from
            client: Optional shared httpx client
            **kwargs: Adapter-specific extras (clock/sleep for grsai)
        """
        adapter_class = cls.adapter_class(provider_name)
        logger.info("creating_image_adapter", extra={"provider": adapter_class.name})
        adapter = adapter_class(config, key_pool, client, **kwargs)

        if not adapter.is_available():
            logger.warning("adapter_without_usable_key", extra={"provider": adapter_class.name})

        return adapter

    @classmethod
    def config_from_settings(cls, provider_name: str, settings, model: str | None = None) -> dict:
        """Provider config dict built from application settings."""
        name = cls.adapter_class(provider_name).name
        if name == "gemini":
            return {
                "api_endpoint": settings.gemini_api_endpoint,
                "model": model or settings.gemini_image_model,
                "timeout": settings.gemini_timeout,
            }
        return {
            "api_host": settings.grsai_api_host,
            "model": model or settings.grsai_model,
            "timeout": settings.grsai_timeout,
            "poll_interval": settings.grsai_poll_interval,
            "poll_timeout": settings.grsai_poll_timeout,
        }

    @classmethod
    def get_available_providers(cls) -> list[str]:
        """Get list of all registered provider names."""
        return list(cls.PROVIDERS.keys())
