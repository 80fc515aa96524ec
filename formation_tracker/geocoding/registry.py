"""Provider registry: maps configuration names to adapter instances."""

from __future__ import annotations

import structlog

from ..config import GeocodingConfig
from .base import GeocodingProvider
from .google import GoogleProvider
from .mapbox import MapboxProvider
from .nominatim import NominatimProvider

logger = structlog.get_logger()

DEFAULT_PROVIDER = "nominatim"


class ProviderRegistry:
    """Registry of geocoding providers, keyed by provider name."""

    def __init__(self) -> None:
        self._providers: dict[str, GeocodingProvider] = {}

    def register(self, provider: GeocodingProvider) -> None:
        """Register a provider under its name."""
        self._providers[provider.name] = provider
        logger.debug("geocoding_provider_registered", provider=provider.name)

    def get(self, name: str) -> GeocodingProvider | None:
        """Look up a provider by name. Returns None if unknown."""
        return self._providers.get(name)

    def select(self, name: str) -> GeocodingProvider:
        """The provider called *name*, or the default one if it is unknown."""
        provider = self.get(name)
        if provider is None:
            logger.warning("geocoding_provider_unknown", provider=name, fallback=DEFAULT_PROVIDER)
            provider = self._providers[DEFAULT_PROVIDER]
        return provider

    @property
    def names(self) -> list[str]:
        return list(self._providers.keys())

    async def aclose(self) -> None:
        for provider in self._providers.values():
            await provider.aclose()


def build_registry(config: GeocodingConfig) -> ProviderRegistry:
    """Registry holding the three built-in providers."""
    registry = ProviderRegistry()
    registry.register(NominatimProvider(config))
    registry.register(GoogleProvider(config))
    registry.register(MapboxProvider(config))
    return registry
