"""Provider adapter contract for geocoding."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from ..config import GeocodingConfig
from ..errors import ProviderNotConfiguredError
from ..models import Coordinates

logger = structlog.get_logger()


@dataclass
class GeocodingResult:
    """Outcome of one provider lookup; ``coordinates`` is None when not found."""

    coordinates: Coordinates | None = None
    formatted_address: str | None = None
    confidence: float | None = None


class GeocodingProvider(ABC):
    """Resolve a free-text address to coordinates.

    Implementations never raise for network, HTTP or payload problems:
    those come back as a result without coordinates.  The only exception
    is :class:`ProviderNotConfiguredError`, raised before any request when
    credentials are missing, so a misconfiguration is never cached as an
    unresolvable address.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Configuration name of the provider (``nominatim``, ``google``...)."""

    @abstractmethod
    def is_configured(self) -> bool:
        """True when the provider has every credential it needs."""

    @abstractmethod
    async def geocode(self, address: str) -> GeocodingResult:
        """Look *address* up."""

    async def aclose(self) -> None:
        """Release network resources."""


class HttpGeocodingProvider(GeocodingProvider):
    """Shared plumbing for the HTTP providers: one lazily-created client."""

    def __init__(self, config: GeocodingConfig, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._client = client
        self._owns_client = client is None

    def _ensure_configured(self) -> None:
        if not self.is_configured():
            logger.error("geocoding_provider_not_configured", provider=self.name)
            raise ProviderNotConfiguredError(f"Geocoding provider {self.name!r} has no API key")

    async def _get_json(
        self,
        url: str,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """GET *url* and decode the JSON body.

        Raises :class:`httpx.HTTPError` or :class:`ValueError`; callers
        turn both into a not-found result.
        """
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._config.timeout_seconds))
        response = await self._client.get(url, params=params, headers=headers)
        response.raise_for_status()
        return response.json()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
