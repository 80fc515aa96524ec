"""Nominatim (OpenStreetMap) adapter: free, limited to one request per second."""

from __future__ import annotations

import asyncio
import time

import httpx
import structlog

from ..config import GeocodingConfig
from ..models import Coordinates
from .base import GeocodingResult, HttpGeocodingProvider

logger = structlog.get_logger()


class NominatimProvider(HttpGeocodingProvider):
    """Nominatim search API.

    The usage policy allows at most one request per second; the adapter
    enforces it itself from the time of its last call, so any caller,
    sequential or not, stays within the limit.
    """

    def __init__(self, config: GeocodingConfig, client: httpx.AsyncClient | None = None) -> None:
        super().__init__(config, client)
        self._last_request: float | None = None
        self._slot_lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return "nominatim"

    def is_configured(self) -> bool:
        return True  # no API key needed

    def reset_rate_limit(self) -> None:
        self._last_request = None

    async def _wait_for_slot(self) -> None:
        async with self._slot_lock:
            if self._last_request is not None:
                elapsed = time.monotonic() - self._last_request
                if elapsed < self._config.min_interval_seconds:
                    await asyncio.sleep(self._config.min_interval_seconds - elapsed)
            self._last_request = time.monotonic()

    async def geocode(self, address: str) -> GeocodingResult:
        await self._wait_for_slot()
        params = {"q": address, "format": "json", "limit": "1", "addressdetails": "1"}
        headers = {"User-Agent": self._config.user_agent, "Accept": "application/json"}
        try:
            results = await self._get_json(self._config.nominatim_url, params, headers)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("nominatim_request_failed", address=address, error=str(exc))
            return GeocodingResult()

        if not isinstance(results, list) or not results:
            return GeocodingResult()

        first = results[0]
        try:
            coordinates = Coordinates(lat=float(first["lat"]), lng=float(first["lon"]))
        except (KeyError, TypeError, ValueError):
            logger.warning("nominatim_invalid_result", address=address)
            return GeocodingResult()

        try:
            confidence = float(first.get("importance") or 0.5)
        except (TypeError, ValueError):
            confidence = 0.5
        return GeocodingResult(
            coordinates=coordinates,
            formatted_address=first.get("display_name"),
            confidence=confidence,
        )
