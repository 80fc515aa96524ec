"""Google Geocoding API adapter (API key required)."""

from __future__ import annotations

import httpx
import structlog

from ..models import Coordinates
from .base import GeocodingResult, HttpGeocodingProvider

logger = structlog.get_logger()

GOOGLE_GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"

_LOCATION_TYPE_CONFIDENCE = {
    "ROOFTOP": 1.0,
    "RANGE_INTERPOLATED": 0.85,
    "GEOMETRIC_CENTER": 0.7,
    "APPROXIMATE": 0.6,
}


class GoogleProvider(HttpGeocodingProvider):
    @property
    def name(self) -> str:
        return "google"

    def _api_key(self) -> str:
        key = self._config.google_api_key
        return key.get_secret_value().strip() if key is not None else ""

    def is_configured(self) -> bool:
        return bool(self._api_key())

    async def geocode(self, address: str) -> GeocodingResult:
        self._ensure_configured()
        address = address.strip()
        if not address:
            return GeocodingResult()

        try:
            data = await self._get_json(
                GOOGLE_GEOCODE_URL,
                params={"address": address, "key": self._api_key()},
            )
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("google_geocoding_failed", address=address, error=str(exc))
            return GeocodingResult()

        if not isinstance(data, dict):
            return GeocodingResult()
        status = data.get("status")
        results = data.get("results")
        if status != "OK" or not isinstance(results, list) or not results:
            if status not in ("OK", "ZERO_RESULTS"):
                logger.warning("google_geocoding_status", address=address, status=status)
            return GeocodingResult()

        result = results[0]
        if not isinstance(result, dict):
            return GeocodingResult()
        geometry = result.get("geometry") or {}
        location = geometry.get("location") or {}
        lat, lng = location.get("lat"), location.get("lng")
        if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
            return GeocodingResult()

        formatted = result.get("formatted_address")
        return GeocodingResult(
            coordinates=Coordinates(lat=lat, lng=lng),
            formatted_address=formatted if isinstance(formatted, str) else None,
            confidence=_LOCATION_TYPE_CONFIDENCE.get(geometry.get("location_type"), 0.7),
        )
