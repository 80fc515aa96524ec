"""Mapbox Geocoding API adapter (access token required)."""

from __future__ import annotations

from urllib.parse import quote

import httpx
import structlog

from ..models import Coordinates
from .base import GeocodingResult, HttpGeocodingProvider

logger = structlog.get_logger()

MAPBOX_GEOCODE_URL = "https://api.mapbox.com/geocoding/v5/mapbox.places"


class MapboxProvider(HttpGeocodingProvider):
    @property
    def name(self) -> str:
        return "mapbox"

    def _api_key(self) -> str:
        key = self._config.mapbox_api_key
        return key.get_secret_value().strip() if key is not None else ""

    def is_configured(self) -> bool:
        return bool(self._api_key())

    async def geocode(self, address: str) -> GeocodingResult:
        self._ensure_configured()
        address = address.strip()
        if not address:
            return GeocodingResult()

        url = f"{MAPBOX_GEOCODE_URL}/{quote(address, safe='')}.json"
        try:
            data = await self._get_json(url, params={"access_token": self._api_key(), "limit": "1"})
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("mapbox_geocoding_failed", address=address, error=str(exc))
            return GeocodingResult()

        features = data.get("features") if isinstance(data, dict) else None
        if not isinstance(features, list) or not features:
            return GeocodingResult()

        feature = features[0]
        if not isinstance(feature, dict):
            return GeocodingResult()
        center = feature.get("center")
        if (
            not isinstance(center, list)
            or len(center) < 2
            or not all(isinstance(value, (int, float)) for value in center[:2])
        ):
            return GeocodingResult()

        # Mapbox orders coordinates as [lng, lat]
        lng, lat = center[0], center[1]
        place_name = feature.get("place_name")
        relevance = feature.get("relevance")
        return GeocodingResult(
            coordinates=Coordinates(lat=lat, lng=lng),
            formatted_address=place_name if isinstance(place_name, str) else None,
            confidence=relevance if isinstance(relevance, (int, float)) else 0.5,
        )
