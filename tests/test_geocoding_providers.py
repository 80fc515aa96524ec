"""Tests for the geocoding provider adapters and their registry."""

from __future__ import annotations

import time

import httpx
import pytest
import respx

from formation_tracker.config import GeocodingConfig
from formation_tracker.errors import ProviderNotConfiguredError
from formation_tracker.geocoding.google import GOOGLE_GEOCODE_URL, GoogleProvider
from formation_tracker.geocoding.mapbox import MAPBOX_GEOCODE_URL, MapboxProvider
from formation_tracker.geocoding.nominatim import NominatimProvider
from formation_tracker.geocoding.registry import ProviderRegistry, build_registry
from formation_tracker.models import Coordinates

NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"


class TestNominatimProvider:
    @pytest.mark.asyncio
    @respx.mock
    async def test_found(self, geocoding_config: GeocodingConfig):
        route = respx.get(url__startswith=NOMINATIM_URL).respond(
            200,
            json=[{"lat": "48.8925", "lon": "2.2356", "display_name": "La Défense", "importance": 0.8}],
        )
        provider = NominatimProvider(geocoding_config)
        try:
            result = await provider.geocode("1 parvis de la Défense")
        finally:
            await provider.aclose()

        assert result.coordinates == Coordinates(lat=48.8925, lng=2.2356)
        assert result.formatted_address == "La Défense"
        assert result.confidence == 0.8
        request = route.calls[0].request
        assert request.headers["user-agent"] == "FormationTracker/1.0"
        assert request.url.params["q"] == "1 parvis de la Défense"
        assert request.url.params["limit"] == "1"

    @pytest.mark.asyncio
    @respx.mock
    async def test_not_found(self, geocoding_config: GeocodingConfig):
        respx.get(url__startswith=NOMINATIM_URL).respond(200, json=[])
        provider = NominatimProvider(geocoding_config)
        assert (await provider.geocode("nowhere")).coordinates is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_http_error_is_not_found(self, geocoding_config: GeocodingConfig):
        respx.get(url__startswith=NOMINATIM_URL).respond(503)
        provider = NominatimProvider(geocoding_config)
        assert (await provider.geocode("Paris")).coordinates is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_network_error_is_not_found(self, geocoding_config: GeocodingConfig):
        respx.get(url__startswith=NOMINATIM_URL).mock(side_effect=httpx.ConnectError("down"))
        provider = NominatimProvider(geocoding_config)
        assert (await provider.geocode("Paris")).coordinates is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_rate_limit_spaces_requests(self):
        respx.get(url__startswith=NOMINATIM_URL).respond(200, json=[])
        provider = NominatimProvider(GeocodingConfig(min_interval_seconds=0.2))

        started = time.monotonic()
        await provider.geocode("a")
        await provider.geocode("b")
        assert time.monotonic() - started >= 0.19

    def test_needs_no_key(self):
        assert NominatimProvider(GeocodingConfig()).is_configured()


class TestGoogleProvider:
    @pytest.mark.asyncio
    @respx.mock
    async def test_found(self, geocoding_config: GeocodingConfig):
        route = respx.get(url__startswith=GOOGLE_GEOCODE_URL).respond(
            200,
            json={
                "status": "OK",
                "results": [
                    {
                        "formatted_address": "Lyon, France",
                        "geometry": {
                            "location": {"lat": 45.764, "lng": 4.8357},
                            "location_type": "ROOFTOP",
                        },
                    }
                ],
            },
        )
        result = await GoogleProvider(geocoding_config).geocode("Lyon")

        assert result.coordinates == Coordinates(lat=45.764, lng=4.8357)
        assert result.confidence == 1.0
        assert route.calls[0].request.url.params["key"] == "g-key"

    @pytest.mark.asyncio
    @respx.mock
    async def test_zero_results(self, geocoding_config: GeocodingConfig):
        respx.get(url__startswith=GOOGLE_GEOCODE_URL).respond(200, json={"status": "ZERO_RESULTS", "results": []})
        assert (await GoogleProvider(geocoding_config).geocode("nowhere")).coordinates is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_missing_key_raises_before_request(self):
        route = respx.get(url__startswith=GOOGLE_GEOCODE_URL).respond(200, json={})
        provider = GoogleProvider(GeocodingConfig())
        assert not provider.is_configured()
        with pytest.raises(ProviderNotConfiguredError):
            await provider.geocode("Lyon")
        assert not route.called


class TestMapboxProvider:
    @pytest.mark.asyncio
    @respx.mock
    async def test_found_swaps_lng_lat(self, geocoding_config: GeocodingConfig):
        route = respx.get(url__startswith=MAPBOX_GEOCODE_URL).respond(
            200,
            json={"features": [{"center": [2.3522, 48.8566], "place_name": "Paris", "relevance": 0.9}]},
        )
        result = await MapboxProvider(geocoding_config).geocode("Paris France")

        assert result.coordinates == Coordinates(lat=48.8566, lng=2.3522)
        assert result.confidence == 0.9
        request = route.calls[0].request
        assert "/Paris%20France.json" in str(request.url)
        assert request.url.params["access_token"] == "mb-token"

    @pytest.mark.asyncio
    @respx.mock
    async def test_no_features(self, geocoding_config: GeocodingConfig):
        respx.get(url__startswith=MAPBOX_GEOCODE_URL).respond(200, json={"features": []})
        assert (await MapboxProvider(geocoding_config).geocode("nowhere")).coordinates is None

    @pytest.mark.asyncio
    async def test_missing_key_raises(self):
        with pytest.raises(ProviderNotConfiguredError):
            await MapboxProvider(GeocodingConfig()).geocode("Paris")


class TestProviderRegistry:
    def test_build_registry_has_all_providers(self, geocoding_config: GeocodingConfig):
        registry = build_registry(geocoding_config)
        assert sorted(registry.names) == ["google", "mapbox", "nominatim"]

    def test_select_known(self, geocoding_config: GeocodingConfig):
        assert build_registry(geocoding_config).select("mapbox").name == "mapbox"

    def test_select_unknown_falls_back_to_nominatim(self, geocoding_config: GeocodingConfig):
        assert build_registry(geocoding_config).select("bing").name == "nominatim"

    def test_get_unknown_is_none(self):
        assert ProviderRegistry().get("nominatim") is None
