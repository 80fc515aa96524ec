"""Address geocoding: provider adapters behind a normalized-address cache."""

from .base import GeocodingProvider, GeocodingResult, HttpGeocodingProvider
from .cache import GeocacheStats, GeocodingCache, KNOWN_LOCATIONS, normalize_address
from .google import GoogleProvider
from .mapbox import MapboxProvider
from .nominatim import NominatimProvider
from .registry import ProviderRegistry, build_registry

__all__ = [
    "GeocacheStats",
    "GeocodingCache",
    "GeocodingProvider",
    "GeocodingResult",
    "GoogleProvider",
    "HttpGeocodingProvider",
    "KNOWN_LOCATIONS",
    "MapboxProvider",
    "NominatimProvider",
    "ProviderRegistry",
    "build_registry",
    "normalize_address",
]
