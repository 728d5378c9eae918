"""Location fix, reverse geocoding and POI search providers."""

from .base import (
    USER_AGENT,
    FixProvider,
    FixUnavailableError,
    GeocodeError,
    Geocoder,
    PoiSearch,
    PoiSearchError,
    ProviderError,
)
from .factory import create_fix_provider, create_geocoder, create_poi_search

__all__ = [
    "FixProvider",
    "Geocoder",
    "PoiSearch",
    "create_fix_provider",
    "create_geocoder",
    "create_poi_search",
    "ProviderError",
    "FixUnavailableError",
    "GeocodeError",
    "PoiSearchError",
    "USER_AGENT",
]
