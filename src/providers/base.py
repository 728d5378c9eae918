"""Base provider abstractions for fixes, geocoding and POI search."""

from abc import ABC, abstractmethod
from typing import Optional

from tracking.models import LocationFix, PoiResult, SampleRequest

USER_AGENT = "placelog/0.1.0 (background place log; set enrichment.user_agent)"


class ProviderError(Exception):
    """Base provider error."""


class FixUnavailableError(ProviderError):
    """No location fix could be obtained."""


class GeocodeError(ProviderError):
    """Reverse geocoding failed."""


class PoiSearchError(ProviderError):
    """Nearby point-of-interest search failed."""


class FixProvider(ABC):
    """Yields a single location fix on request."""

    provider_name: str = "base"

    @abstractmethod
    async def request_fix(self, request: SampleRequest) -> LocationFix:
        """Acquire one fix at ``request.accuracy`` before ``request.deadline``.

        Raises:
            FixUnavailableError: provider error, timeout or cancellation.
        """
        ...

    def cancel(self) -> None:
        """Stop an outstanding request and release its resources."""


class Geocoder(ABC):
    """Coordinate -> place name."""

    provider_name: str = "base"

    @abstractmethod
    async def reverse_geocode(self, latitude: float, longitude: float) -> Optional[str]:
        """Return the place name, or None when the location has no name.

        Raises:
            GeocodeError: network or provider failure.
        """
        ...


class PoiSearch(ABC):
    """Coordinate + radius -> nearby named places."""

    provider_name: str = "base"

    @abstractmethod
    async def search_nearby(self, latitude: float, longitude: float, radius_m: float) -> list[PoiResult]:
        """Return POIs within ``radius_m``, nearest first.

        Raises:
            PoiSearchError: network or provider failure. An empty list is not an error.
        """
        ...
