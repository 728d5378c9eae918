"""Reverse geocoding via OpenStreetMap Nominatim."""

from collections import OrderedDict
from typing import Optional

import httpx
import structlog

from tracking.geo import coord_key

from .base import USER_AGENT, GeocodeError, Geocoder
from .rate_limit import TokenBucketRateLimiter
from .retry import http_retry

logger = structlog.get_logger().bind(source="nominatim")


def place_name_from_nominatim(data: dict) -> Optional[str]:
    """Pick the most specific human-readable name from a jsonv2 reverse response."""
    if not data or "error" in data:
        return None
    name = (data.get("name") or "").strip()
    if name:
        return name
    address = data.get("address") or {}
    road = address.get("road") or address.get("pedestrian") or address.get("footway")
    if road:
        number = address.get("house_number")
        return f"{road} {number}" if number else road
    display = (data.get("display_name") or "").strip()
    if display:
        return display.split(",")[0].strip() or None
    return None


class NominatimGeocoder(Geocoder):
    """Nominatim ``/reverse`` client with a small in-memory coordinate cache.

    Respect the public instance's usage policy: one request per second and a
    descriptive User-Agent.
    """

    provider_name = "nominatim"

    DEFAULT_URL = "https://nominatim.openstreetmap.org/reverse"

    def __init__(
        self,
        base_url: str = DEFAULT_URL,
        accept_language: str = "en",
        user_agent: str = USER_AGENT,
        zoom: int = 18,
        timeout: float = 10.0,
        rate_limiter: Optional[TokenBucketRateLimiter] = None,
        cache_size: int = 256,
        cache_precision: int = 4,
        retry_policy=None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.accept_language = accept_language
        self.user_agent = user_agent
        self.zoom = zoom
        self.timeout = timeout
        self.rate_limiter = rate_limiter or TokenBucketRateLimiter(requests_per_second=1.0, burst=1)
        self.cache_size = cache_size
        self.cache_precision = cache_precision
        self.transport = transport
        self._cache: OrderedDict[str, Optional[str]] = OrderedDict()
        self._fetch = (retry_policy or http_retry())(self._fetch_once)

    async def _fetch_once(self, latitude: float, longitude: float) -> dict:
        await self.rate_limiter.acquire()
        params = {
            "format": "jsonv2",
            "lat": f"{latitude:.7f}",
            "lon": f"{longitude:.7f}",
            "zoom": str(self.zoom),
            "addressdetails": "1",
            "accept-language": self.accept_language,
        }
        async with httpx.AsyncClient(
            timeout=self.timeout,
            headers={"User-Agent": self.user_agent, "Accept": "application/json"},
            transport=self.transport,
        ) as client:
            response = await client.get(self.base_url, params=params)
            response.raise_for_status()
            return response.json()

    async def reverse_geocode(self, latitude: float, longitude: float) -> Optional[str]:
        key = coord_key(latitude, longitude, self.cache_precision)
        if key in self._cache:
            self._cache.move_to_end(key)
            return self._cache[key]

        try:
            data = await self._fetch(latitude, longitude)
        except (httpx.HTTPError, ValueError) as e:
            raise GeocodeError(f"Nominatim reverse failed: {e}") from e

        name = place_name_from_nominatim(data)
        self._cache[key] = name
        if len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)
        logger.debug("reverse_geocoded", name=name)
        return name
