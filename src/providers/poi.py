"""Nearby point-of-interest search via the OpenStreetMap Overpass API."""

from typing import Optional

import httpx
import structlog

from tracking.geo import haversine_m
from tracking.models import PoiResult

from .base import USER_AGENT, PoiSearch, PoiSearchError
from .rate_limit import TokenBucketRateLimiter
from .retry import http_retry

logger = structlog.get_logger().bind(source="overpass")

# Tag keys that make a named feature a point of interest, in category precedence order.
CATEGORY_KEYS = ("amenity", "shop", "tourism", "leisure", "office", "railway", "public_transport")


def build_overpass_query(latitude: float, longitude: float, radius_m: float, timeout_s: int = 10) -> str:
    around = f"around:{radius_m:.0f},{latitude:.7f},{longitude:.7f}"
    selectors = "".join(f'nwr["name"]["{key}"]({around});' for key in CATEGORY_KEYS)
    return f"[out:json][timeout:{timeout_s}];({selectors});out center tags;"


def _element_coordinate(element: dict) -> Optional[tuple[float, float]]:
    if "lat" in element and "lon" in element:
        return float(element["lat"]), float(element["lon"])
    center = element.get("center")
    if center and "lat" in center and "lon" in center:
        return float(center["lat"]), float(center["lon"])
    return None


def parse_overpass_elements(data: dict, latitude: float, longitude: float) -> list[PoiResult]:
    """Turn an Overpass JSON response into PoiResults sorted nearest first."""
    results = []
    seen = set()
    for element in data.get("elements", []):
        tags = element.get("tags") or {}
        name = (tags.get("name") or "").strip()
        coordinate = _element_coordinate(element)
        if not name or coordinate is None:
            continue
        key = (element.get("type"), element.get("id"))
        if key in seen:
            continue
        seen.add(key)
        category = next((tags[k] for k in CATEGORY_KEYS if tags.get(k)), None)
        results.append(
            PoiResult(
                name=name,
                category=category,
                latitude=coordinate[0],
                longitude=coordinate[1],
                distance_m=haversine_m(latitude, longitude, coordinate[0], coordinate[1]),
            )
        )
    results.sort(key=lambda poi: poi.distance_m)
    return results


class OverpassPoiSearch(PoiSearch):
    """Named amenity/shop/tourism features within a radius."""

    provider_name = "overpass"

    DEFAULT_URL = "https://overpass-api.de/api/interpreter"

    def __init__(
        self,
        base_url: str = DEFAULT_URL,
        user_agent: str = USER_AGENT,
        timeout: float = 15.0,
        rate_limiter: Optional[TokenBucketRateLimiter] = None,
        retry_policy=None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.user_agent = user_agent
        self.timeout = timeout
        self.rate_limiter = rate_limiter or TokenBucketRateLimiter(requests_per_second=1.0, burst=2)
        self.transport = transport
        self._fetch = (retry_policy or http_retry())(self._fetch_once)

    async def _fetch_once(self, query: str) -> dict:
        await self.rate_limiter.acquire()
        async with httpx.AsyncClient(
            timeout=self.timeout,
            headers={"User-Agent": self.user_agent},
            transport=self.transport,
        ) as client:
            response = await client.post(self.base_url, data={"data": query})
            response.raise_for_status()
            return response.json()

    async def search_nearby(self, latitude: float, longitude: float, radius_m: float) -> list[PoiResult]:
        if radius_m <= 0:
            raise PoiSearchError(f"radius must be positive, got {radius_m}")
        query = build_overpass_query(latitude, longitude, radius_m, timeout_s=max(1, int(self.timeout)))
        try:
            data = await self._fetch(query)
        except (httpx.HTTPError, ValueError) as e:
            raise PoiSearchError(f"Overpass search failed: {e}") from e

        results = [poi for poi in parse_overpass_elements(data, latitude, longitude) if poi.distance_m <= radius_m]
        logger.debug("poi_search_done", radius_m=radius_m, count=len(results))
        return results
