"""Enrichment: fix -> (place name, category) through a fallback chain."""

from typing import Optional

import structlog

from observability import metrics
from providers.base import GeocodeError, Geocoder, PoiSearch, PoiSearchError
from shared_types import EnrichmentStage

from .models import EnrichmentResult, LocationFix, PoiResult

logger = structlog.get_logger().bind(source="enrichment")

UNKNOWN_PLACE = "Unknown place"
UNKNOWN_ADDRESS = "Unknown address"
NO_CATEGORY = "No category"
IN_TRANSIT = "In transit"

# Background samples stay precise to the actual stop; interactive lookups explore.
BACKGROUND_RADIUS_M = 100.0
INTERACTIVE_RADIUS_M = 5000.0


def nearest_poi(results: list[PoiResult]) -> Optional[PoiResult]:
    """Nearest result; providers without distances keep their own order."""
    if not results:
        return None
    return min(
        enumerate(results),
        key=lambda pair: (pair[1].distance_m is None, pair[1].distance_m or 0.0, pair[0]),
    )[1]


class EnrichmentPipeline:
    """Reverse geocode, then let the nearest POI override name and category.

    ``enrich`` never raises for provider failures; each failed stage degrades
    to a sentinel so stored records always carry a name and a category.
    """

    def __init__(self, geocoder: Geocoder, poi_search: PoiSearch, radius_m: float = BACKGROUND_RADIUS_M):
        self.geocoder = geocoder
        self.poi_search = poi_search
        self.radius_m = radius_m

    async def _geocoded_name(self, fix: LocationFix) -> str:
        try:
            name = await self.geocoder.reverse_geocode(fix.latitude, fix.longitude)
        except GeocodeError as e:
            logger.warning("geocode_failed", error=str(e))
            metrics.counter("geocode_failed")
            return UNKNOWN_PLACE
        except Exception as e:
            logger.error("geocode_unexpected_error", error=str(e), error_type=type(e).__name__)
            metrics.counter("geocode_failed")
            return UNKNOWN_PLACE
        return name.strip() if name and name.strip() else UNKNOWN_ADDRESS

    @staticmethod
    def _geocode_only(place_name: str) -> EnrichmentResult:
        metrics.counter(f"enrichment_{EnrichmentStage.GEOCODE_ONLY}")
        return EnrichmentResult(place_name, NO_CATEGORY, EnrichmentStage.GEOCODE_ONLY)

    async def enrich(self, fix: LocationFix, radius_m: Optional[float] = None) -> EnrichmentResult:
        """Resolve ``fix`` to an EnrichmentResult."""
        radius = radius_m if radius_m is not None else self.radius_m
        place_name = await self._geocoded_name(fix)

        try:
            results = await self.poi_search.search_nearby(fix.latitude, fix.longitude, radius)
        except PoiSearchError as e:
            logger.warning("poi_search_failed", error=str(e))
            return self._geocode_only(place_name)
        except Exception as e:
            logger.error("poi_search_unexpected_error", error=str(e), error_type=type(e).__name__)
            return self._geocode_only(place_name)

        poi = nearest_poi(results)
        if poi is None:
            logger.debug("poi_none_nearby", radius_m=radius)
            metrics.counter(f"enrichment_{EnrichmentStage.NO_POI_FALLBACK}")
            return EnrichmentResult(place_name, IN_TRANSIT, EnrichmentStage.NO_POI_FALLBACK)

        name = poi.name.strip() if poi.name and poi.name.strip() else place_name
        category = poi.category.strip() if poi.category and poi.category.strip() else NO_CATEGORY
        logger.debug("poi_matched", name=name, category=category, distance_m=poi.distance_m)
        metrics.counter(f"enrichment_{EnrichmentStage.POI_MATCH}")
        return EnrichmentResult(name, category, EnrichmentStage.POI_MATCH)
