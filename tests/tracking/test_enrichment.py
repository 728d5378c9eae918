"""Tests for the enrichment fallback chain."""

import pytest

from observability import metrics
from providers.base import GeocodeError, PoiSearchError
from shared_types import EnrichmentStage
from tracking.enrichment import (
    BACKGROUND_RADIUS_M,
    IN_TRANSIT,
    NO_CATEGORY,
    UNKNOWN_ADDRESS,
    UNKNOWN_PLACE,
    EnrichmentPipeline,
    nearest_poi,
)
from tracking.models import PoiResult


class TestEnrichmentPipeline:
    """Every stage failure degrades to a sentinel; nothing raises."""

    @pytest.mark.asyncio
    async def test_poi_match_overrides_geocode(self, make_fix, make_geocoder, make_poi_search, saga_poi):
        pipeline = EnrichmentPipeline(make_geocoder("Honjo-machi 1"), make_poi_search([saga_poi]))

        result = await pipeline.enrich(make_fix())

        assert result.place_name == "Saga University"
        assert result.category == "school"
        assert result.source_stage == EnrichmentStage.POI_MATCH
        assert metrics.get("enrichment_poi_match") == 1

    @pytest.mark.asyncio
    async def test_geocode_failure_then_poi_failure(self, make_fix, make_geocoder, make_poi_search):
        pipeline = EnrichmentPipeline(
            make_geocoder(error=GeocodeError("offline")),
            make_poi_search(error=PoiSearchError("offline")),
        )

        result = await pipeline.enrich(make_fix())

        assert result.place_name == UNKNOWN_PLACE
        assert result.category == NO_CATEGORY
        assert result.source_stage == EnrichmentStage.GEOCODE_ONLY

    @pytest.mark.asyncio
    async def test_geocode_without_name(self, make_fix, make_geocoder, make_poi_search):
        pipeline = EnrichmentPipeline(make_geocoder(name=None), make_poi_search(error=PoiSearchError("x")))

        result = await pipeline.enrich(make_fix())

        assert result.place_name == UNKNOWN_ADDRESS

    @pytest.mark.asyncio
    async def test_blank_geocode_name(self, make_fix, make_geocoder, make_poi_search):
        pipeline = EnrichmentPipeline(make_geocoder(name="   "), make_poi_search([]))

        result = await pipeline.enrich(make_fix())

        assert result.place_name == UNKNOWN_ADDRESS

    @pytest.mark.asyncio
    async def test_no_poi_nearby_is_in_transit(self, make_fix, make_geocoder, make_poi_search):
        pipeline = EnrichmentPipeline(make_geocoder("Route 207"), make_poi_search([]))

        result = await pipeline.enrich(make_fix())

        assert result.place_name == "Route 207"
        assert result.category == IN_TRANSIT
        assert result.source_stage == EnrichmentStage.NO_POI_FALLBACK

    @pytest.mark.asyncio
    async def test_poi_without_name_keeps_geocoded_name(self, make_fix, make_geocoder, make_poi_search):
        poi = PoiResult(name=None, category="cafe", latitude=0.0, longitude=0.0, distance_m=5.0)
        pipeline = EnrichmentPipeline(make_geocoder("Station Square"), make_poi_search([poi]))

        result = await pipeline.enrich(make_fix())

        assert result.place_name == "Station Square"
        assert result.category == "cafe"

    @pytest.mark.asyncio
    async def test_poi_without_category(self, make_fix, make_geocoder, make_poi_search):
        poi = PoiResult(name="Somewhere", category="", latitude=0.0, longitude=0.0, distance_m=5.0)
        pipeline = EnrichmentPipeline(make_geocoder(), make_poi_search([poi]))

        result = await pipeline.enrich(make_fix())

        assert result.place_name == "Somewhere"
        assert result.category == NO_CATEGORY

    @pytest.mark.asyncio
    async def test_unexpected_provider_errors_degrade(self, make_fix, make_geocoder, make_poi_search):
        pipeline = EnrichmentPipeline(
            make_geocoder(error=RuntimeError("boom")),
            make_poi_search(error=KeyError("elements")),
        )

        result = await pipeline.enrich(make_fix())

        assert result.place_name == UNKNOWN_PLACE
        assert result.category == NO_CATEGORY

    @pytest.mark.asyncio
    async def test_radius(self, make_fix, make_geocoder, make_poi_search):
        poi_search = make_poi_search([])
        pipeline = EnrichmentPipeline(make_geocoder(), poi_search)

        await pipeline.enrich(make_fix())
        await pipeline.enrich(make_fix(), radius_m=5000.0)

        assert poi_search.calls[0][2] == BACKGROUND_RADIUS_M
        assert poi_search.calls[1][2] == 5000.0

    @pytest.mark.asyncio
    async def test_never_empty(self, make_fix, make_geocoder, make_poi_search, saga_poi):
        """Name and category are non-empty for every combination of stage outcomes."""
        geocoders = [make_geocoder("A"), make_geocoder(None), make_geocoder(error=GeocodeError("x"))]
        searches = [
            make_poi_search([saga_poi]),
            make_poi_search([]),
            make_poi_search(error=PoiSearchError("x")),
        ]
        for geocoder in geocoders:
            for search in searches:
                result = await EnrichmentPipeline(geocoder, search).enrich(make_fix())
                assert result.place_name
                assert result.category


class TestNearestPoi:
    def test_empty(self):
        assert nearest_poi([]) is None

    def test_by_distance(self):
        far = PoiResult("Far", "shop", 0.0, 0.0, distance_m=80.0)
        near = PoiResult("Near", "cafe", 0.0, 0.0, distance_m=20.0)
        assert nearest_poi([far, near]) is near

    def test_missing_distances_keep_order(self):
        first = PoiResult("First", "shop", 0.0, 0.0)
        second = PoiResult("Second", "shop", 0.0, 0.0)
        assert nearest_poi([first, second]) is first
