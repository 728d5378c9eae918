"""Shared test fixtures for placelog."""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from observability import metrics  # noqa: E402
from providers.base import (  # noqa: E402
    FixProvider,
    FixUnavailableError,
    Geocoder,
    PoiSearch,
)
from shared_types import AuthorizationState  # noqa: E402
from tracking.models import LocationFix, PoiResult  # noqa: E402

SAGA_LAT = 33.2411
SAGA_LON = 130.2844
BASE_TIME = datetime(2025, 4, 1, 10, 5, tzinfo=timezone.utc)


class FakeFixProvider(FixProvider):
    """Returns queued fixes; an exception in the queue is raised instead."""

    provider_name = "fake"

    def __init__(self, fixes=None, delay: float = 0.0):
        self.fixes = list(fixes or [])
        self.delay = delay
        self.requests = []
        self.cancelled = 0

    async def request_fix(self, request):
        import asyncio

        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self.fixes:
            raise FixUnavailableError("no fix queued")
        item = self.fixes.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def cancel(self):
        self.cancelled += 1


class FakeGeocoder(Geocoder):
    provider_name = "fake"

    def __init__(self, name="Honjo-machi 1", error=None):
        self.name = name
        self.error = error
        self.calls = []

    async def reverse_geocode(self, latitude, longitude):
        self.calls.append((latitude, longitude))
        if self.error:
            raise self.error
        return self.name


class FakePoiSearch(PoiSearch):
    provider_name = "fake"

    def __init__(self, results=None, error=None):
        self.results = list(results or [])
        self.error = error
        self.calls = []

    async def search_nearby(self, latitude, longitude, radius_m):
        self.calls.append((latitude, longitude, radius_m))
        if self.error:
            raise self.error
        return list(self.results)


class FakePermissions:
    """In-memory PermissionProvider."""

    def __init__(self, state=AuthorizationState.ALWAYS):
        self.state = state
        self.upgrade_requests = 0

    def current_state(self):
        return self.state

    def request_upgrade(self):
        self.upgrade_requests += 1


def _make_fix(lat=SAGA_LAT, lon=SAGA_LON, at=BASE_TIME, minutes=0, accuracy=20.0) -> LocationFix:
    return LocationFix(lat, lon, at + timedelta(minutes=minutes), accuracy)


def _saga_university_poi() -> PoiResult:
    return PoiResult("Saga University", "school", SAGA_LAT, SAGA_LON, distance_m=12.0)


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def temp_paths(tmp_path):
    """Temp db, status and log paths."""
    return {
        "db": tmp_path / "placelog.db",
        "status_file": tmp_path / "last_activation.json",
        "log_file": tmp_path / "placelog.log",
    }


@pytest.fixture
def config_model(temp_paths):
    """PlacelogConfig pointing at temp paths."""
    from cli.config_models import PlacelogConfig

    return PlacelogConfig.from_dict(
        {
            "tracking": {"frequency_minutes": 30, "activation_timeout_seconds": 5},
            "fix_provider": {"kind": "static", "static_latitude": SAGA_LAT, "static_longitude": SAGA_LON},
            "paths": {k: str(v) for k, v in temp_paths.items()},
        }
    )


@pytest.fixture
def base_time():
    """2025-04-01 10:05 UTC, five minutes past an aligned boundary."""
    return BASE_TIME


@pytest.fixture
def make_fix():
    """Factory: ``make_fix(lat, lon, at, minutes, accuracy)``, defaults at Saga University."""
    return _make_fix


@pytest.fixture
def saga_poi():
    return _saga_university_poi()


@pytest.fixture
def make_fix_provider():
    """Factory for FakeFixProvider(fixes, delay)."""
    return FakeFixProvider


@pytest.fixture
def make_geocoder():
    """Factory for FakeGeocoder(name, error)."""
    return FakeGeocoder


@pytest.fixture
def make_poi_search():
    """Factory for FakePoiSearch(results, error)."""
    return FakePoiSearch


@pytest.fixture
def make_permissions():
    """Factory for FakePermissions(state)."""
    return FakePermissions

