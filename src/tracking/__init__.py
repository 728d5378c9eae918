"""Background location sampling: schedule, gate, dedup, enrich, record.

The controller, enrichment pipeline and service depend on ``providers`` (which
itself imports ``tracking.models``), so they are imported from their modules
rather than re-exported here.
"""

from .authorization import AuthorizationGate
from .dedup import DedupFilter, should_record
from .errors import ConfigError, PermissionDeniedError, TrackingError
from .models import (
    ActivationOutcome,
    EnrichmentResult,
    LocationFix,
    LocationRecord,
    PoiResult,
    SampleRequest,
    ScheduleConfig,
)
from .scheduler import ActivationScheduler, next_aligned_boundary
from .storage import LocationStore

__all__ = [
    "ActivationScheduler",
    "next_aligned_boundary",
    "AuthorizationGate",
    "DedupFilter",
    "should_record",
    "LocationStore",
    "LocationFix",
    "LocationRecord",
    "PoiResult",
    "SampleRequest",
    "ScheduleConfig",
    "EnrichmentResult",
    "ActivationOutcome",
    "TrackingError",
    "ConfigError",
    "PermissionDeniedError",
]
