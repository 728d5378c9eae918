"""Data models for location sampling and records."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from shared_types import AccuracyClass, ActivationStatus, EnrichmentStage


@dataclass(frozen=True)
class LocationFix:
    """One resolved coordinate with capture time and accuracy radius."""

    latitude: float
    longitude: float
    captured_at: datetime
    horizontal_accuracy_m: float


@dataclass(frozen=True)
class SampleRequest:
    """What the controller asks of the fix provider for one activation."""

    accuracy: AccuracyClass
    deadline: datetime


@dataclass(frozen=True)
class PoiResult:
    """A named point of interest near a coordinate."""

    name: Optional[str]
    category: Optional[str]
    latitude: float
    longitude: float
    distance_m: Optional[float] = None


@dataclass(frozen=True)
class EnrichmentResult:
    """Place name and category derived for a fix.

    ``source_stage`` records which fallback produced the values.
    """

    place_name: str
    category: str
    source_stage: EnrichmentStage


@dataclass(frozen=True)
class LocationRecord:
    """Single append-only entry in a user's location log."""

    latitude: float
    longitude: float
    recorded_at: datetime
    place_name: str
    category: str
    horizontal_accuracy_m: float
    source_stage: Optional[EnrichmentStage] = None

    @classmethod
    def from_fix(cls, fix: LocationFix, result: EnrichmentResult) -> "LocationRecord":
        return cls(
            latitude=fix.latitude,
            longitude=fix.longitude,
            recorded_at=fix.captured_at,
            place_name=result.place_name,
            category=result.category,
            horizontal_accuracy_m=fix.horizontal_accuracy_m,
            source_stage=result.source_stage,
        )


@dataclass(frozen=True)
class ScheduleConfig:
    """Tracking switch and sampling cadence."""

    tracking_enabled: bool
    frequency_minutes: int


@dataclass(frozen=True)
class NextActivation:
    """A deferred activation accepted by the host scheduler."""

    task_id: str
    earliest_begin: datetime
    frequency_minutes: int


@dataclass
class ActivationOutcome:
    """Result delivered through the completion signal."""

    activation_id: str
    status: ActivationStatus
    success: bool
    detail: str = ""
    record_id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "activation_id": self.activation_id,
            "status": str(self.status),
            "success": self.success,
            "detail": self.detail,
            "record_id": self.record_id,
        }


CompletionCallback = Callable[[ActivationOutcome], None]


@dataclass
class PendingActivation:
    """The single in-flight activation. Resolved exactly once."""

    activation_id: str
    completion: Optional[CompletionCallback]
    expiration_deadline: datetime
    started_at: datetime
    resolved: bool = False
    outcome: Optional[ActivationOutcome] = None
    # asyncio handles, set by the controller
    task: object = field(default=None, repr=False)
    timer: object = field(default=None, repr=False)
    done: object = field(default=None, repr=False)
