"""Pydantic configuration models for placelog."""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from shared_types import AccuracyClass, FixProviderKind
from tracking.models import ScheduleConfig

VALID_FREQUENCIES = {30, 60}


class TrackingConfig(BaseModel):
    """Background sampling schedule."""

    enabled: bool = True
    frequency_minutes: int = 60
    user_id: str = "local"
    activation_timeout_seconds: float = 30.0
    accuracy: AccuracyClass = AccuracyClass.HUNDRED_METERS
    config_poll_seconds: int = 60

    @field_validator("frequency_minutes")
    @classmethod
    def validate_frequency(cls, v: int) -> int:
        if v not in VALID_FREQUENCIES:
            raise ValueError(f"Invalid frequency: {v}. Must be one of {sorted(VALID_FREQUENCIES)}")
        return v

    @field_validator("user_id")
    @classmethod
    def validate_user_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("user_id must not be empty")
        return v

    @field_validator("activation_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"activation_timeout_seconds must be positive, got {v}")
        return v

    def schedule_config(self) -> ScheduleConfig:
        return ScheduleConfig(tracking_enabled=self.enabled, frequency_minutes=self.frequency_minutes)


class DedupConfig(BaseModel):
    """Thresholds below which a new fix is considered the same visit."""

    min_interval_seconds: float = 1800.0
    min_distance_meters: float = 500.0


class EnrichmentConfig(BaseModel):
    """Geocoding and POI search settings."""

    background_radius_m: float = 100.0
    interactive_radius_m: float = 5000.0
    accept_language: str = "en"
    user_agent: Optional[str] = None  # None = built-in placelog agent
    nominatim_url: str = "https://nominatim.openstreetmap.org/reverse"
    overpass_url: str = "https://overpass-api.de/api/interpreter"
    timeout_seconds: float = 10.0

    @model_validator(mode="after")
    def validate_radii(self):
        if self.background_radius_m <= 0 or self.interactive_radius_m <= 0:
            raise ValueError("Search radii must be positive")
        return self


class FixProviderConfig(BaseModel):
    """Where location fixes come from."""

    kind: FixProviderKind = FixProviderKind.TERMUX
    termux_command: str = "termux-location"
    static_latitude: Optional[float] = None
    static_longitude: Optional[float] = None
    static_accuracy_m: float = 10.0
    ip_url: str = "http://ip-api.com/json/?fields=status,message,lat,lon"

    @model_validator(mode="after")
    def validate_static(self):
        """A static provider needs a valid coordinate."""
        if self.kind == FixProviderKind.STATIC:
            if self.static_latitude is None or self.static_longitude is None:
                raise ValueError("fix_provider.kind=static requires static_latitude and static_longitude")
            if not -90.0 <= self.static_latitude <= 90.0 or not -180.0 <= self.static_longitude <= 180.0:
                raise ValueError("static coordinate out of range")
        return self


class PathsConfig(BaseModel):
    """File paths configuration."""

    db: Path = Path("~/.placelog/placelog.db")
    status_file: Path = Path("~/.placelog/last_activation.json")
    log_file: Path = Path("~/.placelog/placelog.log")

    @model_validator(mode="after")
    def expand_paths(self):
        """Expand ~ in all paths."""
        self.db = self.db.expanduser()
        self.status_file = self.status_file.expanduser()
        self.log_file = self.log_file.expanduser()
        return self


VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    json_output: bool = Field(default=False, alias="json")

    model_config = {"populate_by_name": True}

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        v_upper = v.upper()
        if v_upper not in VALID_LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v}. Must be one of {VALID_LOG_LEVELS}")
        return v_upper


class RetryConfig(BaseModel):
    """Retry/backoff configuration."""

    max_attempts: int = 2
    min_wait: float = 0.5
    max_wait: float = 4.0


class RateLimitSourceConfig(BaseModel):
    """Per-service rate limit."""

    requests_per_second: float = 1.0
    burst: int = 1


class RateLimitsConfig(BaseModel):
    """Rate limits for public geodata APIs."""

    nominatim: RateLimitSourceConfig = Field(default_factory=RateLimitSourceConfig)
    overpass: RateLimitSourceConfig = Field(
        default_factory=lambda: RateLimitSourceConfig(requests_per_second=1.0, burst=2)
    )


class PlacelogConfig(BaseModel):
    """Main configuration model."""

    tracking: TrackingConfig = Field(default_factory=TrackingConfig)
    dedup: DedupConfig = Field(default_factory=DedupConfig)
    enrichment: EnrichmentConfig = Field(default_factory=EnrichmentConfig)
    fix_provider: FixProviderConfig = Field(default_factory=FixProviderConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    rate_limits: RateLimitsConfig = Field(default_factory=RateLimitsConfig)

    @classmethod
    def from_dict(cls, data: dict) -> "PlacelogConfig":
        """Create config from dict, accepting string paths from YAML."""
        if "paths" in data and isinstance(data["paths"], dict):
            for key in ["db", "status_file", "log_file"]:
                if key in data["paths"] and isinstance(data["paths"][key], str):
                    data["paths"][key] = Path(data["paths"][key])
        return cls.model_validate(data)

    def to_dict(self) -> dict:
        """Plain YAML-safe dict (paths and enums as strings)."""
        return self.model_dump(mode="json", by_alias=True)
