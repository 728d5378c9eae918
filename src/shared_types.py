"""Shared enums and types for placelog."""

from enum import StrEnum


class AuthorizationState(StrEnum):
    UNDETERMINED = "undetermined"
    WHEN_IN_USE = "when_in_use"
    ALWAYS = "always"
    DENIED = "denied"
    RESTRICTED = "restricted"


class AccuracyClass(StrEnum):
    BEST = "best"
    HUNDRED_METERS = "hundred_meters"
    KILOMETER = "kilometer"


class ActivationState(StrEnum):
    IDLE = "idle"
    AWAITING_FIX = "awaiting_fix"
    RESOLVING = "resolving"
    COMPLETED = "completed"
    EXPIRED = "expired"


class ActivationStatus(StrEnum):
    RECORDED = "recorded"
    DUPLICATE = "duplicate"
    PERMISSION_DENIED = "permission_denied"
    FIX_UNAVAILABLE = "fix_unavailable"
    WRITE_FAILED = "write_failed"
    EXPIRED = "expired"
    BUSY = "busy"
    FAILED = "failed"


class EnrichmentStage(StrEnum):
    GEOCODE_ONLY = "geocode_only"
    POI_MATCH = "poi_match"
    NO_POI_FALLBACK = "no_poi_fallback"


class FixProviderKind(StrEnum):
    TERMUX = "termux"
    IP = "ip"
    STATIC = "static"
