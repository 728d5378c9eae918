"""Tracking-level errors."""


class TrackingError(Exception):
    """Base error for the tracking core."""


class ConfigError(TrackingError):
    """Configuration file could not be parsed or validated."""


class PermissionDeniedError(TrackingError):
    """Location authorization does not allow background sampling."""

    def __init__(self, state: str):
        super().__init__(f"Background sampling requires 'always' authorization (current: {state})")
        self.state = state
