"""Time+distance dedup filter for location fixes."""

import threading
from datetime import timedelta
from typing import Optional

import structlog

from .geo import haversine_m
from .models import LocationFix

logger = structlog.get_logger().bind(source="dedup")

DEFAULT_MIN_INTERVAL = timedelta(seconds=1800)
DEFAULT_MIN_DISTANCE_M = 500.0


def should_record(
    fix: LocationFix,
    last: Optional[LocationFix],
    min_interval: timedelta = DEFAULT_MIN_INTERVAL,
    min_distance_m: float = DEFAULT_MIN_DISTANCE_M,
) -> bool:
    """Decide whether ``fix`` is new enough to record against ``last``.

    Rejects only when it is both too soon and too close. A fix captured before
    ``last`` is stale and always rejected.
    """
    if last is None:
        return True

    elapsed = fix.captured_at - last.captured_at
    if elapsed < timedelta(0):
        return False

    distance = haversine_m(last.latitude, last.longitude, fix.latitude, fix.longitude)
    return not (elapsed < min_interval and distance < min_distance_m)


class DedupFilter:
    """Owns the last recorded fix and applies ``should_record`` against it."""

    def __init__(
        self,
        min_interval: timedelta = DEFAULT_MIN_INTERVAL,
        min_distance_m: float = DEFAULT_MIN_DISTANCE_M,
    ):
        self.min_interval = min_interval
        self.min_distance_m = min_distance_m
        self._last: Optional[LocationFix] = None
        self._lock = threading.Lock()

    @property
    def last_recorded(self) -> Optional[LocationFix]:
        return self._last

    def evaluate(self, fix: LocationFix) -> bool:
        """Accept or reject ``fix``; on acceptance it becomes the last recorded fix."""
        with self._lock:
            last = self._last
            accepted = should_record(fix, last, self.min_interval, self.min_distance_m)
            if accepted:
                self._last = fix

        if accepted:
            logger.debug("fix_accepted", first=last is None)
        else:
            logger.info(
                "fix_rejected",
                elapsed_s=(fix.captured_at - last.captured_at).total_seconds(),
                distance_m=round(haversine_m(last.latitude, last.longitude, fix.latitude, fix.longitude), 1),
            )
        return accepted

    def reset(self) -> None:
        with self._lock:
            self._last = None
