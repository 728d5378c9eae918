"""Observability: in-process activation metrics and the daemon's run summary."""

import threading
import time
from collections import Counter, defaultdict
from contextlib import contextmanager
from typing import Any

import structlog

from shared_types import ActivationStatus

logger = structlog.get_logger().bind(source="observability")

ACTIVATION_PREFIX = "activation_"


class Metrics:
    """Counters and duration samples.

    Written from the scheduler thread, read by ``stop()`` on the main thread.
    """

    def __init__(self):
        self._counters: Counter[str] = Counter()
        self._durations: defaultdict[str, list[float]] = defaultdict(list)
        self._lock = threading.Lock()

    def counter(self, name: str, value: int = 1):
        with self._lock:
            self._counters[name] += value

    def observe(self, name: str, seconds: float):
        with self._lock:
            self._durations[name].append(seconds)

    @contextmanager
    def timer(self, name: str):
        """Time the wrapped block; the sample is kept even if it raises."""
        start = time.monotonic()
        try:
            yield
        finally:
            self.observe(name, time.monotonic() - start)

    def get(self, name: str) -> int:
        with self._lock:
            return self._counters[name]

    def activation_counts(self) -> dict[str, int]:
        """Finished activations per ActivationStatus value (zeros omitted)."""
        with self._lock:
            return {
                status.value: self._counters[ACTIVATION_PREFIX + status.value]
                for status in ActivationStatus
                if self._counters[ACTIVATION_PREFIX + status.value]
            }

    def summary(self) -> dict[str, Any]:
        with self._lock:
            timers = {
                name: {
                    "count": len(samples),
                    "avg": sum(samples) / len(samples),
                    "max": max(samples),
                }
                for name, samples in self._durations.items()
                if samples
            }
            return {"counters": dict(self._counters), "timers": timers}

    def reset(self):
        with self._lock:
            self._counters.clear()
            self._durations.clear()


# Module-level singleton
metrics = Metrics()


def log_run_summary():
    """Log metrics plus the share of activations that ended with a stored record."""
    counts = metrics.activation_counts()
    total = sum(counts.values())
    recorded = counts.get(ActivationStatus.RECORDED.value, 0)
    logger.info(
        "run_summary",
        activations=counts,
        recorded_ratio=round(recorded / total, 3) if total else None,
        **metrics.summary(),
    )
