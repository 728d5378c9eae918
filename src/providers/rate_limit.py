"""Token-bucket rate limiter for public geodata APIs.

Nominatim's usage policy allows at most one request per second; Overpass is
more lenient but shared. Each HTTP provider owns one bucket.
"""

import asyncio
import time


class TokenBucketRateLimiter:
    """Async token bucket: ``burst`` requests immediately, then ``requests_per_second``."""

    def __init__(self, requests_per_second: float = 1.0, burst: int = 1):
        if requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive")
        self.rate = requests_per_second
        self.max_tokens = burst
        self._tokens = float(burst)
        self._last_refill = time.monotonic()
        self._lock: asyncio.Lock | None = None
        self._lock_loop: asyncio.AbstractEventLoop | None = None

    def _refill(self) -> None:
        now = time.monotonic()
        self._tokens = min(self.max_tokens, self._tokens + (now - self._last_refill) * self.rate)
        self._last_refill = now

    def _loop_lock(self) -> asyncio.Lock:
        # Each activation runs in its own event loop; the bucket outlives them.
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    async def acquire(self) -> None:
        """Take a token, sleeping until one is available."""
        async with self._loop_lock():
            self._refill()
            while self._tokens < 1.0:
                await asyncio.sleep((1.0 - self._tokens) / self.rate)
                self._refill()
            self._tokens -= 1.0

    @property
    def available_tokens(self) -> float:
        self._refill()
        return self._tokens

    @classmethod
    def from_config(cls, section) -> "TokenBucketRateLimiter":
        """Build from a ``rate_limits.<service>`` section (RateLimitSourceConfig)."""
        return cls(requests_per_second=section.requests_per_second, burst=section.burst)
