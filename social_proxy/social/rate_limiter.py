"""
Fixed-window rate limiting for social feed traffic.

Buckets are keyed by arbitrary scope strings, e.g.::

    social-create:user:<caller>
    social-proxy:global
    social-proxy:source:<source key>

Bursts at window boundaries are accepted in exchange for O(1) state per key.
Expired buckets are swept every ``sweep_every`` checks instead of using
per-key timers.
"""

import math
import time
from dataclasses import dataclass
from typing import Callable

from social_proxy.social.schemas import RateLimitResult

DEFAULT_SWEEP_EVERY = 200


@dataclass
class _Bucket:
    count: int
    reset_at: float


class FixedWindowRateLimiter:
    """In-memory fixed-window counters.

    Not safe for use across threads; it relies on the event loop running
    checks one at a time.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sweep_every: int = DEFAULT_SWEEP_EVERY,
    ) -> None:
        self._clock = clock
        self._sweep_every = max(1, sweep_every)
        self._buckets: dict[str, _Bucket] = {}
        self._checks_since_sweep = 0

    def __len__(self) -> int:
        return len(self._buckets)

    def check(self, key: str, max_requests: int, window_seconds: float) -> RateLimitResult:
        """
        Count a request against ``key``.

        Args:
            key: Scope the request belongs to
            max_requests: Requests allowed per window
            window_seconds: Window length in seconds

        Returns:
            RateLimitResult; ``retry_after_seconds`` is at least 1 when denied
        """
        now = self._clock()
        self._checks_since_sweep += 1
        if self._checks_since_sweep >= self._sweep_every:
            self.sweep(now)
            self._checks_since_sweep = 0

        bucket = self._buckets.get(key)
        if bucket is None or bucket.reset_at <= now:
            self._buckets[key] = _Bucket(count=1, reset_at=now + window_seconds)
            return RateLimitResult(allowed=True, remaining=max(0, max_requests - 1))

        if bucket.count >= max_requests:
            retry_after = max(1, math.ceil(bucket.reset_at - now))
            return RateLimitResult(allowed=False, remaining=0, retry_after_seconds=retry_after)

        bucket.count += 1
        return RateLimitResult(allowed=True, remaining=max(0, max_requests - bucket.count))

    def sweep(self, now: float | None = None) -> int:
        """Drop expired buckets. Returns the number removed."""
        now = self._clock() if now is None else now
        expired = [key for key, bucket in self._buckets.items() if bucket.reset_at <= now]
        for key in expired:
            del self._buckets[key]
        return len(expired)

    def reset(self) -> None:
        self._buckets.clear()
        self._checks_since_sweep = 0
