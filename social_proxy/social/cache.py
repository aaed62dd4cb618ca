"""
In-memory TTL caches and request coalescing for the social proxy.

Both structures are process-wide and live for the lifetime of the process.
Stale entries are never returned: they are deleted when read and swept in
bulk every ``sweep_every`` reads.
"""

import asyncio
import functools
import time
from typing import Awaitable, Callable, Generic, TypeVar

from social_proxy.social.schemas import ProxyCacheEntry

V = TypeVar("V")
T = TypeVar("T")

DEFAULT_SWEEP_EVERY = 200


class TTLCache(Generic[V]):
    """
    String-keyed cache where every entry carries its own expiry.

    Usage:
        cache: TTLCache[str] = TTLCache()
        cache.set("twitter:jack:anon", "https://bridge/...", ttl_seconds=600)
        cache.get("twitter:jack:anon")
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sweep_every: int = DEFAULT_SWEEP_EVERY,
    ) -> None:
        self._clock = clock
        self._sweep_every = max(1, sweep_every)
        self._entries: dict[str, tuple[float, V]] = {}
        self._reads_since_sweep = 0

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def clock(self) -> Callable[[], float]:
        return self._clock

    def get(self, key: str) -> V | None:
        now = self._clock()
        self._reads_since_sweep += 1
        if self._reads_since_sweep >= self._sweep_every:
            self.sweep(now)
            self._reads_since_sweep = 0

        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at <= now:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: V, ttl_seconds: float) -> None:
        self._entries[key] = (self._clock() + ttl_seconds, value)

    def sweep(self, now: float | None = None) -> int:
        """Remove all expired entries. Returns the number removed."""
        now = self._clock() if now is None else now
        expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()
        self._reads_since_sweep = 0


class ProxyResponseCache:
    """Last successful upstream body per source key."""

    def __init__(self, cache: TTLCache[ProxyCacheEntry] | None = None) -> None:
        self._cache: TTLCache[ProxyCacheEntry] = cache if cache is not None else TTLCache()

    def __len__(self) -> int:
        return len(self._cache)

    def now(self) -> float:
        return self._cache.clock()

    def get(self, source_key: str) -> ProxyCacheEntry | None:
        return self._cache.get(source_key)

    def set(
        self,
        source_key: str,
        body: bytes,
        content_type: str,
        ttl_seconds: float,
    ) -> ProxyCacheEntry:
        now = self.now()
        entry = ProxyCacheEntry(
            body=body,
            content_type=content_type,
            cached_at=now,
            expires_at=now + ttl_seconds,
        )
        self._cache.set(source_key, entry, ttl_seconds)
        return entry

    def clear(self) -> None:
        self._cache.clear()


class RequestCoalescer(Generic[T]):
    """
    Share one in-flight operation per key between concurrent callers.

    The task is registered before the first await, so callers arriving while
    it runs always attach to it. Callers are shielded from each other: a
    cancelled caller does not cancel the shared task.
    """

    def __init__(self) -> None:
        self._in_flight: dict[str, asyncio.Future[T]] = {}

    def __len__(self) -> int:
        return len(self._in_flight)

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    async def coalesce(self, key: str, producer: Callable[[], Awaitable[T]]) -> T:
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(producer())
            self._in_flight[key] = task
            task.add_done_callback(functools.partial(self._settle, key))
        return await asyncio.shield(task)

    def _settle(self, key: str, task: asyncio.Future[T]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if not task.cancelled():
            # Mark the exception retrieved even if every caller went away
            task.exception()
