"""In-process read-through cache with per-key TTL.

Uses cachetools.TLRUCache so that every entry carries its own expiry.
Each process owns its cache; there is no cross-process sharing.
"""

import asyncio
import fnmatch
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, NamedTuple, TypeVar

from cachetools import TLRUCache  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)

# Sentinel object to distinguish "not in cache" from cached None values
MISSING = object()

T = TypeVar("T")


class _Entry(NamedTuple):
    value: Any
    ttl: float


def _time_to_use(key: str, entry: _Entry, now: float) -> float:
    return now + entry.ttl


class AsyncTTLCache:
    """Async-aware key-value cache where each key expires after its own TTL.

    Concurrent misses on the same key are coalesced: the first caller computes
    while the others wait on a per-key lock and then read the stored value.
    """

    def __init__(
        self,
        maxsize: int = 1024,
        default_ttl: float = 60.0,
        timer: Callable[[], float] = time.monotonic,
    ):
        self._maxsize = maxsize
        self._default_ttl = default_ttl
        self._cache: TLRUCache = TLRUCache(maxsize=maxsize, ttu=_time_to_use, timer=timer)
        self._locks: dict[str, asyncio.Lock] = {}

    # --- lock management (bounded) ---

    def _get_lock(self, key: str) -> asyncio.Lock:
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
            # Prune idle locks whose key has left the cache
            if len(self._locks) > self._maxsize * 2:
                for k in list(self._locks):
                    if k != key and k not in self._cache and not self._locks[k].locked():
                        del self._locks[k]
        return self._locks[key]

    # --- primitive operations ---

    def get(self, key: str) -> Any:
        """Return the live value or ``MISSING``."""
        entry = self._cache.get(key, MISSING)
        if entry is MISSING:
            return MISSING
        return entry.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        self._cache[key] = _Entry(value, self._default_ttl if ttl is None else ttl)

    def delete(self, key: str) -> None:
        self._cache.pop(key, None)

    def clear(self) -> None:
        self._cache.clear()
        self._locks.clear()

    # --- read-through ---

    async def get_or_compute(
        self, key: str, compute: Callable[[], Awaitable[T]], ttl: float | None = None
    ) -> T:
        """Return the cached value for *key*, computing and storing it on a miss.

        A failing ``compute`` stores nothing; the exception propagates.
        """
        # 1. Fast path: fresh cache hit
        result = self.get(key)
        if result is not MISSING:
            return result

        # 2. Slow path with lock (double-checked locking)
        async with self._get_lock(key):
            result = self.get(key)
            if result is not MISSING:
                return result

            logger.debug(f"Cache miss: {key}")
            result = await compute()
            self.set(key, result, ttl)
            return result

    def invalidate(self, pattern: str) -> int:
        """Delete every key matching a glob pattern. Returns the number removed."""
        self._cache.expire()
        matched = [k for k in list(self._cache.keys()) if fnmatch.fnmatchcase(k, pattern)]
        for k in matched:
            self._cache.pop(k, None)
        if matched:
            logger.debug(f"Invalidated {len(matched)} cache keys for '{pattern}'")
        return len(matched)

    @property
    def size(self) -> int:
        self._cache.expire()
        return len(self._cache)
