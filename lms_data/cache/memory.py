"""In-memory TTL cache with LRU eviction, metrics and a background sweep."""

import asyncio
import contextlib
import logging
import re
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

from lms_data.models.cache import CacheEntry, CacheStats

logger = logging.getLogger(__name__)


class CacheMetrics:
    """Tracks cache hit/miss statistics."""

    def __init__(self) -> None:
        self.hits = 0
        self.misses = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total


def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a glob where ``*`` matches anything and the rest is literal."""
    return re.compile(".*".join(re.escape(part) for part in pattern.split("*")))


class MemoryCache:
    """TTL-based cache with LRU eviction.

    The store is kept in access order, so the first entry is always the
    least recently used one. None of the methods await, so each of them
    runs to completion without interleaving with other tasks.

    Args:
        max_size: Maximum number of entries before eviction.
        default_ttl: Seconds an entry lives when ``set`` gets no TTL.
        sweep_interval: Seconds between background purges of expired entries.
        clock: Monotonic time source.
    """

    def __init__(
        self,
        max_size: int = 1000,
        default_ttl: float = 300.0,
        sweep_interval: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_size = max_size
        self.default_ttl = default_ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._store: OrderedDict[str, CacheEntry[Any]] = OrderedDict()
        self._sweeper: asyncio.Task[None] | None = None
        self._destroyed = False
        self.metrics = CacheMetrics()

        self._ensure_sweeper()
        logger.info("Memory cache initialized (max_size=%d, default_ttl=%.0fs)", max_size, default_ttl)

    # ------------------------------------------------------------------ #
    # Cache contract
    # ------------------------------------------------------------------ #

    async def get(self, key: str) -> Any | None:
        """Return the value for *key*, or None if absent or expired."""
        self._ensure_sweeper()
        entry = self._store.get(key)
        if entry is None:
            self.metrics.misses += 1
            return None

        now = self._clock()
        if entry.is_expired(now):
            del self._store[key]
            self.metrics.misses += 1
            logger.debug("Cache expired: %s", key)
            return None

        entry.touch(now)
        self._store.move_to_end(key)
        self.metrics.hits += 1
        return entry.value

    async def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store a value, evicting the least recently used entry if at capacity."""
        self._ensure_sweeper()
        now = self._clock()
        if key not in self._store and len(self._store) >= self.max_size:
            evicted, _ = self._store.popitem(last=False)
            logger.debug("Evicted LRU entry: %s", evicted)

        self._store[key] = CacheEntry(
            value=value,
            expires_at=now + (ttl if ttl is not None else self.default_ttl),
            created_at=now,
            last_accessed=now,
        )
        self._store.move_to_end(key)

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)

    async def clear(self) -> None:
        size = len(self._store)
        self._store.clear()
        logger.info("Cache cleared (%d entries)", size)

    async def has(self, key: str) -> bool:
        """Check presence without refreshing recency."""
        entry = self._store.get(key)
        if entry is None:
            return False
        if entry.is_expired(self._clock()):
            del self._store[key]
            return False
        return True

    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key fully matching the glob *pattern*; return the count."""
        regex = compile_pattern(pattern)
        doomed = [key for key in self._store if regex.fullmatch(key)]
        for key in doomed:
            del self._store[key]
        logger.debug("Cache pattern deletion %s removed %d", pattern, len(doomed))
        return len(doomed)

    # ------------------------------------------------------------------ #
    # Sweep & lifecycle
    # ------------------------------------------------------------------ #

    def purge_expired(self) -> int:
        """Remove all expired entries now. Returns how many were removed."""
        now = self._clock()
        expired = [key for key, entry in self._store.items() if entry.is_expired(now)]
        for key in expired:
            del self._store[key]
        if expired:
            logger.debug("Cleaned up %d expired cache entries", len(expired))
        return len(expired)

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            self.purge_expired()

    def _ensure_sweeper(self) -> None:
        """Start the sweep task once an event loop is running."""
        if self._destroyed or (self._sweeper is not None and not self._sweeper.done()):
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._sweeper = loop.create_task(self._sweep_forever(), name="memory-cache-sweep")

    @property
    def sweeping(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    def destroy(self) -> None:
        """Cancel the sweep and drop every entry."""
        self._destroyed = True
        if self._sweeper is not None:
            self._sweeper.cancel()
            self._sweeper = None
        self._store.clear()
        logger.info("Memory cache destroyed")

    async def aclose(self) -> None:
        """Destroy and wait for the sweep task to finish cancelling."""
        sweeper = self._sweeper
        self.destroy()
        if sweeper is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    @property
    def size(self) -> int:
        """Current number of entries."""
        return len(self._store)

    def entry(self, key: str) -> CacheEntry[Any] | None:
        """Return the raw entry for *key* without touching it."""
        return self._store.get(key)

    def stats(self) -> CacheStats:
        return CacheStats(
            size=len(self._store),
            max_size=self.max_size,
            hits=self.metrics.hits,
            misses=self.metrics.misses,
            hit_rate=self.metrics.hit_rate,
            entries=[
                {
                    "key": key,
                    "access_count": entry.access_count,
                    "created_at": entry.created_at,
                    "last_accessed": entry.last_accessed,
                    "expires_at": entry.expires_at,
                }
                for key, entry in self._store.items()
            ],
        )
