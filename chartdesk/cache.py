"""
Keyed TTL cache that collapses concurrent identical fetches.

At most one upstream fetch per key is in flight at any time: the first
caller on a miss starts the fetch as a task, later callers for the same key
await that task. Waiters are shielded, so a caller that gives up never
cancels the fetch; it completes and fills the cache for everyone else.

All map mutations happen in short critical sections under a lock that is
never held across an ``await``.
"""

import asyncio
import logging
import math
import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar


log = logging.getLogger(__name__)

T = TypeVar("T")


__all__ = [
    "CATEGORY_TTLS",
    "CacheCategory",
    "CacheEntry",
    "CacheStats",
    "CoalescingCache",
    "make_key",
]


class CacheCategory(str, Enum):
    PRICE = "price"
    CHART_DATA = "chart_data"
    LEVELS = "levels"
    ANALYSIS = "analysis"


# Seconds. Fixed policy; not configurable per call.
CATEGORY_TTLS: dict[CacheCategory, float] = {
    CacheCategory.PRICE: 30.0,
    CacheCategory.CHART_DATA: 5 * 60.0,
    CacheCategory.LEVELS: 10 * 60.0,
    CacheCategory.ANALYSIS: 2 * 60.0,
}

DEFAULT_CATEGORY = CacheCategory.CHART_DATA
EVICT_FRACTION = 0.2


def ttl_for(category: CacheCategory | str | None) -> float:
    try:
        return CATEGORY_TTLS[CacheCategory(category)]
    except ValueError:
        return CATEGORY_TTLS[DEFAULT_CATEGORY]


def make_key(category: CacheCategory | str, *parts: Any) -> str:
    """Deterministic key, e.g. ``chart_data|AAPL.US|daily|2024-01-01..2024-01-31``."""
    category_name = category.value if isinstance(category, CacheCategory) else str(category)
    return "|".join([category_name, *("" if p is None else str(p) for p in parts)])


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    key: str
    data: T
    created_at: float
    expires_at: float

    def is_live(self, now: float) -> bool:
        return now < self.expires_at


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    coalesced: int = 0
    evictions: int = 0
    expired: int = 0


class CoalescingCache:
    """
    Per-category TTL cache with request coalescing.

    Args:
        max_size: Entry count that triggers cleanup on insert. Expired entries
            are purged first; if still full, the oldest-inserted 20% go.
        clock: Monotonic seconds source (injectable for tests)

    Example:
        cache = CoalescingCache(max_size=500)
        series = await cache.get_or_fetch(key, CacheCategory.CHART_DATA, fetch)
    """

    def __init__(self, max_size: int = 1000, clock: Callable[[], float] = time.monotonic):
        if max_size <= 0:
            raise ValueError("max_size must be > 0")
        self.max_size = max_size
        self._clock = clock
        self._lock = threading.Lock()
        # Insertion-ordered; re-inserting a key moves it to the end.
        self._entries: dict[str, CacheEntry[Any]] = {}
        self._pending: dict[str, asyncio.Task[Any]] = {}
        self.stats = CacheStats()

    # ------------------------------------------------------------------
    # Plain access
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[Any]:
        """Return live data for *key*, or None. Expired entries are dropped."""
        with self._lock:
            return self._get_live_locked(key)

    def set(self, key: str, data: Any, category: CacheCategory | str | None = None) -> CacheEntry[Any]:
        """Store *data* under *key* with the TTL of *category*."""
        with self._lock:
            return self._store_locked(key, data, category)

    def invalidate(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge_expired_locked()

    def clear(self) -> None:
        """Drop all entries. In-flight fetches still complete and may repopulate."""
        with self._lock:
            self._entries.clear()

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    # ------------------------------------------------------------------
    # Coalesced fetch
    # ------------------------------------------------------------------

    async def get_or_fetch(
        self,
        key: str,
        category: CacheCategory | str | None,
        fetch_fn: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Return the cached value for *key*, joining or starting a fetch on miss.

        A failed fetch is not cached; its exception is raised to every caller
        waiting on it, and the next call starts a fresh fetch.
        """
        with self._lock:
            cached = self._get_live_locked(key)
            if cached is not None:
                self.stats.hits += 1
                return cached

            task = self._pending.get(key)
            if task is not None:
                self.stats.coalesced += 1
            else:
                self.stats.misses += 1
                task = asyncio.ensure_future(self._run_fetch(key, category, fetch_fn))
                task.add_done_callback(_consume_exception)
                self._pending[key] = task

        return await asyncio.shield(task)

    async def _run_fetch(
        self,
        key: str,
        category: CacheCategory | str | None,
        fetch_fn: Callable[[], Awaitable[T]],
    ) -> T:
        try:
            data = await fetch_fn()
            with self._lock:
                self._store_locked(key, data, category)
            return data
        except Exception as exc:
            log.debug("Fetch for %s failed, not cached: %s", key, exc)
            raise
        finally:
            with self._lock:
                self._pending.pop(key, None)

    # ------------------------------------------------------------------
    # Internals (caller holds the lock)
    # ------------------------------------------------------------------

    def _get_live_locked(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_live(self._clock()):
            return entry.data
        del self._entries[key]
        self.stats.expired += 1
        return None

    def _store_locked(self, key: str, data: Any, category: CacheCategory | str | None) -> CacheEntry[Any]:
        self._entries.pop(key, None)
        if len(self._entries) >= self.max_size:
            self._cleanup_locked()

        now = self._clock()
        entry = CacheEntry(key=key, data=data, created_at=now, expires_at=now + ttl_for(category))
        self._entries[key] = entry
        return entry

    def _purge_expired_locked(self) -> int:
        now = self._clock()
        dead = [k for k, e in self._entries.items() if not e.is_live(now)]
        for k in dead:
            del self._entries[k]
        self.stats.expired += len(dead)
        return len(dead)

    def _cleanup_locked(self) -> None:
        purged = self._purge_expired_locked()
        if len(self._entries) < self.max_size:
            log.debug("Cache cleanup purged %d expired entries", purged)
            return

        count = max(1, math.ceil(len(self._entries) * EVICT_FRACTION))
        for k in list(self._entries)[:count]:
            del self._entries[k]
        self.stats.evictions += count
        log.debug("Cache full: purged %d expired, evicted %d oldest", purged, count)


def _consume_exception(task: "asyncio.Task[Any]") -> None:
    # Retrieve the exception so an abandoned failed fetch does not warn.
    if not task.cancelled():
        task.exception()
