"""
Reference Cache
Generic TTL cache around an async "fetch a list" function, with optional persistence.

Used for reference lists that are small enough to hold in memory and change
rarely (works catalog, units, suppliers). The cache keeps the unfiltered list
(`all_data`) next to the current filtered view (`data`).
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from ..errors import QuotaExceeded
from .filters import active_predicates, apply_filters
from .persistence import PersistentSlotStore

logger = logging.getLogger(__name__)

DEFAULT_TTL_MS = 5 * 60 * 1000  # 5 minutes

FetchFunction = Callable[[], Awaitable[Any]]


class CacheState(str, Enum):
    """Lifecycle of a reference cache."""

    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    FILTERED = "filtered"


@dataclass
class CacheEntry:
    """Last successful fetch."""

    data: List[Any]
    fetched_at_millis: float
    ttl_millis: int

    def age_ms(self, now_ms: float) -> float:
        return now_ms - self.fetched_at_millis

    def is_fresh(self, now_ms: float) -> bool:
        return self.age_ms(now_ms) < self.ttl_millis


class CacheStatistics:
    """Track cache effectiveness."""

    def __init__(self):
        self.hits = 0
        self.misses = 0
        self.fetches = 0
        self.errors = 0
        self.coalesced = 0
        self.persist_writes = 0
        self.persist_failures = 0
        self.restored = False

    def get_hit_rate(self) -> float:
        total = self.hits + self.misses
        return (self.hits / total * 100) if total > 0 else 0.0

    def get_stats(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "fetches": self.fetches,
            "errors": self.errors,
            "coalesced": self.coalesced,
            "persist_writes": self.persist_writes,
            "persist_failures": self.persist_failures,
            "restored_from_persistence": self.restored,
            "hit_rate_percent": self.get_hit_rate(),
        }


def _now_ms() -> float:
    return time.time() * 1000


def _extract_items(response: Any) -> List[Any]:
    """Accept either a bare list or a `{data: [...]}` envelope."""
    if response is None:
        return []
    if isinstance(response, Mapping):
        return list(response.get("data") or [])
    return list(response)


class ReferenceCache:
    """
    TTL-gated, single-flight cache of one reference list.

    Failures never raise out of load(); they are reported through `error`
    and the last good data stays in place.
    """

    def __init__(
        self,
        fetch_function: FetchFunction,
        ttl_ms: int = DEFAULT_TTL_MS,
        cache_key: str = "reference-cache",
        persistence: Optional[PersistentSlotStore] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize the cache and restore a persisted copy if it is still fresh.

        Args:
            fetch_function: Async callable returning a list or `{data: [...]}`
            ttl_ms: Time-to-live of a successful fetch
            cache_key: Key of the persisted slot
            persistence: Slot store (None disables persistence)
            clock: Millisecond clock (for tests)
        """
        self.fetch_function = fetch_function
        self.ttl_ms = ttl_ms
        self.cache_key = cache_key
        self.persistence = persistence
        self.clock = clock or _now_ms

        self.all_data: List[Any] = []
        self.data: List[Any] = []
        self.loading = False
        self.error: Optional[str] = None
        self.state = CacheState.UNINITIALIZED
        self.active_filters: Dict[str, Any] = {}

        self.stats = CacheStatistics()
        self._entry: Optional[CacheEntry] = None
        self._inflight: Optional[asyncio.Task] = None

        self._restore()

    @property
    def persistence_enabled(self) -> bool:
        return self.persistence is not None

    # ========== Persistence ==========

    def _restore(self) -> None:
        if self.persistence is None:
            return

        raw = self.persistence.get(self.cache_key)
        if raw is None:
            return

        try:
            payload = json.loads(raw)
            data = payload["data"]
            timestamp = float(payload["timestamp"])
            if not isinstance(data, list):
                raise ValueError("persisted data is not a list")
        except (ValueError, TypeError, KeyError) as e:
            logger.warning(f"Discarding corrupt cache entry '{self.cache_key}': {e}")
            self.persistence.delete(self.cache_key)
            return

        entry = CacheEntry(data=data, fetched_at_millis=timestamp, ttl_millis=self.ttl_ms)
        if not entry.is_fresh(self.clock()):
            logger.info(f"Persisted cache entry '{self.cache_key}' expired, removing")
            self.persistence.delete(self.cache_key)
            return

        self._set_entry(entry)
        self.stats.restored = True
        logger.info(f"Restored {len(data)} items for '{self.cache_key}' from persistence")

    def _persist(self, entry: CacheEntry) -> None:
        if self.persistence is None:
            return

        try:
            raw = json.dumps({"data": entry.data, "timestamp": entry.fetched_at_millis}, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            self.stats.persist_failures += 1
            logger.error(f"Cache entry '{self.cache_key}' is not serializable: {e}")
            return

        try:
            if self.persistence.set(self.cache_key, raw):
                self.stats.persist_writes += 1
            else:
                self.stats.persist_failures += 1
        except QuotaExceeded as e:
            self.stats.persist_failures += 1
            logger.warning(f"{e.message}; disabling persistence for this cache")
            self.persistence.delete(self.cache_key)
            self.persistence = None

    # ========== Loading ==========

    def _set_entry(self, entry: CacheEntry) -> None:
        self._entry = entry
        self.all_data = entry.data
        self._refresh_view()

    def _refresh_view(self) -> None:
        if self.active_filters:
            self.data = apply_filters(self.all_data, self.active_filters)
            self.state = CacheState.FILTERED
        else:
            self.data = list(self.all_data)
            self.state = CacheState.READY

    @property
    def is_cached(self) -> bool:
        """True while the last successful fetch is within the TTL."""
        return self._entry is not None and self._entry.is_fresh(self.clock())

    @property
    def cache_age_ms(self) -> Optional[float]:
        if self._entry is None:
            return None
        return self._entry.age_ms(self.clock())

    async def load(self, force: bool = False) -> List[Any]:
        """
        Load the list, honouring the TTL unless forced.

        Concurrent callers share one in-flight fetch.

        Args:
            force: Fetch even if the cached copy is fresh

        Returns:
            The current (possibly filtered) view
        """
        if not force and self.is_cached:
            self.stats.hits += 1
            return self.data

        if self._inflight is not None and not self._inflight.done():
            self.stats.coalesced += 1
            await asyncio.shield(self._inflight)
            return self.data

        self.stats.misses += 1
        self._inflight = asyncio.create_task(self._fetch())
        await asyncio.shield(self._inflight)
        return self.data

    async def _fetch(self) -> None:
        previous_state = self.state
        self.state = CacheState.LOADING
        self.loading = True
        self.error = None
        start_time = time.time()

        try:
            response = await self.fetch_function()
            items = _extract_items(response)
        except Exception as e:
            self.stats.errors += 1
            self.error = str(e) or e.__class__.__name__
            self.state = previous_state
            logger.error(f"Failed to load '{self.cache_key}': {self.error}")
            return
        finally:
            self.loading = False

        self.stats.fetches += 1
        entry = CacheEntry(data=items, fetched_at_millis=self.clock(), ttl_millis=self.ttl_ms)
        self._set_entry(entry)
        await asyncio.to_thread(self._persist, entry)

        elapsed_ms = (time.time() - start_time) * 1000
        logger.info(f"Loaded {len(items)} items for '{self.cache_key}' in {elapsed_ms:.0f}ms")

    async def refresh(self, force: bool = True) -> List[Any]:
        """Reload from the source (forced by default)."""
        return await self.load(force=force)

    async def invalidate_cache(self) -> List[Any]:
        """Forget the cached copy (memory and persisted) and load again."""
        logger.info(f"Invalidating cache '{self.cache_key}'")
        self._entry = None
        if self.persistence is not None:
            await asyncio.to_thread(self.persistence.delete, self.cache_key)

        if self._inflight is not None and not self._inflight.done():
            await asyncio.shield(self._inflight)

        return await self.load(force=True)

    # ========== Filtering ==========

    def apply_filters(self, predicates: Optional[Mapping[str, Any]]) -> List[Any]:
        """
        Narrow the view to items matching every predicate.

        Booleans match exactly, strings match as case-insensitive substrings,
        other values by equality. None and "" values are ignored. `all_data`
        is never touched.
        """
        self.active_filters = active_predicates(predicates)

        if not self.active_filters:
            return self.clear_filters()

        self.data = apply_filters(self.all_data, self.active_filters)
        if self.state is not CacheState.LOADING:
            self.state = CacheState.FILTERED
        return self.data

    def clear_filters(self) -> List[Any]:
        self.active_filters = {}
        self.data = list(self.all_data)
        if self.state is CacheState.FILTERED:
            self.state = CacheState.READY
        return self.data

    def select(self, predicates: Optional[Mapping[str, Any]]) -> List[Any]:
        """Filter `all_data` without changing the cache's own view."""
        return apply_filters(self.all_data, predicates)

    def get_stats(self) -> Dict[str, Any]:
        stats = self.stats.get_stats()
        stats.update({
            "cache_key": self.cache_key,
            "state": self.state.value,
            "items": len(self.all_data),
            "visible_items": len(self.data),
            "is_cached": self.is_cached,
            "cache_age_ms": self.cache_age_ms,
            "persistence_enabled": self.persistence_enabled,
            "error": self.error,
        })
        return stats
