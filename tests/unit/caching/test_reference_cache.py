"""
Tests for the generic TTL reference cache.
"""

import asyncio
import json
import threading

import pytest

from refcatalog.caching.persistence import MemorySlotStore
from refcatalog.caching.reference_cache import CacheState, ReferenceCache


class CountingFetcher:
    """Async fetch function that counts calls."""

    def __init__(self, items=None, envelope=False):
        self.items = items if items is not None else [{"id": "1", "name": "Демонтаж", "is_global": True}]
        self.envelope = envelope
        self.calls = 0
        self.error = None
        self.delay = 0.0

    async def __call__(self):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return {"data": list(self.items), "total": len(self.items)} if self.envelope else list(self.items)


def _items(count, global_count):
    return [{"id": str(i), "name": f"Работа {i}", "is_global": i < global_count} for i in range(count)]


@pytest.fixture
def fetcher():
    return CountingFetcher()


@pytest.mark.asyncio
async def test_initial_state(fetcher, fake_clock):
    cache = ReferenceCache(fetcher, clock=fake_clock)

    assert cache.state is CacheState.UNINITIALIZED
    assert cache.data == [] and cache.all_data == []
    assert not cache.is_cached
    assert cache.cache_age_ms is None


@pytest.mark.asyncio
async def test_load_transitions_to_ready(fetcher, fake_clock):
    cache = ReferenceCache(fetcher, clock=fake_clock)

    data = await cache.load()

    assert data == fetcher.items
    assert cache.state is CacheState.READY
    assert cache.loading is False
    assert cache.is_cached


@pytest.mark.asyncio
async def test_ttl_gating(fetcher, fake_clock):
    cache = ReferenceCache(fetcher, ttl_ms=5000, clock=fake_clock)
    await cache.load()
    assert fetcher.calls == 1

    fake_clock.advance(2000)
    await cache.refresh(force=False)
    assert fetcher.calls == 1

    fake_clock.advance(4000)
    await cache.refresh(force=False)
    assert fetcher.calls == 2


@pytest.mark.asyncio
async def test_forced_refresh_ignores_ttl(fetcher, fake_clock):
    cache = ReferenceCache(fetcher, ttl_ms=5000, clock=fake_clock)
    await cache.load()
    await cache.refresh()
    assert fetcher.calls == 2


@pytest.mark.asyncio
async def test_concurrent_loads_are_coalesced(fetcher, fake_clock):
    fetcher.delay = 0.01
    cache = ReferenceCache(fetcher, clock=fake_clock)

    results = await asyncio.gather(*(cache.load() for _ in range(5)))

    assert fetcher.calls == 1
    assert all(result == fetcher.items for result in results)


@pytest.mark.asyncio
async def test_envelope_response(fake_clock):
    fetcher = CountingFetcher(items=_items(3, 1), envelope=True)
    cache = ReferenceCache(fetcher, clock=fake_clock)

    assert len(await cache.load()) == 3


@pytest.mark.asyncio
async def test_fetch_error_keeps_last_good_data(fetcher, fake_clock):
    cache = ReferenceCache(fetcher, ttl_ms=5000, clock=fake_clock)
    await cache.load()

    fetcher.error = RuntimeError("503 Service Unavailable")
    data = await cache.refresh()

    assert data == fetcher.items
    assert cache.error == "503 Service Unavailable"
    assert cache.state is CacheState.READY
    assert cache.stats.errors == 1


@pytest.mark.asyncio
async def test_first_fetch_error_stays_uninitialized(fetcher, fake_clock):
    fetcher.error = RuntimeError("timeout")
    cache = ReferenceCache(fetcher, clock=fake_clock)

    assert await cache.load() == []
    assert cache.state is CacheState.UNINITIALIZED
    assert cache.error == "timeout"


@pytest.mark.asyncio
async def test_filter_purity(fake_clock):
    cache = ReferenceCache(CountingFetcher(items=_items(100, 40)), clock=fake_clock)
    await cache.load()

    data = cache.apply_filters({"is_global": True})

    assert len(data) == 40
    assert len(cache.data) == 40
    assert len(cache.all_data) == 100
    assert cache.state is CacheState.FILTERED


@pytest.mark.asyncio
async def test_clear_filters_returns_to_ready(fake_clock):
    cache = ReferenceCache(CountingFetcher(items=_items(10, 4)), clock=fake_clock)
    await cache.load()
    cache.apply_filters({"is_global": True})

    cache.clear_filters()

    assert cache.state is CacheState.READY
    assert len(cache.data) == 10
    assert cache.active_filters == {}


@pytest.mark.asyncio
async def test_empty_predicates_clear_filters(fake_clock):
    cache = ReferenceCache(CountingFetcher(items=_items(10, 4)), clock=fake_clock)
    await cache.load()
    cache.apply_filters({"is_global": True})

    cache.apply_filters({"is_global": None, "name": ""})

    assert cache.state is CacheState.READY
    assert len(cache.data) == 10


@pytest.mark.asyncio
async def test_filters_survive_reload(fake_clock):
    fetcher = CountingFetcher(items=_items(10, 4))
    cache = ReferenceCache(fetcher, clock=fake_clock)
    await cache.load()
    cache.apply_filters({"is_global": True})

    fetcher.items = _items(20, 15)
    await cache.refresh()

    assert cache.state is CacheState.FILTERED
    assert len(cache.data) == 15
    assert len(cache.all_data) == 20


@pytest.mark.asyncio
async def test_select_does_not_change_view(fake_clock):
    cache = ReferenceCache(CountingFetcher(items=_items(10, 4)), clock=fake_clock)
    await cache.load()

    assert len(cache.select({"is_global": False})) == 6
    assert cache.state is CacheState.READY
    assert len(cache.data) == 10


@pytest.mark.asyncio
async def test_invalidate_cache_refetches(fetcher, fake_clock):
    slots = MemorySlotStore()
    cache = ReferenceCache(fetcher, cache_key="works-cache", persistence=slots, clock=fake_clock)
    await cache.load()

    await cache.invalidate_cache()

    assert fetcher.calls == 2
    assert cache.is_cached
    assert slots.get("works-cache") is not None


# ========== Persistence ==========


@pytest.mark.asyncio
async def test_successful_load_is_persisted(fetcher, fake_clock):
    slots = MemorySlotStore()
    cache = ReferenceCache(fetcher, cache_key="works-cache", persistence=slots, clock=fake_clock)

    await cache.load()

    stored = json.loads(slots.get("works-cache"))
    assert stored["data"] == fetcher.items
    assert stored["timestamp"] == fake_clock()


def test_fresh_entry_is_restored_at_construction(fetcher, fake_clock):
    slots = MemorySlotStore()
    slots.set("works-cache", json.dumps({"data": [{"id": "7"}], "timestamp": fake_clock() - 1000}))

    cache = ReferenceCache(fetcher, ttl_ms=5000, cache_key="works-cache", persistence=slots, clock=fake_clock)

    assert cache.state is CacheState.READY
    assert cache.data == [{"id": "7"}]
    assert cache.is_cached
    assert cache.stats.restored is True
    assert fetcher.calls == 0


@pytest.mark.asyncio
async def test_restored_entry_serves_loads_within_ttl(fetcher, fake_clock):
    slots = MemorySlotStore()
    slots.set("works-cache", json.dumps({"data": [{"id": "7"}], "timestamp": fake_clock()}))
    cache = ReferenceCache(fetcher, ttl_ms=5000, cache_key="works-cache", persistence=slots, clock=fake_clock)

    assert await cache.load() == [{"id": "7"}]
    assert fetcher.calls == 0


def test_expired_entry_is_removed(fetcher, fake_clock):
    slots = MemorySlotStore()
    slots.set("works-cache", json.dumps({"data": [{"id": "7"}], "timestamp": fake_clock() - 10_000}))

    cache = ReferenceCache(fetcher, ttl_ms=5000, cache_key="works-cache", persistence=slots, clock=fake_clock)

    assert cache.state is CacheState.UNINITIALIZED
    assert slots.get("works-cache") is None


@pytest.mark.parametrize("raw", ["{not json", '{"timestamp": 1}', '{"data": {}, "timestamp": 1}', '"text"'])
def test_corrupt_entry_is_removed(fetcher, fake_clock, raw):
    slots = MemorySlotStore()
    slots.set("works-cache", raw)

    cache = ReferenceCache(fetcher, cache_key="works-cache", persistence=slots, clock=fake_clock)

    assert cache.state is CacheState.UNINITIALIZED
    assert slots.get("works-cache") is None


@pytest.mark.asyncio
async def test_quota_exceeded_disables_persistence(fake_clock):
    slots = MemorySlotStore(max_bytes=50)
    fetcher = CountingFetcher(items=_items(50, 10))
    cache = ReferenceCache(fetcher, cache_key="works-cache", persistence=slots, clock=fake_clock)

    data = await cache.load()

    assert len(data) == 50
    assert cache.persistence_enabled is False
    assert slots.get("works-cache") is None
    assert cache.stats.persist_failures == 1

    fetcher.items = _items(1, 1)
    await cache.refresh()
    assert slots.get("works-cache") is None


def test_get_stats(fetcher, fake_clock):
    cache = ReferenceCache(fetcher, cache_key="works-cache", clock=fake_clock)
    stats = cache.get_stats()

    assert stats["cache_key"] == "works-cache"
    assert stats["state"] == "uninitialized"
    assert stats["persistence_enabled"] is False


class ThreadRecordingSlots(MemorySlotStore):
    """Slot store that records which thread each write ran on."""

    def __init__(self):
        super().__init__()
        self.write_threads = []

    def set(self, key, value):
        self.write_threads.append(threading.get_ident())
        return super().set(key, value)

    def delete(self, key):
        self.write_threads.append(threading.get_ident())
        return super().delete(key)


@pytest.mark.asyncio
async def test_persistence_writes_run_off_the_event_loop(fetcher, fake_clock):
    slots = ThreadRecordingSlots()
    cache = ReferenceCache(fetcher, cache_key="works-cache", persistence=slots, clock=fake_clock)

    await cache.load()
    await cache.invalidate_cache()

    loop_thread = threading.get_ident()
    assert len(slots.write_threads) == 3
    assert loop_thread not in slots.write_threads
