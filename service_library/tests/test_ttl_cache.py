"""
Unit tests for the TTL cache and its stores.
"""

import asyncio

import pytest
import redis.asyncio as redis
from unittest.mock import AsyncMock

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_library.app.caching.ttl_cache import MemoryCacheStore, RedisCacheStore, TTLCache
from shared.errors import CacheFailure, UpstreamError


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class DummyMetrics:
    """Minimal metrics collector stub."""

    def __init__(self):
        self.counters = []

    def increment_counter(self, metric_name: str, **labels):
        self.counters.append((metric_name, labels))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return TTLCache(MemoryCacheStore(clock=clock))


class TestTTLCache:
    """Test cases for TTLCache.get_or_fetch."""

    @pytest.mark.asyncio
    async def test_second_call_within_ttl_fetches_once(self, cache, clock):
        fetch = AsyncMock(return_value={"success": True, "data": 1})

        first = await cache.get_or_fetch("stats", 60, fetch)
        clock.advance(59)
        second = await cache.get_or_fetch("stats", 60, fetch)

        assert first == second == {"success": True, "data": 1}
        fetch.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_entry_stale_at_expiry(self, cache, clock):
        fetch = AsyncMock(side_effect=["v1", "v2"])

        assert await cache.get_or_fetch("k", 60, fetch) == "v1"
        clock.advance(60)
        assert await cache.get_or_fetch("k", 60, fetch) == "v2"
        assert fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_failure_is_not_cached(self, cache):
        fetch = AsyncMock(side_effect=[UpstreamError(503), "recovered"])

        with pytest.raises(UpstreamError):
            await cache.get_or_fetch("k", 300, fetch)
        assert await cache.get_or_fetch("k", 300, fetch) == "recovered"
        assert fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_refresh_skips_hit_but_writes_fresh_entry(self, cache, clock):
        fetch = AsyncMock(side_effect=["old", "new", "unused"])

        await cache.get_or_fetch("k", 60, fetch)
        clock.advance(50)
        assert await cache.get_or_fetch("k", 60, fetch, refresh=True) == "new"

        # renewed window: 50s after the refresh the entry written at t=50 is still valid
        clock.advance(50)
        assert await cache.get_or_fetch("k", 60, fetch) == "new"
        assert fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_cache_if_rejects_value(self, cache):
        fetch = AsyncMock(side_effect=[{"success": False}, {"success": True}])

        await cache.get_or_fetch("k", 60, fetch, cache_if=lambda v: v["success"])
        result = await cache.get_or_fetch("k", 60, fetch, cache_if=lambda v: v["success"])

        assert result == {"success": True}
        assert fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, cache):
        fetch_a = AsyncMock(return_value="a")
        fetch_b = AsyncMock(return_value="b")

        assert await cache.get_or_fetch("a", 60, fetch_a) == "a"
        assert await cache.get_or_fetch("b", 60, fetch_b) == "b"
        assert await cache.get_or_fetch("a", 60, fetch_b) == "a"

    @pytest.mark.asyncio
    async def test_invalidate_forces_refetch(self, cache):
        fetch = AsyncMock(side_effect=["v1", "v2"])

        await cache.get_or_fetch("k", 60, fetch)
        await cache.invalidate("k")

        assert await cache.get_or_fetch("k", 60, fetch) == "v2"

    @pytest.mark.asyncio
    async def test_concurrent_misses_on_same_key_last_writer_wins(self, cache):
        gate = asyncio.Event()
        values = iter(["first", "second"])

        async def fetch():
            value = next(values)
            await gate.wait()
            return value

        tasks = [asyncio.create_task(cache.get_or_fetch("k", 60, fetch)) for _ in range(2)]
        await asyncio.sleep(0)
        gate.set()
        results = await asyncio.gather(*tasks)

        assert sorted(results) == ["first", "second"]
        assert await cache.get_or_fetch("k", 60, AsyncMock()) in ("first", "second")

    @pytest.mark.asyncio
    async def test_store_read_failure_falls_through_to_fetch(self):
        store = AsyncMock()
        store.get.side_effect = CacheFailure("redis down")
        store.set.side_effect = CacheFailure("redis down")
        metrics = DummyMetrics()
        cache = TTLCache(store, metrics=metrics)
        fetch = AsyncMock(return_value="direct")

        assert await cache.get_or_fetch("stats:1", 60, fetch) == "direct"
        fetch.assert_awaited_once()
        assert ("cache_errors_total", {"operation": "get"}) in metrics.counters
        assert ("cache_errors_total", {"operation": "set"}) in metrics.counters

    @pytest.mark.asyncio
    async def test_clear_store_failure_is_logged_not_raised(self):
        store = AsyncMock()
        store.clear.side_effect = CacheFailure("redis down")
        metrics = DummyMetrics()
        cache = TTLCache(store, metrics=metrics)

        await cache.clear()

        assert metrics.counters == [("cache_errors_total", {"operation": "clear"})]

    @pytest.mark.asyncio
    async def test_hit_and_miss_metrics(self, clock):
        metrics = DummyMetrics()
        cache = TTLCache(MemoryCacheStore(clock=clock), metrics=metrics)
        fetch = AsyncMock(return_value="v")

        await cache.get_or_fetch("latest_books:5", 60, fetch)
        await cache.get_or_fetch("latest_books:5", 60, fetch)

        assert metrics.counters == [
            ("cache_misses_total", {"cache_type": "latest_books"}),
            ("cache_hits_total", {"cache_type": "latest_books"}),
        ]


class TestMemoryCacheStore:
    """Lazy expiry in the memory store."""

    @pytest.mark.asyncio
    async def test_expired_entries_are_evicted_on_read(self, clock):
        store = MemoryCacheStore(clock=clock)
        await store.set("k", "v", 10)
        assert len(store) == 1

        clock.advance(10)
        await store.get("k")

        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_clear(self, clock):
        store = MemoryCacheStore(clock=clock)
        await store.set("a", 1, 10)
        await store.set("b", 2, 10)

        await store.clear()

        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_keys_never_read_again_are_swept_on_write(self, clock):
        store = MemoryCacheStore(clock=clock, sweep_interval=4)

        for day in range(1, 31):
            await store.set(f"wotd:2026-10-{day:02d}", {"word": str(day)}, 1)
            clock.advance(86400)

        assert len(store) <= 4

    @pytest.mark.asyncio
    async def test_sweep_keeps_live_entries(self, clock):
        store = MemoryCacheStore(clock=clock, sweep_interval=1)
        await store.set("book_details:1", "long", 3600)
        await store.set("today_books:2026-10-18", "short", 10)

        clock.advance(60)
        await store.set("latest_books:5", "fresh", 300)

        assert len(store) == 2
        assert await store.get("book_details:1") == "long"

    @pytest.mark.asyncio
    async def test_purge_expired(self, clock):
        store = MemoryCacheStore(clock=clock)
        await store.set("a", 1, 10)
        await store.set("b", 2, 100)

        clock.advance(50)

        assert await store.purge_expired() == 1
        assert len(store) == 1

    def test_rejects_zero_sweep_interval(self):
        with pytest.raises(ValueError):
            MemoryCacheStore(sweep_interval=0)


class TestRedisCacheStore:
    """Redis store behaviour with a mocked client."""

    @pytest.fixture
    def client(self):
        return AsyncMock()

    @pytest.fixture
    def store(self, client):
        return RedisCacheStore("redis://localhost:6379/0", namespace="library", client=client)

    @pytest.mark.asyncio
    async def test_set_uses_setex_with_namespaced_json(self, store, client):
        await store.set("wotd:2026-10-18", {"success": True, "data": {"word": "书"}}, 3600)

        client.setex.assert_awaited_once_with(
            "library:wotd:2026-10-18", 3600, '{"success": true, "data": {"word": "书"}}'
        )

    @pytest.mark.asyncio
    async def test_get_decodes_json(self, store, client):
        client.get.return_value = '{"success": true}'

        assert await store.get("stats") == {"success": True}
        client.get.assert_awaited_once_with("library:stats")

    @pytest.mark.asyncio
    async def test_get_miss(self, store, client):
        client.get.return_value = None
        cache = TTLCache(store)
        fetch = AsyncMock(return_value={"success": True})

        assert await cache.get_or_fetch("stats", 60, fetch) == {"success": True}
        fetch.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_connection_error_raises_cache_failure(self, store, client):
        client.get.side_effect = redis.ConnectionError("refused")

        with pytest.raises(CacheFailure):
            await store.get("stats")

    @pytest.mark.asyncio
    async def test_ttl_cache_survives_redis_outage(self, store, client):
        client.get.side_effect = redis.ConnectionError("refused")
        client.setex.side_effect = redis.ConnectionError("refused")
        cache = TTLCache(store)
        fetch = AsyncMock(return_value={"success": True, "data": 1})

        assert await cache.get_or_fetch("stats", 60, fetch) == {"success": True, "data": 1}
