"""Unit Tests for the Response Cache

Tests:
1. Stable cache keys
2. TTL memoization (fixed and value-dependent TTLs)
3. In-flight request collapsing
4. Failures are not cached
"""
import asyncio
import pytest
from unittest.mock import AsyncMock

from traderpro.services.response_cache import ResponseCache, build_cache_key


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestCacheKey:

    def test_parts_sorted_and_rendered(self):
        key = build_cache_key("industry-posture:v2", owner="u1", debug=True, watchlist=None, day="2024-07-09")
        assert key == "industry-posture:v2:day=2024-07-09:debug=1:owner=u1:watchlist="

    def test_order_independent(self):
        assert build_cache_key("p", a=1, b=2) == build_cache_key("p", b=2, a=1)


class TestMemoization:

    @pytest.mark.asyncio
    async def test_second_call_hits_cache(self):
        cache = ResponseCache("test", default_ttl_seconds=60)
        compute = AsyncMock(return_value={"ok": True})

        first = await cache.get_or_compute("k", compute)
        second = await cache.get_or_compute("k", compute)

        assert first == second == {"ok": True}
        compute.assert_awaited_once()
        assert cache.stats()["hits"] == 1

    @pytest.mark.asyncio
    async def test_expires_after_ttl(self):
        clock = FakeClock()
        cache = ResponseCache("test", default_ttl_seconds=10, clock=clock)
        compute = AsyncMock(side_effect=[1, 2])

        assert await cache.get_or_compute("k", compute) == 1
        clock.now = 9.9
        assert await cache.get_or_compute("k", compute) == 1
        clock.now = 10.0
        assert await cache.get_or_compute("k", compute) == 2

    @pytest.mark.asyncio
    async def test_ttl_depends_on_value(self):
        clock = FakeClock()
        cache = ResponseCache("test", clock=clock)
        compute = AsyncMock(side_effect=[{"mode": "classification_only"}, {"mode": "computed"}])

        def ttl(value):
            return 15 if value["mode"] == "classification_only" else 60

        await cache.get_or_compute("k", compute, ttl=ttl)
        clock.now = 16
        assert (await cache.get_or_compute("k", compute, ttl=ttl))["mode"] == "computed"
        clock.now = 70
        assert (await cache.get_or_compute("k", compute, ttl=ttl))["mode"] == "computed"
        assert compute.await_count == 2

    @pytest.mark.asyncio
    async def test_zero_ttl_not_stored(self):
        cache = ResponseCache("test")
        compute = AsyncMock(side_effect=[1, 2])
        await cache.get_or_compute("k", compute, ttl=0)
        assert await cache.get_or_compute("k", compute, ttl=0) == 2

    def test_eviction_keeps_newest(self):
        cache = ResponseCache("test", max_entries=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)
        assert cache.get("a") is None
        assert cache.get("c") == 3

    def test_invalidate(self):
        cache = ResponseCache("test")
        cache.set("a", 1)
        cache.set("b", 2)
        cache.invalidate("a")
        assert cache.get("a") is None
        cache.invalidate()
        assert cache.get("b") is None


class TestCollapsing:

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_computation(self):
        cache = ResponseCache("test")
        release = asyncio.Event()
        calls = 0

        async def compute():
            nonlocal calls
            calls += 1
            await release.wait()
            return "value"

        waiters = [asyncio.ensure_future(cache.get_or_compute("k", compute)) for _ in range(3)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*waiters)

        assert results == ["value", "value", "value"]
        assert calls == 1
        assert cache.stats()["collapsed"] == 2

    @pytest.mark.asyncio
    async def test_failure_propagates_and_is_not_cached(self):
        cache = ResponseCache("test")
        compute = AsyncMock(side_effect=[RuntimeError("boom"), "ok"])

        with pytest.raises(RuntimeError):
            await cache.get_or_compute("k", compute)
        assert await cache.get_or_compute("k", compute) == "ok"
        assert cache.stats()["inFlight"] == 0
