"""Tests for cache module."""

import asyncio
from datetime import timedelta

import pytest

from standup.cache import DEFAULT_MAX_AGE, Cache, CacheMap, CachingAlgorithm


class Counter:
    """Fetch function that counts calls"""

    def __init__(self, delay: float = 0):
        self.calls = 0
        self.delay = delay

    async def __call__(self):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.calls


class TestCache:
    """Tests for Cache class."""

    def test_new_cache_is_expired(self, clock):
        """Test a cache with no value is expired."""
        cache = Cache(Counter(), clock=clock)

        assert cache.is_expired is True
        assert cache.last_update_time is None

    def test_default_max_age(self):
        """Test the default max age is one minute."""
        assert DEFAULT_MAX_AGE == timedelta(minutes=1)

    @pytest.mark.asyncio
    async def test_fresh_value_is_reused(self, clock):
        """Test a second read within max_age does not fetch."""
        fetch = Counter()
        cache = Cache(fetch, clock=clock)

        assert await cache.get_value() == 1
        clock.advance(timedelta(seconds=59))
        assert await cache.get_value() == 1
        assert fetch.calls == 1
        assert cache.last_update_time == clock.now - timedelta(seconds=59)

    @pytest.mark.asyncio
    async def test_expires_at_max_age(self, clock):
        """Test the value expires exactly at last update + max_age."""
        fetch = Counter()
        cache = Cache(fetch, clock=clock)

        await cache.get_value()
        clock.advance(timedelta(minutes=1))

        assert cache.is_expired is True
        assert await cache.get_value() == 2

    @pytest.mark.asyncio
    async def test_force_refresh_always_fetches(self, clock):
        """Test FORCE_REFRESH bypasses a fresh value."""
        fetch = Counter()
        cache = Cache(fetch, clock=clock)

        await cache.get_value()
        assert await cache.get_value(CachingAlgorithm.FORCE_REFRESH) == 2
        assert fetch.calls == 2

    @pytest.mark.asyncio
    async def test_invalidate(self, clock):
        """Test invalidate forces the next read to fetch."""
        fetch = Counter()
        cache = Cache(fetch, clock=clock)

        await cache.get_value()
        cache.invalidate()

        assert cache.is_expired is True
        assert await cache.get_value() == 2

    @pytest.mark.asyncio
    async def test_concurrent_reads_fetch_once(self, clock):
        """Test concurrent readers of an expired cache share one fetch."""
        fetch = Counter(delay=0.01)
        cache = Cache(fetch, clock=clock)

        results = await asyncio.gather(cache.get_value(), cache.get_value())

        assert results == [1, 1]
        assert fetch.calls == 1

        clock.advance(timedelta(minutes=2))
        assert await cache.get_value() == 2
        assert fetch.calls == 2

    @pytest.mark.asyncio
    async def test_concurrent_force_refresh_fetch_once(self, clock):
        """Test queued FORCE_REFRESH callers reuse the fetch that was in flight."""
        fetch = Counter(delay=0.01)
        cache = Cache(fetch, clock=clock)

        results = await asyncio.gather(*(
            cache.get_value(CachingAlgorithm.FORCE_REFRESH) for _ in range(3)
        ))

        assert results == [1, 1, 1]
        assert fetch.calls == 1

    @pytest.mark.asyncio
    async def test_failure_propagates_to_waiters(self, clock):
        """Test every waiter sees the failed fetch and nothing is cached."""
        calls = 0

        async def failing():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            raise RuntimeError("upstream down")

        cache = Cache(failing, clock=clock)
        results = await asyncio.gather(cache.get_value(), cache.get_value(), return_exceptions=True)

        assert calls == 1
        assert all(isinstance(r, RuntimeError) for r in results)
        assert cache.is_expired is True

    @pytest.mark.asyncio
    async def test_recovers_after_failure(self, clock):
        """Test a later read fetches again after a failure."""
        outcomes = [RuntimeError("boom"), "ok"]

        async def flaky():
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        cache = Cache(flaky, clock=clock)
        with pytest.raises(RuntimeError):
            await cache.get_value()

        assert await cache.get_value() == "ok"

    @pytest.mark.asyncio
    async def test_cancelled_fetch_is_retried_by_next_waiter(self, clock):
        """Test cancelling the fetching caller leaves the cache empty and the queued caller fetches."""
        fetch = Counter(delay=0.01)
        cache = Cache(fetch, clock=clock)

        first = asyncio.create_task(cache.get_value())
        await asyncio.sleep(0)
        second = asyncio.create_task(cache.get_value())
        await asyncio.sleep(0)
        first.cancel()

        with pytest.raises(asyncio.CancelledError):
            await first
        assert cache.last_update_time is None

        assert await second == 2
        assert fetch.calls == 2
        assert cache.last_update_time == clock.now
        assert cache.is_fetching is False


class TestCacheMap:
    """Tests for CacheMap class."""

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, clock):
        """Test each key has its own cache."""
        caches = CacheMap(clock=clock)
        a, b = Counter(), Counter()

        await caches.get("a", a).get_value()
        await caches.get("b", b).get_value()
        await caches.get("a", a).get_value()

        assert (a.calls, b.calls) == (1, 1)
        assert len(caches) == 2

    @pytest.mark.asyncio
    async def test_invalidate_single_key(self, clock):
        """Test invalidating one key leaves the others fresh."""
        caches = CacheMap(clock=clock)
        a, b = Counter(), Counter()
        await caches.get("a", a).get_value()
        await caches.get("b", b).get_value()

        caches.invalidate("a")

        assert len(caches) == 1
        assert caches.get("a", a).is_expired is True
        assert caches.get("b", b).is_expired is False

    @pytest.mark.asyncio
    async def test_invalidate_all(self, clock):
        """Test invalidating without a key expires every cache."""
        caches = CacheMap(clock=clock)
        a = Counter()
        await caches.get("a", a).get_value()

        caches.invalidate()
        caches.invalidate("missing")

        assert caches.get("a", a).is_expired is True

    @pytest.mark.asyncio
    async def test_invalidate_releases_entries(self, clock):
        """Test invalidated caches are removed rather than kept stale."""
        caches = CacheMap(clock=clock)
        for key in range(6):
            await caches.get(key, Counter()).get_value()

        caches.invalidate(0)
        assert len(caches) == 5

        caches.invalidate()
        assert len(caches) == 0

    @pytest.mark.asyncio
    async def test_expired_entries_dropped_on_get(self, clock):
        """Test expired caches are removed when another key is read."""
        caches = CacheMap(clock=clock)
        for key in range(6):
            await caches.get(key, Counter()).get_value()
        clock.advance(timedelta(minutes=2))

        a = Counter()
        assert await caches.get("a", a).get_value() == 1
        assert len(caches) == 1

    @pytest.mark.asyncio
    async def test_fetch_in_progress_is_kept(self, clock):
        """Test a cache with a fetch in flight is not dropped."""
        caches = CacheMap(clock=clock)
        slow = Counter(delay=0.01)

        pending = asyncio.create_task(caches.get("slow", slow).get_value())
        await asyncio.sleep(0)
        caches.get("other", Counter())

        assert len(caches) == 2
        assert await pending == 1
        assert await caches.get("slow", slow).get_value() == 1
        assert slow.calls == 1
