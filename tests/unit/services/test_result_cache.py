"""
Unit tests for the search result cache
"""

import pytest
from unittest.mock import AsyncMock, MagicMock
import redis.asyncio as redis

from services.result_cache import RedisResultCache, ResultCache, cache_key


class TestCacheKey:

    def test_key_is_scoped_per_user(self):
        parts = {"search": "great", "limit": 20}

        assert cache_key("user-1", parts) != cache_key("user-2", parts)

    def test_key_ignores_dict_order(self):
        assert cache_key("user-1", {"a": 1, "b": 2}) == cache_key("user-1", {"b": 2, "a": 1})


class TestResultCache:

    @pytest.mark.asyncio
    async def test_second_lookup_is_cached(self):
        cache = ResultCache(ttl_seconds=30)
        compute = AsyncMock(return_value={"success": True, "data": [1]})

        first = await cache.get_or_compute("k", compute)
        second = await cache.get_or_compute("k", compute)

        assert first == ({"success": True, "data": [1]}, False)
        assert second == ({"success": True, "data": [1]}, True)
        compute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_zero_ttl_disables_caching(self):
        cache = ResultCache(ttl_seconds=0)
        compute = AsyncMock(return_value={"success": True})

        await cache.get_or_compute("k", compute)
        _, cached = await cache.get_or_compute("k", compute)

        assert cached is False
        assert compute.await_count == 2

    @pytest.mark.asyncio
    async def test_expired_entries_are_dropped(self):
        now = [1000.0]
        cache = ResultCache(ttl_seconds=30, clock=lambda: now[0])

        await cache.set("k", {"v": 1})
        assert await cache.get("k") == {"v": 1}
        now[0] += 31

        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_least_recently_used_entry_is_evicted(self):
        cache = ResultCache(ttl_seconds=30, max_entries=2)
        await cache.set("a", {"v": "a"})
        await cache.set("b", {"v": "b"})
        await cache.get("a")
        await cache.set("c", {"v": "c"})

        assert await cache.get("b") is None
        assert await cache.get("a") == {"v": "a"}

    @pytest.mark.asyncio
    async def test_cached_value_is_a_copy(self):
        cache = ResultCache(ttl_seconds=30)
        await cache.set("k", {"items": [1]})

        hit = await cache.get("k")
        hit["items"].append(2)

        assert await cache.get("k") == {"items": [1]}


class TestRedisResultCache:

    @pytest.mark.asyncio
    async def test_redis_errors_are_misses(self):
        client = MagicMock()
        client.get = AsyncMock(side_effect=redis.ConnectionError("down"))
        client.setex = AsyncMock(side_effect=redis.ConnectionError("down"))
        cache = RedisResultCache("redis://localhost", ttl_seconds=30, client=client)
        compute = AsyncMock(return_value={"success": True})

        value, cached = await cache.get_or_compute("k", compute)

        assert value == {"success": True}
        assert cached is False

    @pytest.mark.asyncio
    async def test_hit_is_decoded(self):
        client = MagicMock()
        client.get = AsyncMock(return_value='{"success": true}')
        cache = RedisResultCache("redis://localhost", client=client)

        assert await cache.get("k") == {"success": True}
