"""
Unit tests for the cache layer
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from redis.exceptions import ConnectionError as RedisConnectionError

from newswire.config import Settings
from newswire.services.news_cache import (
    MemoryNewsCache,
    NEWS_KEY_PREFIX,
    NullNewsCache,
    RedisNewsCache,
    create_news_cache,
    generate_news_key,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


# ============================================================================
# KEYS
# ============================================================================

class TestKeys:

    def test_key_independent_of_dict_order(self):
        a = generate_news_key({"query": {"text": "ai", "limit": 20}, "options": {"sort_by": "none"}})
        b = generate_news_key({"options": {"sort_by": "none"}, "query": {"limit": 20, "text": "ai"}})
        assert a == b
        assert a.startswith(NEWS_KEY_PREFIX)

    def test_different_queries_differ(self):
        assert generate_news_key({"q": "ai"}) != generate_news_key({"q": "climate"})


# ============================================================================
# MEMORY
# ============================================================================

class TestMemoryCache:

    @pytest.mark.asyncio
    async def test_get_set_and_expiry(self):
        clock = FakeClock()
        cache = MemoryNewsCache(clock=clock)

        await cache.set("news:aggregated:k", "value", ttl=300)
        assert await cache.get("news:aggregated:k") == "value"

        clock.now += 299
        assert await cache.get("news:aggregated:k") == "value"

        clock.now += 1
        assert await cache.get("news:aggregated:k") is None
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_invalidate_pattern(self):
        cache = MemoryNewsCache()
        await cache.set("news:aggregated:1", "a")
        await cache.set("news:aggregated:2", "b")
        await cache.set("other:1", "c")

        assert await cache.invalidate("news:*") == 2
        assert await cache.get("other:1") == "c"

    @pytest.mark.asyncio
    async def test_null_cache_is_always_cold(self):
        cache = NullNewsCache()
        assert await cache.set("k", "v") is False
        assert await cache.get("k") is None
        assert await cache.invalidate("*") == 0


# ============================================================================
# REDIS (mocked client)
# ============================================================================

class TestRedisCache:

    @pytest.mark.asyncio
    async def test_hit(self):
        client = MagicMock()
        client.get = AsyncMock(return_value="cached-json")
        cache = RedisNewsCache(client=client)

        assert await cache.get("news:aggregated:k") == "cached-json"

    @pytest.mark.asyncio
    async def test_set_passes_ttl(self):
        client = MagicMock()
        client.set = AsyncMock(return_value=True)
        cache = RedisNewsCache(client=client)

        assert await cache.set("k", "v", ttl=120) is True
        client.set.assert_awaited_once_with("k", "v", ex=120)

    @pytest.mark.asyncio
    async def test_unreachable_redis_degrades_to_miss(self):
        client = MagicMock()
        client.get = AsyncMock(side_effect=RedisConnectionError("refused"))
        client.set = AsyncMock(side_effect=RedisConnectionError("refused"))
        client.scan_iter = MagicMock(side_effect=RedisConnectionError("refused"))
        cache = RedisNewsCache(client=client)

        assert await cache.get("k") is None
        assert await cache.set("k", "v") is False
        assert await cache.invalidate("news:*") == 0

    @pytest.mark.asyncio
    async def test_no_url_means_no_client(self):
        cache = RedisNewsCache(redis_url=None)
        assert await cache.get("k") is None
        assert await cache.set("k", "v") is False

    @pytest.mark.asyncio
    async def test_invalidate_deletes_scanned_keys(self):
        async def scan(match, count):
            for key in ("news:aggregated:1", "news:aggregated:2"):
                yield key

        client = MagicMock()
        client.scan_iter = scan
        client.delete = AsyncMock(return_value=2)
        cache = RedisNewsCache(client=client)

        assert await cache.invalidate("news:aggregated:*") == 2
        client.delete.assert_awaited_once_with("news:aggregated:1", "news:aggregated:2")

    @pytest.mark.asyncio
    async def test_hung_scan_times_out(self):
        async def scan(match, count):
            yield "news:aggregated:1"
            await asyncio.sleep(10)
            yield "news:aggregated:2"

        client = MagicMock()
        client.scan_iter = scan
        client.delete = AsyncMock(return_value=1)
        cache = RedisNewsCache(client=client, op_timeout=0.05)

        assert await asyncio.wait_for(cache.invalidate("news:aggregated:*"), timeout=1) == 0
        client.delete.assert_not_awaited()


# ============================================================================
# FACTORY
# ============================================================================

class TestFactory:

    @pytest.mark.parametrize("backend,expected", [
        ("memory", MemoryNewsCache),
        ("redis", RedisNewsCache),
        ("none", NullNewsCache),
        ("bogus", NullNewsCache),
    ])
    def test_backend_selection(self, backend, expected):
        settings = Settings(NEWS_CACHE_BACKEND=backend)
        assert isinstance(create_news_cache(settings), expected)
