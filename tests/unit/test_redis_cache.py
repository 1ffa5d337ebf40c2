"""
Tests for the Redis read cache.

Tests cover:
- Cache hit/miss scenarios
- TTL on writes
- Pattern invalidation of the users/graph/stats namespaces
- Degraded behaviour when Redis is unreachable or failing
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from social_graph_service.cache.redis_cache import RedisCache, generate_cache_key
from social_graph_service.utils.errors import UnavailableError


async def _aiter(items):
    for item in items:
        yield item


@pytest.fixture
def mock_redis():
    """Patch the redis.asyncio pool and client used by RedisCache."""
    with patch("social_graph_service.cache.redis_cache.ConnectionPool") as mock_pool_cls, patch(
        "social_graph_service.cache.redis_cache.Redis"
    ) as mock_redis_cls:
        mock_pool = MagicMock()
        mock_pool.aclose = AsyncMock()
        mock_pool_cls.from_url.return_value = mock_pool

        redis = AsyncMock()
        redis.ping = AsyncMock()
        redis.get = AsyncMock(return_value=None)
        redis.setex = AsyncMock()
        redis.delete = AsyncMock(return_value=0)
        redis.aclose = AsyncMock()
        mock_redis_cls.return_value = redis
        yield redis


@pytest.fixture
async def cache(mock_redis):
    cache = RedisCache(url="redis://localhost:6379", ttl_seconds=300)
    await cache.initialize()
    yield cache
    await cache.close()


class TestRedisCacheBasics:
    @pytest.mark.asyncio
    async def test_cache_miss_returns_none(self, cache, mock_redis):
        assert await cache.get("users:page=1") is None
        mock_redis.get.assert_called_once_with("social:cache:users:page=1")

    @pytest.mark.asyncio
    async def test_cache_hit_returns_decoded_value(self, cache, mock_redis):
        payload = {"nodes": [], "edges": [], "pagination": {"page": 1}}
        mock_redis.get = AsyncMock(return_value=json.dumps(payload))

        assert await cache.get("graph:page=1") == payload

    @pytest.mark.asyncio
    async def test_set_uses_default_ttl(self, cache, mock_redis):
        assert await cache.set("stats:scope=all", {"totalUsers": 3}) is True

        key, ttl, value = mock_redis.setex.call_args.args
        assert key == "social:cache:stats:scope=all"
        assert ttl == 300
        assert json.loads(value) == {"totalUsers": 3}

    @pytest.mark.asyncio
    async def test_set_ttl_override(self, cache, mock_redis):
        await cache.set("k", {"a": 1}, ttl_seconds=5)
        assert mock_redis.setex.call_args.args[1] == 5

    @pytest.mark.asyncio
    async def test_redis_errors_become_no_ops(self, cache, mock_redis):
        mock_redis.get = AsyncMock(side_effect=ConnectionError("gone"))
        mock_redis.setex = AsyncMock(side_effect=ConnectionError("gone"))

        assert await cache.get("k") is None
        assert await cache.set("k", {"a": 1}) is False


class TestInvalidation:
    @pytest.mark.asyncio
    async def test_invalidate_pattern_deletes_matching_keys(self, cache, mock_redis):
        keys = ["social:cache:graph:page=1", "social:cache:graph:page=2"]
        mock_redis.scan_iter = MagicMock(return_value=_aiter(keys))
        mock_redis.delete = AsyncMock(return_value=2)

        assert await cache.invalidate_pattern("graph:*") == 2

        mock_redis.scan_iter.assert_called_once_with(match="social:cache:graph:*")
        mock_redis.delete.assert_awaited_once_with(*keys)

    @pytest.mark.asyncio
    async def test_invalidate_pattern_without_matches(self, cache, mock_redis):
        mock_redis.scan_iter = MagicMock(return_value=_aiter([]))
        assert await cache.invalidate_pattern("users:*") == 0
        mock_redis.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalidate_reads_covers_all_namespaces(self, cache, mock_redis):
        mock_redis.scan_iter = MagicMock(side_effect=lambda match: _aiter([match.replace("*", "x")]))
        mock_redis.delete = AsyncMock(return_value=1)

        assert await cache.invalidate_reads() == 3

        patterns = [call.kwargs["match"] for call in mock_redis.scan_iter.call_args_list]
        assert patterns == ["social:cache:users:*", "social:cache:graph:*", "social:cache:stats:*"]


class TestUnavailableRedis:
    @pytest.mark.asyncio
    async def test_initialize_failure_raises_unavailable(self, mock_redis):
        mock_redis.ping = AsyncMock(side_effect=ConnectionError("refused"))
        cache = RedisCache()

        with pytest.raises(UnavailableError):
            await cache.initialize()

        assert cache.is_available is False
        mock_redis.aclose.assert_awaited()

    @pytest.mark.asyncio
    async def test_uninitialized_cache_is_inert(self):
        cache = RedisCache()
        assert await cache.get("k") is None
        assert await cache.set("k", {}) is False
        assert await cache.delete("k") is False
        assert await cache.invalidate_all() == 0


class TestCacheKeyGeneration:
    def test_key_is_independent_of_param_order(self):
        assert generate_cache_key("users", {"page": 1, "limit": 50}) == generate_cache_key(
            "users", {"limit": 50, "page": 1}
        )

    def test_key_format(self):
        assert generate_cache_key("graph", {"page": 2, "limit": 100}) == "graph:limit=100:page=2"

    def test_different_params_give_different_keys(self):
        assert generate_cache_key("users", {"search": "chess"}) != generate_cache_key("users", {"search": "art"})

    def test_long_keys_are_hashed_within_namespace(self):
        key = generate_cache_key("users", {"search": "x" * 500})
        assert key.startswith("users:")
        assert len(key) == len("users:") + 16
