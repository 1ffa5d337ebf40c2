"""
Read-through cache for user pages, graph pages and stats snapshots.

Entries are JSON documents stored under ``<prefix><namespace>:<params>``
with a TTL. Any user mutation drops the three read namespaces at once.
Every operation is best-effort: when Redis is unreachable the call is a
no-op and the caller falls back to the store.
"""

import hashlib
import json
import logging
from typing import Any

from redis.asyncio import ConnectionPool, Redis

from ..utils.errors import UnavailableError

logger = logging.getLogger(__name__)

# Key namespaces invalidated on every user mutation
USERS_NAMESPACE = "users"
GRAPH_NAMESPACE = "graph"
STATS_NAMESPACE = "stats"
READ_NAMESPACES = (USERS_NAMESPACE, GRAPH_NAMESPACE, STATS_NAMESPACE)


def generate_cache_key(namespace: str, params: dict[str, Any]) -> str:
    """
    Build ``namespace:k1=v1:k2=v2`` with parameters in sorted order.

    Keys longer than 200 characters collapse to ``namespace:<16 hex>``.
    """
    sorted_params = sorted(params.items())

    parts = []
    for key, value in sorted_params:
        if isinstance(value, (dict, list)):
            value_str = json.dumps(value, sort_keys=True, separators=(",", ":"))
        else:
            value_str = str(value)
        parts.append(f"{key}={value_str}")

    key_base = f"{namespace}:" + ":".join(parts)

    if len(key_base) > 200:
        key_hash = hashlib.sha256(key_base.encode()).hexdigest()[:16]
        return f"{namespace}:{key_hash}"

    return key_base


class RedisCache:
    """JSON read cache in the ``users``, ``graph`` and ``stats`` namespaces."""

    def __init__(
        self,
        url: str = "redis://localhost:6379",
        ttl_seconds: int = 300,
        key_prefix: str = "social:cache:",
        max_connections: int = 10,
    ):
        self.url = url
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix
        self.max_connections = max_connections

        self._pool: ConnectionPool | None = None
        self._redis: Redis | None = None
        self._initialized = False

    @property
    def is_available(self) -> bool:
        return self._initialized and self._redis is not None

    async def initialize(self) -> None:
        """
        Open the pool and check the server.

        Raises:
            UnavailableError: If Redis does not answer PING
        """
        if self._initialized:
            return

        self._pool = ConnectionPool.from_url(
            self.url,
            max_connections=self.max_connections,
            decode_responses=True,
        )

        self._redis = Redis(connection_pool=self._pool)

        try:
            await self._redis.ping()
            self._initialized = True
            logger.info(f"RedisCache initialized: {self.url} (TTL={self.ttl_seconds}s)")
        except Exception as e:
            logger.error(f"RedisCache initialization failed: {e}")
            if self._redis:
                await self._redis.aclose()
            if self._pool:
                await self._pool.aclose()
            self._redis = None
            self._pool = None
            raise UnavailableError(f"Redis cache unreachable at {self.url}") from e

    async def close(self) -> None:
        """Release the pool. The cache reports unavailable afterwards."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

        if self._pool:
            await self._pool.aclose()
            self._pool = None

        self._initialized = False

    def _make_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def get(self, key: str) -> dict[str, Any] | None:
        """Cached document for ``key``, or None on a miss or any Redis error."""
        if not self.is_available:
            return None

        try:
            value = await self._redis.get(self._make_key(key))

            if value is None:
                logger.debug(f"Cache miss: {key}")
                return None

            logger.debug(f"Cache hit: {key}")
            return json.loads(value)
        except Exception as e:
            logger.warning(f"Cache get failed for key {key}: {e}")
            return None

    async def set(self, key: str, value: dict[str, Any], ttl_seconds: int | None = None) -> bool:
        """
        Store ``value`` under ``key`` for ``ttl_seconds`` (the cache default when omitted).

        Returns:
            False when Redis is unavailable or the write failed
        """
        if not self.is_available:
            return False

        try:
            json_value = json.dumps(value)
            await self._redis.setex(self._make_key(key), ttl_seconds or self.ttl_seconds, json_value)
            return True
        except Exception as e:
            logger.warning(f"Cache set failed for key {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        if not self.is_available:
            return False

        try:
            await self._redis.delete(self._make_key(key))
            return True
        except Exception as e:
            logger.warning(f"Cache delete failed for key {key}: {e}")
            return False

    async def invalidate_pattern(self, pattern: str) -> int:
        """Delete every key matching ``pattern`` (without prefix) and return how many went."""
        if not self.is_available:
            return 0

        try:
            full_pattern = self._make_key(pattern)

            keys = [key async for key in self._redis.scan_iter(match=full_pattern)]

            if not keys:
                return 0

            deleted = await self._redis.delete(*keys)
            logger.debug(f"Cache invalidated {deleted} keys matching pattern: {pattern}")
            return deleted
        except Exception as e:
            logger.warning(f"Cache invalidation failed for pattern {pattern}: {e}")
            return 0

    async def invalidate_reads(self) -> int:
        """Drop every cached listing, graph page and stats snapshot."""
        deleted = 0
        for namespace in READ_NAMESPACES:
            deleted += await self.invalidate_pattern(f"{namespace}:*")
        return deleted

    async def invalidate_all(self) -> int:
        """Drop everything under this cache's key prefix."""
        return await self.invalidate_pattern("*")
