"""Redis cache for user listings, graph pages and stats."""

from .redis_cache import GRAPH_NAMESPACE, STATS_NAMESPACE, USERS_NAMESPACE, RedisCache, generate_cache_key

__all__ = ["RedisCache", "generate_cache_key", "GRAPH_NAMESPACE", "STATS_NAMESPACE", "USERS_NAMESPACE"]
