"""
Redis caching layer for Roadmap Canvas.

Provides:
- Redis client with connection pooling
- Cache decorator for assembled trees
- Tree invalidation after writes
"""

from .redis_client import get_redis, close_redis, cache, CacheClient
from .decorators import cached, invalidate_tree, tree_cache_key

__all__ = [
    "get_redis",
    "close_redis",
    "cache",
    "CacheClient",
    "cached",
    "invalidate_tree",
    "tree_cache_key",
]
