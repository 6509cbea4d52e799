"""
Caching decorators and invalidation helpers.

Keys are "<prefix>:<arg>:<arg>..." built from the call's positional
arguments, so `cached(key_prefix="tree")` on `full(self, roadmap_id)` stores
under "tree:<roadmap_id>" and invalidate_tree() can target it directly.
"""
import functools
import hashlib
import logging
from typing import Callable, Optional

from config.settings import get_settings
from .redis_client import cache

logger = logging.getLogger(__name__)

TREE_KEY_PREFIX = "tree"


def _generate_cache_key(
    func_name: str,
    args: tuple,
    kwargs: dict,
    key_prefix: str = "",
    skip_first_arg: bool = False
) -> str:
    """Generate cache key from function name and arguments."""
    key_parts = [key_prefix or func_name]

    start_idx = 1 if skip_first_arg and args else 0
    for arg in args[start_idx:]:
        if isinstance(arg, (str, int, float, bool)):
            key_parts.append(str(arg))
        else:
            key_parts.append(hashlib.md5(repr(arg).encode()).hexdigest()[:8])

    for k, v in sorted(kwargs.items()):
        if isinstance(v, (str, int, float, bool)):
            key_parts.append(f"{k}={v}")
        else:
            key_parts.append(f"{k}={hashlib.md5(str(v).encode()).hexdigest()[:8]}")

    return ":".join(key_parts)


def cached(ttl: Optional[int] = None, key_prefix: str = "", skip_none: bool = True):
    """
    Cache an async function's JSON-serializable result in Redis.

    Args:
        ttl: Time to live in seconds (default: settings.tree_cache_ttl_seconds)
        key_prefix: Prefix for cache key (default: function name)
        skip_none: Don't cache None results

    Usage:
        @cached(key_prefix="tree")
        async def full(self, roadmap_id: str):
            ...
    """
    def decorator(func: Callable):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            # Methods: skip self when building the key
            skip_first = bool(args) and hasattr(args[0].__class__, func.__name__)

            cache_key = _generate_cache_key(
                func.__name__,
                args,
                kwargs,
                key_prefix,
                skip_first_arg=skip_first
            )

            cached_value = await cache.get(cache_key)
            if cached_value is not None:
                logger.debug(f"Cache HIT: {cache_key}")
                return cached_value

            logger.debug(f"Cache MISS: {cache_key}")
            result = await func(*args, **kwargs)

            if result is not None or not skip_none:
                await cache.set(cache_key, result, ttl or get_settings().tree_cache_ttl_seconds)

            return result

        return wrapper

    return decorator


def tree_cache_key(roadmap_id: str) -> str:
    return f"{TREE_KEY_PREFIX}:{roadmap_id}"


async def invalidate_tree(roadmap_id: Optional[str]) -> None:
    """Drop the cached full tree of a roadmap."""
    if not roadmap_id:
        return
    await cache.delete(tree_cache_key(roadmap_id))

