"""
Cache utilities for Octagon Oracle
Rankings are derived on demand; the cache only saves recomputing them
between writes and is cleared after every committed change to points.
"""

from flask import current_app

from app import cache


def make_cache_key(prefix, *args):
    """Generate a cache key from a prefix and arguments"""
    args_str = "_".join(str(arg) for arg in args)
    return f"{prefix}_{args_str}" if args_str else prefix


def cached_ranking(name, compute, *args):
    """
    Return a ranking from cache, computing and storing it on a miss

    Args:
        name: Ranking name used in the cache key
        compute: Callable producing the ranking (must return picklable data)
        *args: Positional arguments for compute, also part of the key
    """
    cache_key = make_cache_key(f"ranking_{name}", *args)

    result = cache.get(cache_key)
    if result is not None:
        current_app.logger.debug(f"Cache hit for key: {cache_key}")
        return result

    result = compute(*args)
    cache.set(
        cache_key, result, timeout=current_app.config.get("RANKING_CACHE_TIMEOUT", 120)
    )
    current_app.logger.debug(f"Cache set for key: {cache_key}")
    return result


def invalidate_rankings():
    """Drop cached rankings after points changed"""
    try:
        cache.clear()
        current_app.logger.debug("Ranking cache cleared")
    except Exception as e:
        current_app.logger.error(f"Failed to clear cache: {e}")


def get_cache_stats():
    """Get cache statistics"""
    return {
        "type": current_app.config.get("CACHE_TYPE", "Unknown"),
        "timeout": current_app.config.get("RANKING_CACHE_TIMEOUT", 120),
    }
