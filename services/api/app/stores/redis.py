"""Redis store for shared caching.

Handles:
- Caching with TTL policies
- Prefix scans for cache observability / clearing

TTL policies:
- Ranking snapshots (trending projects, popular tags/technologies): the
  ranking freshness window (default 1 hour, see Settings)
"""

import json
import logging
from typing import Any

import redis.asyncio as redis

from app.settings import get_settings

# Key prefixes
PREFIX_RANKING = "ranking:"

# Redis client (initialized on startup)
_redis: redis.Redis | None = None
logger = logging.getLogger("uvicorn.error")


async def init_redis() -> None:
    """Initialize Redis connection."""
    global _redis
    settings = get_settings()
    _redis = redis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
    )
    # Validate connectivity early (especially for `rediss://` in production).
    await _redis.ping()
    logger.info("Redis connected")


async def close_redis() -> None:
    """Close Redis connection."""
    global _redis
    if _redis:
        await _redis.aclose()
        _redis = None


def _get_redis() -> redis.Redis:
    """Get Redis client instance."""
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis


# ============================================================
# Generic cache operations
# ============================================================


async def cache_get(key: str) -> str | None:
    """Get value from cache.

    Args:
        key: Cache key.

    Returns:
        Cached value or None if not found.
    """
    return await _get_redis().get(key)


async def cache_set(key: str, value: str, ttl: int) -> None:
    """Set value in cache with TTL.

    Args:
        key: Cache key.
        value: Value to cache.
        ttl: Time-to-live in seconds.
    """
    await _get_redis().setex(key, ttl, value)


async def cache_get_json(key: str) -> dict[str, Any] | None:
    """Get JSON value from cache.

    Args:
        key: Cache key.

    Returns:
        Parsed JSON dict or None if not found.
    """
    value = await cache_get(key)
    if value:
        return json.loads(value)
    return None


async def cache_set_json(key: str, value: dict[str, Any], ttl: int) -> None:
    """Set JSON value in cache.

    Args:
        key: Cache key.
        value: Dict to cache as JSON.
        ttl: Time-to-live in seconds.
    """
    await cache_set(key, json.dumps(value, default=str), ttl)


async def cache_keys(prefix: str) -> list[str]:
    """List keys under a prefix (SCAN, never KEYS).

    Args:
        prefix: Key prefix, e.g. PREFIX_RANKING.

    Returns:
        Matching keys in server iteration order.
    """
    return [key async for key in _get_redis().scan_iter(match=f"{prefix}*", count=100)]


async def cache_delete_prefix(prefix: str) -> int:
    """Delete every key under a prefix.

    Returns:
        Number of keys removed.
    """
    keys = await cache_keys(prefix)
    if not keys:
        return 0
    return int(await _get_redis().delete(*keys))
