"""Redis cache layer for hot data.

Provides caching for:
- Latest signal record per symbol/timeframe (confluence reads)

Uses orjson for fast serialization/deserialization. Every operation
degrades to a cache miss when Redis is unavailable.
"""

from __future__ import annotations

import logging
from typing import Any

import orjson
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from app.config import get_settings

logger = logging.getLogger(__name__)

# Global connection pool
_pool: ConnectionPool | None = None
_client: redis.Redis | None = None


# =============================================================================
# Key prefixes for different data types
# =============================================================================

KEY_PREFIX_LATEST = "latest:"        # Latest record: latest:{symbol}:{timeframe}


# =============================================================================
# Connection management
# =============================================================================

async def init_cache() -> None:
    """Initialize Redis connection pool."""
    global _pool, _client

    if _client is not None:
        return

    settings = get_settings()
    _pool = ConnectionPool.from_url(
        settings.redis_url,
        max_connections=20,
        decode_responses=False,  # We handle encoding ourselves with orjson
    )
    _client = redis.Redis(connection_pool=_pool)

    # Test connection
    try:
        await _client.ping()
        logger.info(f"Redis connected: {settings.redis_url}")
    except (redis.ConnectionError, OSError) as e:
        logger.warning(f"Redis connection failed: {e}. Cache will be disabled.")
        _client = None
        _pool = None


async def close_cache() -> None:
    """Close Redis connection pool."""
    global _pool, _client

    if _client is not None:
        await _client.aclose()
        _client = None

    if _pool is not None:
        await _pool.disconnect()
        _pool = None

    logger.info("Redis connection closed")


def is_cache_available() -> bool:
    """Check if cache is available."""
    return _client is not None


# =============================================================================
# JSON operations (using orjson)
# =============================================================================

def dumps(value: Any) -> bytes:
    return orjson.dumps(value, default=str)


def loads(data: bytes, key: str = "") -> Any | None:
    try:
        return orjson.loads(data)
    except orjson.JSONDecodeError as e:
        logger.warning(f"JSON decode error for key {key}: {e}")
        return None


# =============================================================================
# Sorted set operations (keep-newest records)
# =============================================================================

async def zadd_keep_top(
    key: str,
    member: bytes,
    score: float,
    ttl: int | None = None,
) -> bool:
    """Add a scored member and trim the set to its highest-scored member.

    ZADD and the trim run in one MULTI transaction, so concurrent writers
    always leave the highest score behind regardless of arrival order.

    Args:
        key: Sorted set key
        member: Raw bytes to store
        score: Ordering score (higher wins)
        ttl: Time-to-live in seconds for the whole key

    Returns:
        True if successful, False otherwise
    """
    if _client is None:
        return False

    try:
        async with _client.pipeline(transaction=True) as pipe:
            pipe.zadd(key, {member: score})
            pipe.zremrangebyrank(key, 0, -2)
            if ttl:
                pipe.expire(key, ttl)
            await pipe.execute()
        return True
    except redis.RedisError as e:
        logger.warning(f"Redis ZADD error: {e}")
        return False


async def ztop(key: str) -> bytes | None:
    """Get the highest-scored member of a sorted set.

    Args:
        key: Sorted set key

    Returns:
        Raw bytes or None if empty/cache unavailable
    """
    if _client is None:
        return None

    try:
        result = await _client.zrange(key, -1, -1)
        return result[0] if result else None
    except redis.RedisError as e:
        logger.warning(f"Redis ZRANGE error: {e}")
        return None


async def delete(key: str) -> bool:
    """Delete a key from cache.

    Args:
        key: Cache key

    Returns:
        True if deleted, False otherwise
    """
    if _client is None:
        return False

    try:
        await _client.delete(key)
        return True
    except redis.RedisError as e:
        logger.warning(f"Redis DELETE error: {e}")
        return False


# =============================================================================
# Health check
# =============================================================================

async def ping() -> bool:
    """Check if Redis is responsive.

    Returns:
        True if Redis responds to PING
    """
    if _client is None:
        return False

    try:
        return await _client.ping()
    except redis.RedisError:
        return False
