"""Latest-signal cache for confluence reads.

Stores the newest SignalRecord per symbol/timeframe in Redis so that a
confluence query can skip the database when the cached record is inside
the lookback window.

Data structure:
- latest:{symbol}:{timeframe} -> sorted set with one member, the JSON
  serialized record, scored by its timestamp
"""

from __future__ import annotations

import logging
from datetime import datetime

from pydantic import ValidationError

from app.config import get_settings
from app.models import SignalRecord
from app.storage import cache

logger = logging.getLogger(__name__)


def _latest_key(symbol: str, timeframe: str) -> str:
    """Get the cache key for a symbol/timeframe latest record."""
    return f"{cache.KEY_PREFIX_LATEST}{symbol}:{timeframe}"


def _serialize_record(record: SignalRecord) -> bytes:
    return cache.dumps(record.model_dump(mode="json"))


def _deserialize_record(data: bytes, key: str) -> SignalRecord | None:
    obj = cache.loads(data, key)
    if obj is None:
        return None
    try:
        return SignalRecord.model_validate(obj)
    except ValidationError as e:
        logger.warning(f"Failed to deserialize cached record {key}: {e}")
        return None


async def cache_latest(record: SignalRecord) -> bool:
    """Remember a record as the latest for its symbol/timeframe.

    An older record (by timestamp) never replaces a newer one. Records
    without a symbol are not cached.

    Returns:
        True if cached successfully
    """
    if not record.symbol or not cache.is_cache_available():
        return False

    ttl = get_settings().latest_signal_cache_ttl
    return await cache.zadd_keep_top(
        _latest_key(record.symbol, record.timeframe),
        _serialize_record(record),
        score=record.timestamp.timestamp(),
        ttl=ttl,
    )


async def get_latest(
    symbol: str,
    timeframe: str,
    since: datetime | None = None,
) -> SignalRecord | None:
    """Get the cached latest record, or None on a miss.

    Args:
        symbol: Trading symbol
        timeframe: Timeframe label
        since: When given, records older than this count as a miss

    Returns:
        SignalRecord or None
    """
    if not cache.is_cache_available():
        return None

    key = _latest_key(symbol, timeframe)
    data = await cache.ztop(key)
    if data is None:
        return None

    record = _deserialize_record(data, key)
    if record is None:
        return None
    if since is not None and record.timestamp < since:
        return None
    return record


async def clear_latest(symbol: str, timeframe: str) -> bool:
    """Drop the cached latest record for a symbol/timeframe."""
    if not cache.is_cache_available():
        return False
    return await cache.delete(_latest_key(symbol, timeframe))
