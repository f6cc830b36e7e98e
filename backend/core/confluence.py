"""Multi-timeframe confluence scoring.

Works on the latest stored SignalRecord per timeframe; values are read
from the record, never recomputed from the raw jewel lines. Note that
``compressed`` here is ``range < 4`` on the stored field, while the
derivation engine's extreme compression is ``range <= 4``.

Per-timeframe contribution tops out at 85, and the recommendation tiers
(70 / 50) are tuned against that ceiling.

This module is pure business logic with no I/O dependencies.
"""

from datetime import datetime, timezone
from typing import Mapping

from core.models import (
    ConfluenceResult,
    Recommendation,
    SignalRecord,
    SlopeDirection,
    TimeframeConfluence,
)
from core.numeric import is_finite, round_half_up

DEFAULT_TIMEFRAMES: tuple[str, ...] = ("15m", "2h", "4h")

COMPRESSED_MAX_RANGE = 4.0
EXTREME_ZONE_LOW = 20.0
EXTREME_ZONE_HIGH = 80.0

COMPRESSED_POINTS = 25
EXTREME_ZONE_POINTS = 20
STEEP_SLOPE_POINTS = 15
STEEP_SLOPE_MIN = 1.0
BUY_SIGNAL_POINTS = 15
LOW_BBWP_POINTS = 10
LOW_BBWP_MAX = 30.0

STRONG_MIN_SCORE = 70
STRONG_MIN_TIMEFRAMES = 2
MODERATE_MIN_SCORE = 50


def is_compressed(record: SignalRecord) -> bool:
    value = record.compression_total_range
    return is_finite(value) and value < COMPRESSED_MAX_RANGE


def is_extreme_zone(record: SignalRecord) -> bool:
    value = record.compression_center
    return is_finite(value) and (value < EXTREME_ZONE_LOW or value > EXTREME_ZONE_HIGH)


def slope_direction(record: SignalRecord) -> SlopeDirection:
    value = record.slope_fast
    if not is_finite(value):
        return SlopeDirection.NEUTRAL
    if value > 0:
        return SlopeDirection.BULLISH
    if value < 0:
        return SlopeDirection.BEARISH
    return SlopeDirection.NEUTRAL


def age_minutes(record: SignalRecord, now: datetime) -> int:
    """Whole minutes since the record's timestamp (rounded half up)."""
    timestamp = record.timestamp
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return round_half_up((now - timestamp).total_seconds() / 60)


def timeframe_contribution(record: SignalRecord) -> int:
    """Points one timeframe adds to the running confluence total (0-85)."""
    score = 0
    if is_compressed(record):
        score += COMPRESSED_POINTS
    if is_extreme_zone(record):
        score += EXTREME_ZONE_POINTS
    if is_finite(record.slope_fast) and record.slope_fast > STEEP_SLOPE_MIN:
        score += STEEP_SLOPE_POINTS
    if record.is_buy:
        score += BUY_SIGNAL_POINTS
    if is_finite(record.bbwp_value) and record.bbwp_value < LOW_BBWP_MAX:
        score += LOW_BBWP_POINTS
    return score


def score_timeframe(record: SignalRecord, now: datetime) -> TimeframeConfluence:
    return TimeframeConfluence(
        record=record,
        compressed=is_compressed(record),
        extreme_zone=is_extreme_zone(record),
        slope_direction=slope_direction(record),
        age_minutes=age_minutes(record, now),
        score=timeframe_contribution(record),
    )


def recommend(confluence_score: int, active_timeframes: int) -> Recommendation:
    """Map the fused score to a tier; STRONG needs two active timeframes."""
    if confluence_score >= STRONG_MIN_SCORE and active_timeframes >= STRONG_MIN_TIMEFRAMES:
        return Recommendation.STRONG_BUY
    if confluence_score >= MODERATE_MIN_SCORE:
        return Recommendation.MODERATE
    return Recommendation.WEAK


def combine(
    symbol: str,
    records: Mapping[str, SignalRecord | None],
    now: datetime | None = None,
) -> ConfluenceResult:
    """Fuse the latest record per timeframe into one confluence result.

    Args:
        symbol: Symbol the records belong to.
        records: Timeframe label -> latest record in the lookback window,
            or None when the timeframe had nothing (inactive).
        now: Reference time for record ages (defaults to UTC now).

    Returns:
        ConfluenceResult with the per-timeframe breakdown in input order.
    """
    now = now or datetime.now(timezone.utc)

    timeframes: dict[str, TimeframeConfluence] = {}
    total = 0
    for label, record in records.items():
        if record is None:
            continue
        entry = score_timeframe(record, now)
        timeframes[label] = entry
        total += entry.score

    active = len(timeframes)
    confluence_score = round_half_up(total / active) if active else 0

    return ConfluenceResult(
        symbol=symbol,
        timeframes=timeframes,
        confluence_score=confluence_score,
        active_timeframes=active,
        recommendation=recommend(confluence_score, active),
    )
