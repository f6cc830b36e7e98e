"""Jewel signal derivation.

Turns one Reading (three jewel oscillator lines, fib line, BBWP and fast
slope) into a DerivedSignal:

- compression range/center of the three lines and the center's fib zone
- independent buy and sell scores from compression, center zone, slope
  and fib cutting
- a label for the strict winner, banded GOD/ULTRA/STRONG/plain

The feed is unreliable vendor data, so nothing here raises. Without all
three lines the result carries no scores, but an upstream label supplied
as the prior signal is kept.

This module is pure business logic with no I/O dependencies.
"""

from core.jewel.thresholds import (
    EXTREME_COMPRESSION_MAX_RANGE,
    FIB_CUTTING_BONUS,
    PERFECT_SETUP_MAX_CENTER,
    center_contribution,
    classify_bbwp,
    classify_fib_zone,
    classify_signal,
    compression_score,
    nearest_fib_level,
    slope_contribution,
)
from core.models.reading import DerivedSignal, Reading
from core.numeric import is_finite


def _insufficient(reading: Reading, bbwp: float | None) -> DerivedSignal:
    return DerivedSignal(
        bbwp_value=bbwp,
        bbwp_classification=classify_bbwp(bbwp),
        signal_type=reading.prior_signal_type or None,
        signal_strength=reading.prior_signal_strength if reading.prior_signal_type else None,
    )


def derive(reading: Reading) -> DerivedSignal:
    """Derive compression, scores and signal label from a reading."""
    bbwp = reading.bbwp if is_finite(reading.bbwp) else None
    lines = (reading.fast, reading.slow, reading.high)
    if not all(is_finite(v) for v in lines):
        return _insufficient(reading, bbwp)

    low, high = min(lines), max(lines)
    total_range = high - low
    center = sum(lines) / 3

    fib = reading.fib
    fib_cutting = is_finite(fib) and low < fib < high

    extreme_compression = total_range <= EXTREME_COMPRESSION_MAX_RANGE
    perfect_setup = extreme_compression and center < PERFECT_SETUP_MAX_CENTER

    comp = compression_score(total_range)
    buy_score = comp
    sell_score = comp

    buy, sell = center_contribution(center)
    buy_score += buy
    sell_score += sell

    buy, sell = slope_contribution(reading.slope_fast)
    buy_score += buy
    sell_score += sell

    if fib_cutting:
        buy_score += FIB_CUTTING_BONUS
        sell_score += FIB_CUTTING_BONUS

    signal_type, signal_strength = classify_signal(buy_score, sell_score)
    if signal_type is not None:
        label = signal_type.value
    elif reading.prior_signal_type:
        # Engine inconclusive: keep the upstream label
        label = reading.prior_signal_type
        signal_strength = reading.prior_signal_strength
    else:
        label = None

    return DerivedSignal(
        compression_range=total_range,
        compression_center=center,
        fib_zone=classify_fib_zone(center),
        nearest_fib_level=nearest_fib_level(center),
        buy_score=buy_score,
        sell_score=sell_score,
        signal_type=label,
        signal_strength=signal_strength,
        fib_cutting=fib_cutting,
        bbwp_value=bbwp,
        bbwp_classification=classify_bbwp(bbwp),
        extreme_compression=extreme_compression,
        perfect_setup=perfect_setup,
    )
