"""Jewel oscillator signal derivation."""

from core.jewel.derivation import derive
from core.jewel.thresholds import (
    FIB_LEVELS,
    classify_bbwp,
    classify_fib_zone,
    classify_signal,
    compression_score,
    nearest_fib_level,
    slope_contribution,
)

__all__ = [
    "derive",
    "FIB_LEVELS",
    "classify_bbwp",
    "classify_fib_zone",
    "classify_signal",
    "compression_score",
    "nearest_fib_level",
    "slope_contribution",
]
