"""Threshold tables for jewel signal scoring.

Every table is an ordered tuple of ``(comparison, boundary, result)`` rules
evaluated first-match-in-order. Band edges are not symmetric:
a center of exactly 25 is Low, 60 is Mid and 80 is High.
"""

import operator
from typing import Callable, TypeVar

from core.models.reading import BbwpClassification, FibZone, SignalType
from core.numeric import is_finite

T = TypeVar("T")

Rule = tuple[Callable[[float, float], bool], float, T]

FIB_LEVELS: tuple[float, ...] = (0.0, 23.6, 38.2, 50.0, 61.8, 76.4, 100.0)
DEFAULT_FIB_LEVEL = 50.0

# Derivation "extreme compression" (range <= 4) and perfect setup (center < 30)
EXTREME_COMPRESSION_MAX_RANGE = 4.0
PERFECT_SETUP_MAX_CENTER = 30.0

FIB_CUTTING_BONUS = 10

FIB_ZONE_RULES: tuple[Rule, ...] = (
    (operator.lt, 25.0, FibZone.EXTREME_LOW),
    (operator.lt, 40.0, FibZone.LOW),
    (operator.gt, 80.0, FibZone.EXTREME_HIGH),
    (operator.gt, 60.0, FibZone.HIGH),
)

BBWP_RULES: tuple[Rule, ...] = (
    (operator.lt, 20.0, BbwpClassification.EXTREME_LOW),
    (operator.lt, 40.0, BbwpClassification.LOW),
    (operator.lt, 70.0, BbwpClassification.NORMAL),
    (operator.lt, 85.0, BbwpClassification.HIGH),
)

# Added to both buy and sell
COMPRESSION_RULES: tuple[Rule, ...] = (
    (operator.le, 2.0, 40),
    (operator.le, 4.0, 35),
    (operator.le, 6.0, 30),
    (operator.le, 10.0, 20),
    (operator.le, 15.0, 10),
)

# (buy, sell) contributions
CENTER_RULES: tuple[Rule, ...] = (
    (operator.lt, 25.0, (30, 0)),
    (operator.lt, 40.0, (25, 0)),
    (operator.gt, 75.0, (0, 30)),
    (operator.gt, 60.0, (0, 25)),
)

SLOPE_RULES: tuple[Rule, ...] = (
    (operator.gt, 2.0, (20, 0)),
    (operator.gt, 1.0, (15, 0)),
    (operator.gt, 0.5, (10, 0)),
    (operator.gt, 0.0, (5, 0)),
    (operator.lt, -2.0, (0, 20)),
    (operator.lt, -1.0, (0, 15)),
    (operator.lt, -0.5, (0, 10)),
    (operator.lt, 0.0, (0, 5)),
)

# Winning score -> (label tier, strength); same bands for both sides
SIGNAL_BANDS: tuple[Rule, ...] = (
    (operator.ge, 80.0, ("GOD", 5)),
    (operator.ge, 65.0, ("ULTRA", 4)),
    (operator.ge, 50.0, ("STRONG", 3)),
    (operator.ge, 30.0, ("", 2)),
)

NO_CONTRIBUTION = (0, 0)


def first_match(value: float, rules: tuple[Rule, ...], default: T) -> T:
    """Return the result of the first rule whose comparison holds."""
    for compare, boundary, result in rules:
        if compare(value, boundary):
            return result
    return default


def classify_fib_zone(center: float | None) -> FibZone | None:
    if not is_finite(center):
        return None
    return first_match(center, FIB_ZONE_RULES, FibZone.MID)


def classify_bbwp(value: float | None) -> BbwpClassification | None:
    if not is_finite(value):
        return None
    return first_match(value, BBWP_RULES, BbwpClassification.EXTREME_HIGH)


def compression_score(total_range: float | None) -> int:
    if not is_finite(total_range):
        return 0
    return first_match(total_range, COMPRESSION_RULES, 0)


def center_contribution(center: float | None) -> tuple[int, int]:
    if not is_finite(center):
        return NO_CONTRIBUTION
    return first_match(center, CENTER_RULES, NO_CONTRIBUTION)


def slope_contribution(slope: float | None) -> tuple[int, int]:
    """Buy/sell points for the fast line slope. Flat or missing scores nothing."""
    if not is_finite(slope):
        return NO_CONTRIBUTION
    return first_match(slope, SLOPE_RULES, NO_CONTRIBUTION)


def nearest_fib_level(center: float | None) -> float:
    """Snap the center to the closest ladder level; ties go to the lower level."""
    if not is_finite(center):
        return DEFAULT_FIB_LEVEL
    nearest = DEFAULT_FIB_LEVEL
    best = float("inf")
    for level in FIB_LEVELS:
        delta = abs(center - level)
        if delta < best:
            best = delta
            nearest = level
    return nearest


def classify_signal(buy_score: int, sell_score: int) -> tuple[SignalType | None, int | None]:
    """Label the strict winner of buy vs sell.

    Returns (None, None) on a tie or when the winning score is below the
    lowest band.
    """
    if buy_score > sell_score:
        side, score = "BUY", buy_score
    elif sell_score > buy_score:
        side, score = "SELL", sell_score
    else:
        return None, None

    band = first_match(score, SIGNAL_BANDS, None)
    if band is None:
        return None, None

    tier, strength = band
    label = f"{tier}_{side}" if tier else side
    return SignalType(label), strength
