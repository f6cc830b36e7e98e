"""Numeric helpers for loosely typed indicator payloads.

Vendor webhooks deliver numbers as ints, floats, numeric strings, empty
strings or nothing at all. Everything here degrades to ``None`` instead of
raising.
"""

import math
from typing import Any


def to_number(value: Any) -> float | None:
    """Coerce a vendor value to a finite float, or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    elif not isinstance(value, (int, float)):
        return None
    try:
        num = float(value)
    except (ValueError, OverflowError):
        # Unparseable text, or an int beyond float range
        return None
    return num if math.isfinite(num) else None


def to_int(value: Any) -> int | None:
    """Coerce a vendor value to an int (truncating), or None."""
    num = to_number(value)
    return int(num) if num is not None else None


def boolean_or_null(value: Any) -> bool | None:
    """Return value only if it is a real bool."""
    return value if isinstance(value, bool) else None


def is_finite(value: Any) -> bool:
    """True for real (non-bool) numbers that are not NaN or infinite."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def round_half_up(value: float) -> int:
    """Round halves toward +inf, matching JavaScript Math.round."""
    return math.floor(value + 0.5)
