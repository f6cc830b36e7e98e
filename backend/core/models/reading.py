"""Derivation input and output models."""

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict


class FibZone(str, Enum):
    """Zone of the compression center on the 0-100 oscillator scale."""

    EXTREME_LOW = "Extreme Low"
    LOW = "Low"
    MID = "Mid"
    HIGH = "High"
    EXTREME_HIGH = "Extreme High"


class BbwpClassification(str, Enum):
    """Bollinger Band Width Percentile bucket."""

    EXTREME_LOW = "Extreme Low"
    LOW = "Low"
    NORMAL = "Normal"
    HIGH = "High"
    EXTREME_HIGH = "Extreme High"


class SignalType(str, Enum):
    """Labels produced by the derivation engine."""

    GOD_BUY = "GOD_BUY"
    ULTRA_BUY = "ULTRA_BUY"
    STRONG_BUY = "STRONG_BUY"
    BUY = "BUY"
    GOD_SELL = "GOD_SELL"
    ULTRA_SELL = "ULTRA_SELL"
    STRONG_SELL = "STRONG_SELL"
    SELL = "SELL"


@dataclass(frozen=True, slots=True)
class Reading:
    """One set of oscillator/volatility readings.

    Numeric fields are expected to be finite floats or None; anything else
    is treated as missing by the engine. The prior signal label comes from
    the upstream indicator and is only used when the engine is inconclusive.
    """

    fast: float | None = None
    slow: float | None = None
    high: float | None = None
    fib: float | None = None
    bbwp: float | None = None
    slope_fast: float | None = None
    prior_signal_type: str | None = None
    prior_signal_strength: int | None = None


class DerivedSignal(BaseModel):
    """Classified signal and scores computed from a Reading."""

    model_config = ConfigDict(frozen=True)

    compression_range: float | None = None
    compression_center: float | None = None
    fib_zone: FibZone | None = None
    nearest_fib_level: float = 50.0
    buy_score: int | None = None
    sell_score: int | None = None
    signal_type: str | None = None
    signal_strength: int | None = None
    fib_cutting: bool = False
    bbwp_value: float | None = None
    bbwp_classification: BbwpClassification | None = None
    extreme_compression: bool | None = None
    perfect_setup: bool | None = None

    @property
    def is_scored(self) -> bool:
        """False for the insufficient-data result."""
        return self.buy_score is not None and self.sell_score is not None
