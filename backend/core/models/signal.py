"""Persisted signal record model."""

import hashlib
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict


def _generate_record_id(symbol: str | None, timeframe: str, timestamp: datetime) -> str:
    """Generate deterministic record ID from (symbol, timeframe, timestamp).

    A replayed webhook for the same bar maps to the same ID, so the
    append-only insert turns into a no-op instead of a duplicate row.
    """
    ts_str = timestamp.strftime("%Y%m%d%H%M%S%f")
    key = f"{symbol}:{timeframe}:{ts_str}"
    return hashlib.sha256(key.encode()).hexdigest()[:32]


class SignalRecord(BaseModel):
    """One ingested indicator event with its derived signal.

    Field names match the ``signals`` table columns. Records are written
    once and never updated.
    """

    model_config = ConfigDict(frozen=True)

    id: str = ""  # Set in model_post_init
    event_source: str = "tradingview"
    symbol: str | None = None
    ticker: str | None = None
    direction: str | None = None
    price: float | None = None
    timestamp: datetime
    timeframe: str
    timeframe_minutes: float

    # OHLC
    ohlc_open: float | None = None
    ohlc_high: float | None = None
    ohlc_low: float | None = None
    ohlc_close: float | None = None
    ohlc_volume: float | None = None

    # Jewel lines
    jewel_fast: float | None = None
    jewel_slow: float | None = None
    jewel_high: float | None = None
    jewel_fib: float | None = None

    # BBWP
    bbwp_value: float | None = None
    bbwp_classification: str | None = None

    # Gaussian filter
    gaussian_filter: float | None = None
    gaussian_price_position: float | None = None
    gaussian_above_filter: bool | None = None

    # Compression
    compression_total_range: float | None = None
    compression_center: float | None = None
    compression_fib_zone: str | None = None
    compression_nearest_fib_level: float | None = None
    compression_fib_cutting: bool | None = None
    compression_extreme_compression: bool | None = None
    compression_perfect_setup: bool | None = None

    # Slope
    slope_fast: float | None = None
    slope_slow: float | None = None

    # Signal
    signal_type: str | None = None
    signal_strength: int | None = None
    signal_buy_score: int | None = None
    signal_sell_score: int | None = None

    raw_payload: dict[str, Any] | None = None
    received_at: datetime | None = None

    def model_post_init(self, __context) -> None:
        """Generate deterministic ID after model initialization."""
        if not self.id:
            object.__setattr__(
                self,
                "id",
                _generate_record_id(self.symbol, self.timeframe, self.timestamp),
            )

    @property
    def is_perfect_setup(self) -> bool:
        return bool(self.compression_perfect_setup)

    @property
    def is_buy(self) -> bool:
        """True when the signal label contains BUY (GOD_BUY, BUY, ...)."""
        return self.signal_type is not None and "BUY" in self.signal_type
