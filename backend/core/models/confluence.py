"""Multi-timeframe confluence models."""

from enum import Enum

from pydantic import BaseModel, Field, computed_field

from core.models.signal import SignalRecord


class SlopeDirection(str, Enum):
    """Direction of the fast jewel line slope."""

    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class Recommendation(str, Enum):
    """Confluence recommendation tier."""

    STRONG_BUY = "STRONG BUY CONFLUENCE"
    MODERATE = "MODERATE CONFLUENCE"
    WEAK = "WEAK CONFLUENCE"


class TimeframeConfluence(BaseModel):
    """Flags and score contribution of the latest record on one timeframe."""

    record: SignalRecord
    compressed: bool
    extreme_zone: bool
    slope_direction: SlopeDirection
    age_minutes: int
    score: int

    @computed_field
    @property
    def age(self) -> str:
        """Display string, e.g. '12 min ago'."""
        return f"{self.age_minutes} min ago"


class ConfluenceResult(BaseModel):
    """Fused score across timeframes. Computed per query, never stored."""

    symbol: str
    timeframes: dict[str, TimeframeConfluence] = Field(default_factory=dict)
    confluence_score: int = 0
    active_timeframes: int = 0
    recommendation: Recommendation = Recommendation.WEAK
