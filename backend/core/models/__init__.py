"""Core data models."""

from core.models.reading import (
    BbwpClassification,
    DerivedSignal,
    FibZone,
    Reading,
    SignalType,
)
from core.models.signal import SignalRecord
from core.models.confluence import (
    ConfluenceResult,
    Recommendation,
    SlopeDirection,
    TimeframeConfluence,
)

__all__ = [
    "BbwpClassification",
    "DerivedSignal",
    "FibZone",
    "Reading",
    "SignalType",
    "SignalRecord",
    "ConfluenceResult",
    "Recommendation",
    "SlopeDirection",
    "TimeframeConfluence",
]
