"""Data models."""

from core.models import (
    BbwpClassification,
    ConfluenceResult,
    DerivedSignal,
    FibZone,
    Reading,
    Recommendation,
    SignalRecord,
    SignalType,
    SlopeDirection,
    TimeframeConfluence,
)

__all__ = [
    "BbwpClassification",
    "ConfluenceResult",
    "DerivedSignal",
    "FibZone",
    "Reading",
    "Recommendation",
    "SignalRecord",
    "SignalType",
    "SlopeDirection",
    "TimeframeConfluence",
]
