"""Webhook event validation and signal record mapping.

Inbound events are arbitrary vendor JSON. They are parsed into typed
optional-field models where every loose numeric value is coerced with
``to_number`` (garbage becomes None), then validated for the few fields a
record cannot exist without:

- ``timeframe``: non-empty label
- ``timeframeMinutes``: non-zero finite number
- ``timestamp``: optional; ISO-8601 string or unix epoch number

The derived signal is merged with the pass-through raw fields into one
SignalRecord ready to be written.

This module is pure business logic with no I/O dependencies.
"""

from datetime import datetime, timezone
from typing import Annotated, Any

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
)

from core.errors import InvalidPayload, InvalidTimestamp
from core.jewel import derive
from core.models import DerivedSignal, Reading, SignalRecord
from core.numeric import boolean_or_null, to_int, to_number

DEFAULT_EVENT_SOURCE = "tradingview"

# Never persisted with the raw payload
CREDENTIAL_KEYS = frozenset({"secret", "token"})


def _to_text(value: Any) -> str | None:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = value if isinstance(value, str) else str(value)
    return text or None


LooseFloat = Annotated[float | None, BeforeValidator(to_number)]
LooseInt = Annotated[int | None, BeforeValidator(to_int)]
LooseBool = Annotated[bool | None, BeforeValidator(boolean_or_null)]
LooseStr = Annotated[str | None, BeforeValidator(_to_text)]


class _Section(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class JewelSection(_Section):
    fast: LooseFloat = None
    slow: LooseFloat = None
    high: LooseFloat = None
    fib: LooseFloat = None


class BbwpSection(_Section):
    value: LooseFloat = None
    classification: LooseStr = None


class SlopeSection(_Section):
    fast: LooseFloat = None
    slow: LooseFloat = None


class SignalSection(_Section):
    type: LooseStr = None
    strength: LooseInt = None
    buy_score: LooseInt = Field(None, alias="buyScore")
    sell_score: LooseInt = Field(None, alias="sellScore")


class OhlcSection(_Section):
    open: LooseFloat = None
    high: LooseFloat = None
    low: LooseFloat = None
    close: LooseFloat = None
    volume: LooseFloat = None


class GaussianSection(_Section):
    filter: LooseFloat = None
    price_position: LooseFloat = Field(None, alias="pricePosition")
    above_filter: LooseBool = Field(None, alias="aboveFilter")


class CompressionSection(_Section):
    """Compression values pre-computed by the indicator, used as fallbacks."""

    total_range: LooseFloat = Field(None, alias="totalRange")
    center: LooseFloat = None
    fib_zone: LooseStr = Field(None, alias="fibZone")
    nearest_fib_level: LooseFloat = Field(None, alias="nearestFibLevel")
    fib_cutting: LooseBool = Field(None, alias="fibCutting")
    extreme_compression: LooseBool = Field(None, alias="extremeCompression")
    perfect_setup: LooseBool = Field(None, alias="perfectSetup")


class WebhookEvent(BaseModel):
    """Indicator webhook payload. Every section is optional."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    event_source: LooseStr = None
    symbol: LooseStr = None
    ticker: LooseStr = None
    direction: LooseStr = None
    price: LooseFloat = None
    timeframe: LooseStr = None
    # Validated by build_signal_record so the error can say what is wrong
    timeframe_minutes: Any = Field(None, alias="timeframeMinutes")
    timestamp: Any = None

    ohlc: OhlcSection | None = None
    jewel: JewelSection | None = None
    bbwp: BbwpSection | None = None
    gaussian: GaussianSection | None = None
    slope: SlopeSection | None = None
    signal: SignalSection | None = None
    compression: CompressionSection | None = None


_datetime_adapter = TypeAdapter(datetime)


def parse_event(payload: Any) -> WebhookEvent:
    """Parse a decoded JSON body into a WebhookEvent."""
    if not isinstance(payload, dict):
        raise InvalidPayload("Invalid JSON payload", "Body must be a JSON object.")
    try:
        return WebhookEvent.model_validate(payload)
    except ValidationError as e:
        raise InvalidPayload("Invalid JSON payload", str(e)) from e


def validate_timeframe(event: WebhookEvent) -> float:
    """Check the timeframe fields and return timeframe minutes."""
    if not event.timeframe or not event.timeframe_minutes:
        raise InvalidPayload(
            "Missing timeframe",
            "Include timeframe and timeframeMinutes in the webhook payload.",
        )
    minutes = to_number(event.timeframe_minutes)
    if minutes is None:
        raise InvalidPayload(
            "Invalid timeframeMinutes",
            "timeframeMinutes must be a number of minutes.",
        )
    return minutes


def parse_timestamp(value: Any, default: datetime) -> datetime:
    """Parse an event timestamp; empty values fall back to ``default``.

    Accepts ISO-8601 strings and unix epoch numbers (seconds or
    milliseconds). Naive values are taken as UTC.
    """
    if value is None or value == "" or value == 0:
        return default
    if isinstance(value, bool):
        raise InvalidTimestamp(
            "Invalid timestamp",
            "timestamp must be a valid date or unix time.",
        )
    try:
        parsed = _datetime_adapter.validate_python(value)
    except ValidationError as e:
        raise InvalidTimestamp(
            "Invalid timestamp",
            "timestamp must be a valid date or unix time.",
        ) from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def reading_from_event(event: WebhookEvent) -> Reading:
    jewel = event.jewel or JewelSection()
    signal = event.signal or SignalSection()
    return Reading(
        fast=jewel.fast,
        slow=jewel.slow,
        high=jewel.high,
        fib=jewel.fib,
        bbwp=event.bbwp.value if event.bbwp else None,
        slope_fast=event.slope.fast if event.slope else None,
        prior_signal_type=signal.type,
        prior_signal_strength=signal.strength,
    )


def _first(*values):
    """First value that is not None."""
    for value in values:
        if value is not None:
            return value
    return None


def strip_credentials(payload: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in payload.items() if k not in CREDENTIAL_KEYS}


def to_signal_record(
    event: WebhookEvent,
    derived: DerivedSignal,
    *,
    timestamp: datetime,
    timeframe_minutes: float,
    received_at: datetime,
    raw_payload: dict[str, Any] | None = None,
) -> SignalRecord:
    """Merge a derived signal with the event's pass-through fields."""
    ohlc = event.ohlc or OhlcSection()
    jewel = event.jewel or JewelSection()
    bbwp = event.bbwp or BbwpSection()
    gaussian = event.gaussian or GaussianSection()
    slope = event.slope or SlopeSection()
    signal = event.signal or SignalSection()
    compression = event.compression or CompressionSection()

    # Without the three lines the engine's fib fields are defaults only
    if derived.is_scored:
        nearest_fib = derived.nearest_fib_level
        fib_cutting = derived.fib_cutting
    else:
        nearest_fib = _first(compression.nearest_fib_level, derived.nearest_fib_level)
        fib_cutting = _first(compression.fib_cutting, derived.fib_cutting)

    return SignalRecord(
        event_source=event.event_source or DEFAULT_EVENT_SOURCE,
        symbol=event.symbol,
        ticker=event.ticker or event.symbol,
        direction=derived.signal_type or event.direction or signal.type,
        price=event.price,
        timestamp=timestamp,
        timeframe=event.timeframe,
        timeframe_minutes=timeframe_minutes,
        ohlc_open=ohlc.open,
        ohlc_high=ohlc.high,
        ohlc_low=ohlc.low,
        ohlc_close=ohlc.close,
        ohlc_volume=ohlc.volume,
        jewel_fast=jewel.fast,
        jewel_slow=jewel.slow,
        jewel_high=jewel.high,
        jewel_fib=jewel.fib,
        bbwp_value=_first(derived.bbwp_value, bbwp.value),
        bbwp_classification=(
            derived.bbwp_classification.value
            if derived.bbwp_classification
            else bbwp.classification
        ),
        gaussian_filter=gaussian.filter,
        gaussian_price_position=gaussian.price_position,
        gaussian_above_filter=gaussian.above_filter,
        compression_total_range=_first(derived.compression_range, compression.total_range),
        compression_center=_first(derived.compression_center, compression.center),
        compression_fib_zone=derived.fib_zone.value if derived.fib_zone else compression.fib_zone,
        compression_nearest_fib_level=nearest_fib,
        compression_fib_cutting=fib_cutting,
        compression_extreme_compression=_first(
            derived.extreme_compression, compression.extreme_compression
        ),
        compression_perfect_setup=_first(derived.perfect_setup, compression.perfect_setup),
        slope_fast=slope.fast,
        slope_slow=slope.slow,
        signal_type=derived.signal_type or signal.type or event.direction,
        signal_strength=_first(derived.signal_strength, signal.strength),
        signal_buy_score=_first(derived.buy_score, signal.buy_score),
        signal_sell_score=_first(derived.sell_score, signal.sell_score),
        raw_payload=raw_payload,
        received_at=received_at,
    )


def build_signal_record(
    payload: Any,
    received_at: datetime | None = None,
) -> SignalRecord:
    """Validate a webhook body and turn it into a SignalRecord.

    Args:
        payload: Decoded JSON body.
        received_at: Processing time; also the timestamp when the event
            has none. Defaults to UTC now.

    Returns:
        SignalRecord ready for the store.

    Raises:
        InvalidPayload: Body is not an object or lacks timeframe fields.
        InvalidTimestamp: Explicit timestamp cannot be parsed.
    """
    received_at = received_at or datetime.now(timezone.utc)

    event = parse_event(payload)
    timeframe_minutes = validate_timeframe(event)
    timestamp = parse_timestamp(event.timestamp, default=received_at)

    derived = derive(reading_from_event(event))

    return to_signal_record(
        event,
        derived,
        timestamp=timestamp,
        timeframe_minutes=timeframe_minutes,
        received_at=received_at,
        raw_payload=strip_credentials(payload),
    )
