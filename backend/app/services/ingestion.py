"""Webhook ingestion service.

Validates and maps each webhook into a SignalRecord (core.ingestion),
appends it to the store, refreshes the latest-signal cache and notifies
registered callbacks (WebSocket broadcast). Validation errors and storage
failures propagate to the caller unchanged.
"""

import logging
from datetime import datetime
from typing import Any, Awaitable, Callable

from app.models import SignalRecord
from core.ingestion import build_signal_record
from core.storage_protocol import SignalStore

logger = logging.getLogger(__name__)

SignalCallback = Callable[[SignalRecord], Awaitable[None]]
CacheLatestCallback = Callable[[SignalRecord], Awaitable[bool]]
ClearLatestCallback = Callable[[str, str], Awaitable[bool]]


class IngestionService:
    """Turn webhook payloads into persisted signal records."""

    def __init__(
        self,
        store: SignalStore,
        cache_latest: CacheLatestCallback | None = None,
        clear_latest: ClearLatestCallback | None = None,
    ):
        self._store = store
        self._cache_latest = cache_latest
        self._clear_latest = clear_latest
        self._callbacks: list[SignalCallback] = []
        self._perfect_callbacks: list[SignalCallback] = []

    def on_signal(self, callback: SignalCallback) -> None:
        """Register callback for every saved record."""
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def off_signal(self, callback: SignalCallback) -> None:
        """Unregister callback for saved records."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def on_perfect_setup(self, callback: SignalCallback) -> None:
        """Register callback for saved records flagged as perfect setups."""
        if callback not in self._perfect_callbacks:
            self._perfect_callbacks.append(callback)

    async def ingest(
        self,
        payload: Any,
        received_at: datetime | None = None,
    ) -> SignalRecord:
        """Validate, derive, persist and announce one webhook event.

        A replayed event whose ID is already stored is not written,
        cached or announced again; the stored record is returned.

        Raises:
            InvalidPayload: Missing/invalid required fields.
            InvalidTimestamp: Unparseable explicit timestamp.
            StorageUnavailable: The store rejected or failed the write.
        """
        record = build_signal_record(payload, received_at)

        logger.info(
            f"Webhook {record.symbol} {record.timeframe} "
            f"({record.timeframe_minutes:g} min): "
            f"signal={record.signal_type} "
            f"buy={record.signal_buy_score} sell={record.signal_sell_score} "
            f"compression={record.compression_total_range}"
        )

        if not await self._store.save(record):
            # Replay of an already stored bar: the first write stands
            stored = await self._store.get(record.id)
            logger.info(f"Duplicate signal ignored: {record.id}")
            return stored or record

        await self._refresh_cache(record)

        if record.is_perfect_setup:
            logger.warning(
                f"PERFECT SETUP DETECTED: {record.symbol} {record.timeframe} "
                f"range={record.compression_total_range} "
                f"center={record.compression_center}"
            )
            await self._notify(self._perfect_callbacks, record)

        await self._notify(self._callbacks, record)
        logger.info(f"Signal saved: {record.id}")
        return record

    async def _refresh_cache(self, record: SignalRecord) -> None:
        if self._cache_latest is None or not record.symbol:
            return
        if await self._cache_latest(record):
            return
        # A stale cached record must not outlive a failed refresh
        if self._clear_latest is not None:
            await self._clear_latest(record.symbol, record.timeframe)

    async def _notify(self, callbacks: list[SignalCallback], record: SignalRecord) -> None:
        for callback in callbacks:
            try:
                await callback(record)
            except Exception as e:
                logger.error(f"Signal callback error: {e}")
