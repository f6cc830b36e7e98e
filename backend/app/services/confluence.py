"""Confluence query service.

Fans out one latest-record read per timeframe, joins them and hands the
records to the pure scoring in core.confluence. Reads are independent and
run as concurrent tasks. When the read timeout elapses, outstanding reads
are cancelled and their timeframes count as inactive, exactly like a
timeframe with no record in the lookback window. Storage errors propagate.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Sequence

from app.models import ConfluenceResult, SignalRecord
from core.confluence import DEFAULT_TIMEFRAMES, combine
from core.storage_protocol import SignalStore

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK = timedelta(hours=2)

CacheLookupCallback = Callable[[str, str, datetime], Awaitable[SignalRecord | None]]


class ConfluenceService:
    """Compute multi-timeframe confluence for a symbol."""

    def __init__(
        self,
        store: SignalStore,
        cache_lookup: CacheLookupCallback | None = None,
        read_timeout: float | None = None,
    ):
        """
        Args:
            store: Signal store queried for the latest record per timeframe.
            cache_lookup: Optional cache consulted before the store.
            read_timeout: Seconds allowed for the whole fan-out (None = wait).
        """
        self._store = store
        self._cache_lookup = cache_lookup
        self._read_timeout = read_timeout

    async def aggregate(
        self,
        symbol: str,
        timeframes: Sequence[str] | None = None,
        lookback: timedelta = DEFAULT_LOOKBACK,
        now: datetime | None = None,
    ) -> ConfluenceResult:
        """Score the latest record per timeframe within the lookback window.

        Raises:
            StorageUnavailable: A timeframe read failed.
        """
        now = now or datetime.now(timezone.utc)
        since = now - lookback
        # Preserve order, drop duplicates
        labels = list(dict.fromkeys(timeframes or DEFAULT_TIMEFRAMES))

        records = await self._fetch_latest(symbol, labels, since)
        result = combine(symbol, records, now)

        logger.info(
            f"Confluence {symbol}: score={result.confluence_score} "
            f"active={result.active_timeframes}/{len(labels)} "
            f"-> {result.recommendation.value}"
        )
        return result

    async def _fetch_one(
        self,
        symbol: str,
        timeframe: str,
        since: datetime,
    ) -> SignalRecord | None:
        if self._cache_lookup is not None:
            record = await self._cache_lookup(symbol, timeframe, since)
            if record is not None:
                return record
        return await self._store.get_latest(symbol, timeframe, since)

    async def _fetch_latest(
        self,
        symbol: str,
        timeframes: list[str],
        since: datetime,
    ) -> dict[str, SignalRecord | None]:
        if not timeframes:
            return {}

        tasks = {
            tf: asyncio.create_task(self._fetch_one(symbol, tf, since))
            for tf in timeframes
        }
        done, pending = await asyncio.wait(tasks.values(), timeout=self._read_timeout)

        if pending:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            timed_out = [tf for tf, task in tasks.items() if task in pending]
            logger.warning(
                f"Confluence reads for {symbol} timed out after "
                f"{self._read_timeout}s: {', '.join(timed_out)} treated as inactive"
            )

        records: dict[str, SignalRecord | None] = {}
        error: BaseException | None = None
        for tf, task in tasks.items():
            if task not in done:
                records[tf] = None
                continue
            exc = task.exception()
            if exc is not None:
                error = error or exc
                continue
            records[tf] = task.result()

        if error is not None:
            raise error
        return records
