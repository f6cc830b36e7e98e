"""Tests for the ingestion and confluence services."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from app.models import Recommendation, SignalRecord
from app.services import ConfluenceService, IngestionService
from core.errors import InvalidPayload, StorageUnavailable
from core.storage_protocol import SignalStore

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeStore:
    """In-memory append-only signal store."""

    def __init__(self, delays: dict[str, float] | None = None, fail: set[str] | None = None):
        self.records: dict[str, SignalRecord] = {}
        self.delays = delays or {}
        self.fail = fail or set()
        self.latest_calls: list[tuple[str, str]] = []

    async def save(self, record: SignalRecord) -> bool:
        if "save" in self.fail:
            raise StorageUnavailable("Failed to save signal", "connection refused")
        if record.id in self.records:
            return False
        self.records[record.id] = record
        return True

    async def get(self, record_id):
        return self.records.get(record_id)

    async def get_latest(self, symbol, timeframe, since):
        self.latest_calls.append((symbol, timeframe))
        if timeframe in self.delays:
            await asyncio.sleep(self.delays[timeframe])
        if timeframe in self.fail:
            raise StorageUnavailable("Failed to read signals", "timeout")
        matches = [
            r for r in self.records.values()
            if r.symbol == symbol and r.timeframe == timeframe and r.timestamp >= since
        ]
        return max(matches, key=lambda r: r.timestamp, default=None)

    async def get_recent(self, limit=100, symbol=None, timeframe=None):
        records = sorted(self.records.values(), key=lambda r: r.timestamp, reverse=True)
        return records[:limit]


def make_payload(**overrides) -> dict:
    """Helper to create a webhook body."""
    payload = {
        "symbol": "BTCUSDT",
        "timeframe": "15m",
        "timeframeMinutes": 15,
        "timestamp": "2024-05-01T11:55:00Z",
        "jewel": {"fast": 30, "slow": 28, "high": 25, "fib": 27},
        "bbwp": {"value": 15},
    }
    payload.update(overrides)
    return payload


def make_record(timeframe: str = "15m", minutes_ago: float = 5, **fields) -> SignalRecord:
    """Helper to create a stored record."""
    return SignalRecord(
        symbol="BTCUSDT",
        timeframe=timeframe,
        timeframe_minutes=15,
        timestamp=NOW - timedelta(minutes=minutes_ago),
        **fields,
    )


class TestIngestionService:
    """Tests for IngestionService."""

    def test_fake_store_satisfies_protocol(self):
        assert isinstance(FakeStore(), SignalStore)

    @pytest.mark.asyncio
    async def test_ingest_saves_and_notifies(self):
        store = FakeStore()
        service = IngestionService(store)
        callback = AsyncMock()
        service.on_signal(callback)

        record = await service.ingest(make_payload())

        assert store.records[record.id] is record
        assert record.signal_type == "ULTRA_BUY"
        callback.assert_awaited_once_with(record)

    @pytest.mark.asyncio
    async def test_invalid_payload_not_saved(self):
        store = FakeStore()
        service = IngestionService(store)
        callback = AsyncMock()
        service.on_signal(callback)

        with pytest.raises(InvalidPayload):
            await service.ingest(make_payload(timeframe=None))

        assert store.records == {}
        callback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_storage_failure_propagates(self):
        service = IngestionService(FakeStore(fail={"save"}))
        callback = AsyncMock()
        service.on_signal(callback)

        with pytest.raises(StorageUnavailable):
            await service.ingest(make_payload())
        callback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_replay_is_idempotent(self):
        store = FakeStore()
        service = IngestionService(store)

        first = await service.ingest(make_payload())
        second = await service.ingest(make_payload())

        assert first.id == second.id
        assert len(store.records) == 1

    @pytest.mark.asyncio
    async def test_callback_error_does_not_fail_ingest(self):
        store = FakeStore()
        service = IngestionService(store)
        service.on_signal(AsyncMock(side_effect=RuntimeError("socket closed")))
        healthy = AsyncMock()
        service.on_signal(healthy)

        record = await service.ingest(make_payload())

        assert record.id in store.records
        healthy.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_off_signal(self):
        service = IngestionService(FakeStore())
        callback = AsyncMock()
        service.on_signal(callback)
        service.on_signal(callback)
        service.off_signal(callback)

        await service.ingest(make_payload())

        callback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_perfect_setup_callback(self):
        service = IngestionService(FakeStore())
        perfect = AsyncMock()
        service.on_perfect_setup(perfect)

        await service.ingest(make_payload())
        perfect.assert_not_awaited()

        record = await service.ingest(
            make_payload(
                timestamp="2024-05-01T11:40:00Z",
                jewel={"fast": 20, "slow": 21, "high": 22},
            )
        )
        assert record.is_perfect_setup
        perfect.assert_awaited_once_with(record)

    @pytest.mark.asyncio
    async def test_cache_refreshed_after_save(self):
        cache_latest = AsyncMock(return_value=True)
        clear_latest = AsyncMock(return_value=True)
        service = IngestionService(FakeStore(), cache_latest, clear_latest)

        record = await service.ingest(make_payload())

        cache_latest.assert_awaited_once_with(record)
        clear_latest.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_cache_refresh_clears_key(self):
        cache_latest = AsyncMock(return_value=False)
        clear_latest = AsyncMock(return_value=True)
        service = IngestionService(FakeStore(), cache_latest, clear_latest)

        await service.ingest(make_payload())

        clear_latest.assert_awaited_once_with("BTCUSDT", "15m")

    @pytest.mark.asyncio
    async def test_cache_not_touched_on_storage_failure(self):
        cache_latest = AsyncMock(return_value=True)
        service = IngestionService(FakeStore(fail={"save"}), cache_latest)

        with pytest.raises(StorageUnavailable):
            await service.ingest(make_payload())
        cache_latest.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_changed_replay_keeps_first_write(self):
        """A replay of a stored bar with a different body changes nothing."""
        store = FakeStore()
        cached: dict[str, SignalRecord] = {}

        async def cache_latest(record):
            cached[f"{record.symbol}:{record.timeframe}"] = record
            return True

        service = IngestionService(store, cache_latest)
        callback = AsyncMock()
        service.on_signal(callback)

        first = await service.ingest(make_payload())
        replay = await service.ingest(
            make_payload(jewel={"fast": 70, "slow": 72, "high": 75})
        )

        assert first.signal_type == "ULTRA_BUY"
        assert replay.id == first.id
        assert replay.signal_type == "ULTRA_BUY"
        assert store.records[first.id] is first
        assert cached["BTCUSDT:15m"] is first
        callback.assert_awaited_once_with(first)

    @pytest.mark.asyncio
    async def test_record_without_symbol_not_cached(self):
        cache_latest = AsyncMock(return_value=False)
        clear_latest = AsyncMock(return_value=True)
        service = IngestionService(FakeStore(), cache_latest, clear_latest)

        record = await service.ingest(make_payload(symbol=None))

        assert record.symbol is None
        cache_latest.assert_not_awaited()
        clear_latest.assert_not_awaited()


class TestConfluenceService:
    """Tests for ConfluenceService."""

    @staticmethod
    def _store_with_records(**kwargs) -> FakeStore:
        store = FakeStore(**kwargs)
        for record in (
            make_record(
                "15m",
                compression_total_range=3.0,
                compression_center=10.0,
                signal_type="BUY",
            ),
            make_record(
                "2h",
                compression_total_range=2.0,
                compression_center=90.0,
                slope_fast=-1.0,
                signal_type="SELL",
            ),
        ):
            store.records[record.id] = record
        return store

    @pytest.mark.asyncio
    async def test_aggregate(self):
        service = ConfluenceService(self._store_with_records())

        result = await service.aggregate("BTCUSDT", now=NOW)

        assert result.active_timeframes == 2
        assert result.confluence_score == 53
        assert result.recommendation == Recommendation.MODERATE
        assert set(result.timeframes) == {"15m", "2h"}

    @pytest.mark.asyncio
    async def test_lookback_excludes_old_records(self):
        store = FakeStore()
        old = make_record("15m", minutes_ago=180, compression_total_range=1.0)
        store.records[old.id] = old
        service = ConfluenceService(store)

        result = await service.aggregate("BTCUSDT", now=NOW)
        assert result.active_timeframes == 0

        wide = await service.aggregate("BTCUSDT", lookback=timedelta(hours=4), now=NOW)
        assert wide.active_timeframes == 1
        assert wide.timeframes["15m"].age_minutes == 180

    @pytest.mark.asyncio
    async def test_latest_record_wins(self):
        store = FakeStore()
        older = make_record("15m", minutes_ago=30, compression_total_range=1.0)
        newer = make_record("15m", minutes_ago=5, compression_total_range=9.0)
        store.records[older.id] = older
        store.records[newer.id] = newer

        result = await ConfluenceService(store).aggregate("BTCUSDT", now=NOW)

        assert result.timeframes["15m"].record.id == newer.id
        assert result.timeframes["15m"].compressed is False

    @pytest.mark.asyncio
    async def test_duplicate_timeframes_read_once(self):
        store = self._store_with_records()
        service = ConfluenceService(store)

        result = await service.aggregate("BTCUSDT", timeframes=["15m", "15m", "2h"], now=NOW)

        assert store.latest_calls == [("BTCUSDT", "15m"), ("BTCUSDT", "2h")]
        assert result.active_timeframes == 2

    @pytest.mark.asyncio
    async def test_reads_run_concurrently(self):
        store = self._store_with_records(delays={"15m": 0.2, "2h": 0.2, "4h": 0.2})
        service = ConfluenceService(store)

        loop = asyncio.get_running_loop()
        started = loop.time()
        await service.aggregate("BTCUSDT", now=NOW)
        elapsed = loop.time() - started

        assert elapsed < 0.5

    @pytest.mark.asyncio
    async def test_timeout_marks_timeframe_inactive(self):
        store = self._store_with_records(delays={"2h": 5.0})
        service = ConfluenceService(store, read_timeout=0.1)

        result = await service.aggregate("BTCUSDT", now=NOW)

        assert set(result.timeframes) == {"15m"}
        assert result.active_timeframes == 1
        assert result.confluence_score == 60

    @pytest.mark.asyncio
    async def test_storage_error_propagates(self):
        service = ConfluenceService(self._store_with_records(fail={"4h"}))

        with pytest.raises(StorageUnavailable):
            await service.aggregate("BTCUSDT", now=NOW)

    @pytest.mark.asyncio
    async def test_cache_hit_skips_store(self):
        store = FakeStore()
        cached = make_record("15m", compression_total_range=3.0)
        cache_lookup = AsyncMock(side_effect=lambda s, tf, since: cached if tf == "15m" else None)
        service = ConfluenceService(store, cache_lookup=cache_lookup)

        result = await service.aggregate("BTCUSDT", now=NOW)

        assert result.timeframes["15m"].record.id == cached.id
        assert ("BTCUSDT", "15m") not in store.latest_calls
        assert ("BTCUSDT", "2h") in store.latest_calls
        cache_lookup.assert_any_await("BTCUSDT", "15m", NOW - timedelta(hours=2))

    @pytest.mark.asyncio
    async def test_empty_timeframes_use_defaults(self):
        store = FakeStore()
        await ConfluenceService(store).aggregate("ETHUSDT", timeframes=[], now=NOW)

        assert [tf for _, tf in store.latest_calls] == ["15m", "2h", "4h"]
