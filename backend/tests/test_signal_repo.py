"""Tests for the PostgreSQL signal repository (session mocked)."""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from app.models import SignalRecord
from app.storage.database import SignalTable
from app.storage.signal_repo import SignalRepository
from core.errors import StorageUnavailable

TS = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeDatabase:
    """Stands in for Database, handing out one mocked session."""

    def __init__(self, scalar=None, error: Exception | None = None):
        result = MagicMock()
        result.scalar_one_or_none.return_value = scalar
        self.session_obj = MagicMock()
        self.session_obj.execute = AsyncMock(return_value=result, side_effect=error)

    @asynccontextmanager
    async def session(self):
        yield self.session_obj


def make_record() -> SignalRecord:
    return SignalRecord(
        symbol="BTCUSDT",
        timeframe="15m",
        timeframe_minutes=15,
        timestamp=TS,
        signal_type="ULTRA_BUY",
    )


class TestSignalRepository:
    """Tests for SignalRepository."""

    @pytest.mark.asyncio
    async def test_save_new_row(self):
        record = make_record()
        db = FakeDatabase(scalar=record.id)

        with patch("app.storage.signal_repo.get_database", return_value=db):
            assert await SignalRepository().save(record) is True

        sql = str(db.session_obj.execute.call_args[0][0].compile(dialect=postgresql.dialect()))
        assert "ON CONFLICT (id) DO NOTHING" in sql
        assert "RETURNING" in sql

    @pytest.mark.asyncio
    async def test_save_existing_id(self):
        """A conflicting insert returns no row and reports False."""
        db = FakeDatabase(scalar=None)

        with patch("app.storage.signal_repo.get_database", return_value=db):
            assert await SignalRepository().save(make_record()) is False

    @pytest.mark.asyncio
    async def test_save_driver_error(self):
        db = FakeDatabase(error=OperationalError("INSERT", {}, OSError("connection refused")))

        with patch("app.storage.signal_repo.get_database", return_value=db):
            with pytest.raises(StorageUnavailable) as exc_info:
                await SignalRepository().save(make_record())

        assert isinstance(exc_info.value.__cause__, OperationalError)

    @pytest.mark.asyncio
    async def test_get_missing(self):
        with patch("app.storage.signal_repo.get_database", return_value=FakeDatabase()):
            assert await SignalRepository().get("nope") is None


class TestSignalTable:
    """Column types of the signals table."""

    @pytest.mark.parametrize(
        "column",
        [
            "event_source",
            "symbol",
            "ticker",
            "direction",
            "timeframe",
            "bbwp_classification",
            "compression_fib_zone",
            "signal_type",
        ],
    )
    def test_vendor_text_unbounded(self, column):
        """Vendor labels of any length are stored, not rejected by the database."""
        assert SignalTable.__table__.c[column].type.length is None

