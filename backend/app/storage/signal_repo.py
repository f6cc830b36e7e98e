"""Signal record repository (PostgreSQL)."""

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError

from app.models import SignalRecord
from app.storage.database import SignalTable, get_database
from core.errors import StorageUnavailable

logger = logging.getLogger(__name__)

_COLUMNS = tuple(c.name for c in SignalTable.__table__.columns)


class SignalRepository:
    """Repository for signal record operations.

    Implements the core SignalStore protocol. Driver and connection errors
    are re-raised as StorageUnavailable; nothing is retried here.
    """

    async def save(self, record: SignalRecord) -> bool:
        """Append a signal record.

        Returns:
            True if inserted, False if a record with the same ID already
            exists (that row is left as is).
        """
        values = record.model_dump(include=set(_COLUMNS))
        if values.get("received_at") is None:
            values.pop("received_at", None)
        try:
            async with get_database().session() as session:
                stmt = (
                    insert(SignalTable)
                    .values(**values)
                    .on_conflict_do_nothing(index_elements=["id"])
                    .returning(SignalTable.id)
                )
                result = await session.execute(stmt)
                inserted_id = result.scalar_one_or_none()
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Signal insert failed for {record.symbol} {record.timeframe}: {e}")
            raise StorageUnavailable("Database insert failed", str(e)) from e
        return inserted_id is not None

    async def get(self, record_id: str) -> SignalRecord | None:
        """Get a signal record by ID."""
        try:
            async with get_database().session() as session:
                result = await session.execute(
                    select(SignalTable).where(SignalTable.id == record_id)
                )
                row = result.scalar_one_or_none()
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Signal lookup failed for {record_id}: {e}")
            raise StorageUnavailable("Database query failed", str(e)) from e

        if row is None:
            return None
        return self._row_to_record(row)

    async def get_latest(
        self,
        symbol: str,
        timeframe: str,
        since: datetime,
    ) -> SignalRecord | None:
        """Get the most recent record for symbol/timeframe at or after since."""
        try:
            async with get_database().session() as session:
                stmt = (
                    select(SignalTable)
                    .where(
                        SignalTable.symbol == symbol,
                        SignalTable.timeframe == timeframe,
                        SignalTable.timestamp >= since,
                    )
                    .order_by(SignalTable.timestamp.desc())
                    .limit(1)
                )
                result = await session.execute(stmt)
                row = result.scalar_one_or_none()
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Latest signal query failed for {symbol} {timeframe}: {e}")
            raise StorageUnavailable("Database query failed", str(e)) from e

        if row is None:
            return None
        return self._row_to_record(row)

    async def get_recent(
        self,
        limit: int = 100,
        symbol: str | None = None,
        timeframe: str | None = None,
    ) -> list[SignalRecord]:
        """Get recent records, newest first."""
        try:
            async with get_database().session() as session:
                stmt = select(SignalTable)
                if symbol:
                    stmt = stmt.where(SignalTable.symbol == symbol)
                if timeframe:
                    stmt = stmt.where(SignalTable.timeframe == timeframe)
                stmt = stmt.order_by(SignalTable.timestamp.desc()).limit(limit)

                result = await session.execute(stmt)
                rows = result.scalars().all()
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Recent signals query failed: {e}")
            raise StorageUnavailable("Database query failed", str(e)) from e

        return [self._row_to_record(row) for row in rows]

    @staticmethod
    def _row_to_record(row: SignalTable) -> SignalRecord:
        """Convert database row to SignalRecord."""
        return SignalRecord(**{name: getattr(row, name) for name in _COLUMNS})
