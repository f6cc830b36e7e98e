"""Signal store protocol.

Any storage backend (PostgreSQL repository, in-memory fake in tests) can
implement this protocol to serve ingestion writes and confluence reads.
Implementations raise StorageUnavailable on backend failures.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from core.models.signal import SignalRecord


@runtime_checkable
class SignalStore(Protocol):
    """Protocol that signal storage backends must implement."""

    async def save(self, record: SignalRecord) -> bool:
        """Append a record.

        Returns:
            True if a new row was written, False if the ID already existed
            (the stored row is left untouched).
        """
        ...

    async def get(self, record_id: str) -> SignalRecord | None:
        """Get a stored record by ID."""
        ...

    async def get_latest(
        self,
        symbol: str,
        timeframe: str,
        since: datetime,
    ) -> SignalRecord | None:
        """Get the most recent record with timestamp >= since, if any."""
        ...

    async def get_recent(
        self,
        limit: int = 100,
        symbol: str | None = None,
        timeframe: str | None = None,
    ) -> list[SignalRecord]:
        """Get the newest records, newest first."""
        ...
