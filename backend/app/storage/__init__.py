"""Data storage layer."""

from app.storage.database import Database, get_database, init_database
from app.storage.signal_repo import SignalRepository
from app.storage import cache
from app.storage import signal_cache

__all__ = [
    "Database",
    "get_database",
    "init_database",
    "SignalRepository",
    "cache",
    "signal_cache",
]
