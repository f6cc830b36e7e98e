"""Database connection and table definitions."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

from app.config import get_settings

Base = declarative_base()


class SignalTable(Base):
    """Append-only jewel signal records, one per (symbol, timeframe, timestamp)."""

    __tablename__ = get_settings().signals_table

    id = Column(String(32), primary_key=True)
    event_source = Column(String, nullable=False, default="tradingview")
    symbol = Column(String, nullable=True)
    ticker = Column(String, nullable=True)
    direction = Column(String, nullable=True)
    price = Column(Float, nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    timeframe = Column(String, nullable=False)
    timeframe_minutes = Column(Float, nullable=False)

    ohlc_open = Column(Float, nullable=True)
    ohlc_high = Column(Float, nullable=True)
    ohlc_low = Column(Float, nullable=True)
    ohlc_close = Column(Float, nullable=True)
    ohlc_volume = Column(Float, nullable=True)

    jewel_fast = Column(Float, nullable=True)
    jewel_slow = Column(Float, nullable=True)
    jewel_high = Column(Float, nullable=True)
    jewel_fib = Column(Float, nullable=True)

    bbwp_value = Column(Float, nullable=True)
    bbwp_classification = Column(String, nullable=True)

    gaussian_filter = Column(Float, nullable=True)
    gaussian_price_position = Column(Float, nullable=True)
    gaussian_above_filter = Column(Boolean, nullable=True)

    compression_total_range = Column(Float, nullable=True)
    compression_center = Column(Float, nullable=True)
    compression_fib_zone = Column(String, nullable=True)
    compression_nearest_fib_level = Column(Float, nullable=True)
    compression_fib_cutting = Column(Boolean, nullable=True)
    compression_extreme_compression = Column(Boolean, nullable=True)
    compression_perfect_setup = Column(Boolean, nullable=True)

    slope_fast = Column(Float, nullable=True)
    slope_slow = Column(Float, nullable=True)

    signal_type = Column(String, nullable=True)
    signal_strength = Column(Integer, nullable=True)
    signal_buy_score = Column(Integer, nullable=True)
    signal_sell_score = Column(Integer, nullable=True)

    raw_payload = Column(JSONB, nullable=True)
    received_at = Column(DateTime(timezone=True), server_default=text("NOW()"))

    __table_args__ = (
        Index("idx_signals_symbol_tf_time", "symbol", "timeframe", "timestamp"),
        Index("idx_signals_time", "timestamp"),
    )


class Database:
    """Database connection manager."""

    def __init__(self, database_url: str | None = None):
        settings = get_settings()
        url = database_url or settings.database_url

        # Convert postgresql:// to postgresql+asyncpg://
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)

        # One insert per webhook and three reads per confluence query,
        # so a small pool with pre-ping is enough.
        self.engine = create_async_engine(
            url,
            echo=settings.debug,
            pool_size=10,
            max_overflow=20,
            pool_pre_ping=True,
            pool_recycle=3600,
            pool_timeout=30,
            connect_args={
                "timeout": 10,
                "command_timeout": 30,
            },
        )
        self.session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    async def create_tables(self) -> None:
        """Create all tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get a database session."""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def ping(self) -> bool:
        """Check that the database answers a trivial query."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception:
            return False

    async def close(self) -> None:
        """Close database connection."""
        await self.engine.dispose()


# Global database instance
_db: Database | None = None


def get_database() -> Database:
    """Get the global database instance."""
    global _db
    if _db is None:
        _db = Database()
    return _db


async def init_database() -> Database:
    """Initialize the database and create tables."""
    db = get_database()
    await db.create_tables()
    return db
