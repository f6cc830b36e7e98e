"""Application configuration."""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_url: str = "postgresql://localhost/jewel_signals"
    signals_table: str = "signals"

    # Redis (latest signal per symbol/timeframe)
    redis_url: str = "redis://localhost:6379/0"
    latest_signal_cache_ttl: int = 86400  # seconds

    # Webhook shared secret; webhooks are refused while empty
    webhook_secret: str = ""

    # Confluence defaults
    confluence_timeframes: list[str] = ["15m", "2h", "4h"]
    confluence_lookback_minutes: int = 120
    confluence_read_timeout: float = 5.0  # seconds for the whole fan-out

    # Server
    host: str = "0.0.0.0"
    port: int = 3001
    debug: bool = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
