"""Business services."""

from app.services.confluence import ConfluenceService, DEFAULT_LOOKBACK
from app.services.ingestion import IngestionService

__all__ = [
    "ConfluenceService",
    "DEFAULT_LOOKBACK",
    "IngestionService",
]
