"""REST API routes."""

import hmac
import logging
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel

from app.config import Settings, get_settings
from app.models import ConfluenceResult, SignalRecord
from app.services import ConfluenceService, IngestionService
from core.errors import InvalidPayload, InvalidTimestamp, StorageUnavailable
from core.storage_protocol import SignalStore

logger = logging.getLogger(__name__)

router = APIRouter()

WEBHOOK_PATH = "/webhook/tradingview"
SECRET_HEADER = "x-tradingview-secret"


# Response models
class WebhookResponse(BaseModel):
    """Webhook acknowledgement."""

    success: bool
    id: str
    symbol: Optional[str] = None
    timeframe: str
    type: Optional[str] = None


# Dependencies (services are created in the app lifespan)
def get_ingestion_service(request: Request) -> IngestionService:
    return request.app.state.ingestion_service


def get_confluence_service(request: Request) -> ConfluenceService:
    return request.app.state.confluence_service


def get_signal_store(request: Request) -> SignalStore:
    return request.app.state.signal_store


def _provided_secret(request: Request, payload: object) -> str | None:
    header = request.headers.get(SECRET_HEADER)
    if header:
        return header
    if isinstance(payload, dict):
        return payload.get("secret") or payload.get("token")
    return None


@router.post(WEBHOOK_PATH, response_model=WebhookResponse)
async def tradingview_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
    service: IngestionService = Depends(get_ingestion_service),
):
    """Receive an indicator webhook, derive its signal and store it."""
    if not settings.webhook_secret:
        raise HTTPException(
            status_code=500,
            detail={
                "error": "Webhook secret missing",
                "message": "Set WEBHOOK_SECRET to accept requests.",
            },
        )

    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail={"error": "Invalid JSON payload"})

    provided = _provided_secret(request, payload)
    if not isinstance(provided, str) or not hmac.compare_digest(
        provided.encode(), settings.webhook_secret.encode()
    ):
        raise HTTPException(status_code=401, detail={"error": "Unauthorized"})

    try:
        record = await service.ingest(payload)
    except (InvalidPayload, InvalidTimestamp) as e:
        logger.error(f"Rejected webhook: {e.message} ({e.detail})")
        raise HTTPException(
            status_code=400,
            detail={"error": e.message, "message": e.detail},
        )
    except StorageUnavailable as e:
        raise HTTPException(status_code=503, detail={"error": e.message})

    return WebhookResponse(
        success=True,
        id=record.id,
        symbol=record.symbol,
        timeframe=record.timeframe,
        type=record.signal_type,
    )


@router.get("/confluence/{symbol}", response_model=ConfluenceResult)
async def get_confluence(
    symbol: str,
    timeframes: Optional[list[str]] = Query(None, description="Timeframes to combine"),
    lookback_minutes: Optional[int] = Query(
        None, ge=1, le=10080, description="Only records newer than this count"
    ),
    settings: Settings = Depends(get_settings),
    service: ConfluenceService = Depends(get_confluence_service),
):
    """Combine the latest signal per timeframe into one confluence score."""
    minutes = lookback_minutes or settings.confluence_lookback_minutes
    try:
        return await service.aggregate(
            symbol,
            timeframes=timeframes or settings.confluence_timeframes,
            lookback=timedelta(minutes=minutes),
        )
    except StorageUnavailable as e:
        logger.error(f"Confluence failed for {symbol}: {e.detail}")
        raise HTTPException(status_code=503, detail={"error": "Failed to compute confluence"})


@router.get("/signals", response_model=list[SignalRecord])
async def get_signals(
    symbol: Optional[str] = Query(None, description="Filter by symbol"),
    timeframe: Optional[str] = Query(None, description="Filter by timeframe"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum records to return"),
    store: SignalStore = Depends(get_signal_store),
):
    """Get recent signal records, newest first."""
    try:
        return await store.get_recent(limit=limit, symbol=symbol, timeframe=timeframe)
    except StorageUnavailable as e:
        raise HTTPException(status_code=503, detail={"error": e.message})
