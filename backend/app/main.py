"""Main application entry point."""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

# Configure logging FIRST, before any other imports
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)

# Reduce noise from third-party libraries (must be set before importing them)
logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine.Engine").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("asyncio").setLevel(logging.WARNING)

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from app.api import WEBHOOK_PATH, manager, router, websocket_endpoint
from app.config import get_settings
from app.services import ConfluenceService, IngestionService
from app.storage import SignalRepository, cache, get_database, init_database, signal_cache

logger = logging.getLogger(__name__)


def build_services(app: FastAPI) -> None:
    """Wire repository, cache and broadcast into the services on app.state."""
    settings = get_settings()
    repo = SignalRepository()

    ingestion = IngestionService(
        store=repo,
        cache_latest=signal_cache.cache_latest,
        clear_latest=signal_cache.clear_latest,
    )
    ingestion.on_signal(manager.send_signal)
    ingestion.on_perfect_setup(manager.send_perfect_setup)

    app.state.signal_store = repo
    app.state.ingestion_service = ingestion
    app.state.confluence_service = ConfluenceService(
        store=repo,
        cache_lookup=signal_cache.get_latest,
        read_timeout=settings.confluence_read_timeout,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting Jewel Confluence service...")

    settings = get_settings()
    if not settings.webhook_secret:
        logger.warning("WEBHOOK_SECRET is not set - webhooks will be refused")

    db_initialized = False
    try:
        # Initialize database with timeout
        try:
            await asyncio.wait_for(init_database(), timeout=30)
            db_initialized = True
            logger.info("Database initialized")
        except asyncio.TimeoutError:
            raise RuntimeError("Database initialization timed out after 30s")

        # Initialize Redis cache with timeout
        try:
            await asyncio.wait_for(cache.init_cache(), timeout=10)
            if cache.is_cache_available():
                logger.info("Redis cache initialized")
            else:
                logger.warning("Redis cache unavailable - running without caching")
        except asyncio.TimeoutError:
            logger.warning("Redis cache initialization timed out - running without caching")

        build_services(app)

    except Exception as e:
        logger.error(f"Startup failed: {e}")
        if db_initialized:
            try:
                await get_database().close()
            except Exception as cleanup_err:
                logger.warning(f"Error closing database: {cleanup_err}")
        raise  # Re-raise to prevent app from starting in broken state

    yield

    # Shutdown
    logger.info("Shutting down...")

    await cache.close_cache()

    try:
        await get_database().close()
        logger.info("Database connections closed")
    except Exception as e:
        logger.warning(f"Error closing database: {e}")

    logger.info("Shutdown complete")


# Create FastAPI app with orjson for faster JSON serialization
app = FastAPI(
    title="Jewel Confluence",
    description="Jewel oscillator signal ingestion and multi-timeframe confluence",
    version="0.1.0",
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, restrict this
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log each request so webhook and health hits show up in the console."""
    logger.info(f"{request.method} {request.url.path}")
    return await call_next(request)


# Include REST routes
app.include_router(router, prefix="/api")

# WebSocket endpoint
app.websocket("/ws")(websocket_endpoint)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Jewel Confluence",
        "version": "0.1.0",
        "docs": "/docs",
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": await get_database().ping(),
        "cache": await cache.ping(),
        "webhook_path": f"/api{WEBHOOK_PATH}",
        "websocket_clients": manager.connection_count,
    }


def main():
    """Run the application."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
