"""API endpoints."""

from app.api.routes import router, WEBHOOK_PATH
from app.api.websocket import manager, websocket_endpoint, ConnectionManager

__all__ = [
    "router",
    "WEBHOOK_PATH",
    "manager",
    "websocket_endpoint",
    "ConnectionManager",
]
