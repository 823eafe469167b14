"""chordgraph API layer — routes, schemas, WebSocket, and middleware."""

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import router
from src.api.schemas import (
    ArtistSearchResponse,
    ErrorResponse,
    GraphSessionResponse,
    HealthResponse,
    RecoveryCheckResponse,
)
from src.api.websocket import websocket_progress

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "configure_cors",
    "router",
    "websocket_progress",
    "ArtistSearchResponse",
    "ErrorResponse",
    "GraphSessionResponse",
    "HealthResponse",
    "RecoveryCheckResponse",
]
