"""chordgraph FastAPI application entry point.

Wires together the request throttle, catalog providers, health monitor,
source router and graph session store via dependency injection.  Loads
configuration from ``.env`` and ``config/config.yaml``, configures
structured logging, and exposes the REST API plus the expansion progress
WebSocket.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog
import uvicorn
from fastapi import FastAPI, WebSocket

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import router as api_router
from src.api.websocket import websocket_progress
from src.config.loader import load_config
from src.config.settings import Settings
from src.pipeline.progress_tracker import ProgressTracker
from src.pipeline.session_store import GraphSessionStore
from src.providers.catalog.musicbrainz_api_provider import MusicBrainzAPIProvider
from src.providers.catalog.replica_provider import (
    MusicBrainzReplicaProvider,
    create_replica_engine,
)
from src.services.catalog_router import CatalogRouter
from src.services.graph_builder import GraphBuilder
from src.services.health_monitor import ReplicaHealthMonitor
from src.services.request_throttle import RequestThrottle
from src.utils.logging import configure_logging, get_logger

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()
config = load_config(settings=settings)

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Full DI assembly for the FastAPI application
# ---------------------------------------------------------------------------


def _build_replica(app_config: dict[str, Any]) -> MusicBrainzReplicaProvider | None:
    """Create the replica provider, or ``None`` when no replica URL is set."""
    replica_cfg = app_config["replica"]
    if not replica_cfg.get("url"):
        return None
    engine = create_replica_engine(
        replica_cfg["url"],
        schema=replica_cfg.get("schema") or None,
        pool_size=replica_cfg["pool_size"],
        max_overflow=replica_cfg["max_overflow"],
        pool_timeout=replica_cfg["pool_timeout"],
        connect_timeout=replica_cfg["connect_timeout"],
        statement_timeout=replica_cfg["query_timeout"],
    )
    return MusicBrainzReplicaProvider(
        engine,
        query_timeout=replica_cfg["query_timeout"],
        ping_timeout=replica_cfg["ping_timeout"],
    )


def _build_all(app_settings: Settings, app_config: dict[str, Any]) -> dict[str, Any]:
    """Construct every provider and service instance for the application.

    Returns a flat dict of named components to be stored on ``app.state``.
    """
    upstream_cfg = app_config["upstream"]

    # -- Shared resources --
    http_client = httpx.AsyncClient(timeout=upstream_cfg["timeout"])
    throttle = RequestThrottle(min_interval=app_config["throttle"]["min_interval"])

    # -- Catalog providers --
    api_provider = MusicBrainzAPIProvider(
        app_settings,
        http_client,
        throttle,
        max_attempts=upstream_cfg["max_attempts"],
        retry_backoff=upstream_cfg["retry_backoff"],
        retry_backoff_cap=upstream_cfg["retry_backoff_cap"],
        timeout=upstream_cfg["timeout"],
    )
    replica_provider = _build_replica(app_config)

    # -- Routing --
    health_monitor = ReplicaHealthMonitor(replica_provider, ttl=app_config["health"]["ttl"])
    catalog_router = CatalogRouter(api_provider, health_monitor, replica=replica_provider)

    # -- Graph sessions --
    graph_builder = GraphBuilder()
    progress_tracker = ProgressTracker()
    session_store = GraphSessionStore(
        catalog_router,
        progress_tracker,
        builder=graph_builder,
        max_sessions=app_config["sessions"]["max_sessions"],
        ttl=app_config["sessions"]["ttl"],
        max_nodes=app_config["expansion"]["max_nodes"],
    )

    return {
        "http_client": http_client,
        "throttle": throttle,
        "api_provider": api_provider,
        "replica_provider": replica_provider,
        "health_monitor": health_monitor,
        "catalog_router": catalog_router,
        "graph_builder": graph_builder,
        "progress_tracker": progress_tracker,
        "session_store": session_store,
    }


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise all providers and services on startup, clean up on shutdown."""
    components = _build_all(settings, config)

    for key, value in components.items():
        setattr(application.state, key, value)

    _logger.info(
        "app_startup",
        version=config["app"]["version"],
        environment=settings.app_env,
        replica=settings.replica_kind,
        throttle_interval_s=components["throttle"].min_interval,
    )

    yield

    # -- Shutdown: stop the throttle worker, then release connections --
    await components["throttle"].aclose()
    await components["http_client"].aclose()
    replica: MusicBrainzReplicaProvider | None = components["replica_provider"]
    if replica is not None:
        await replica.close()
    _logger.info("app_shutdown", message="HTTP client and replica pool closed")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="chordgraph API",
        version=config["app"]["version"],
        description=(
            "Explore an artist's social network (band memberships, collaborations, "
            "founders and producers) from the MusicBrainz catalog, served from a "
            "local replica when it is healthy and from the rate-limited public "
            "web service otherwise."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application, allowed_origins=config["api"]["cors_origins"])

    # -- API routes --
    application.include_router(api_router)

    # -- WebSocket --
    @application.websocket("/ws/graph/{session_id}")
    async def ws_graph_progress(websocket: WebSocket, session_id: str) -> None:
        await websocket_progress(websocket, session_id)

    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "src.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
