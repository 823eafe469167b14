"""FastAPI API routes for chordgraph.

Provides REST endpoints for artist search and lookup, data-source health,
and graph sessions.  Service dependencies are resolved from ``app.state``
via FastAPI's ``Depends`` using the ``Annotated`` pattern.

    Endpoint                                         Method  Description
    ──────────────────────────────────────────────────────────────────────
    /api/v1/artists/search                           GET     Search artists
    /api/v1/artists/{mbid}                           GET     Artist, relationships or life span
    /api/v1/health                                   GET     Data-source health
    /api/v1/health                                   POST    Forced replica recovery check
    /api/v1/graph/sessions                           POST    Open a graph session
    /api/v1/graph/sessions/{sid}                     GET     Session snapshot
    /api/v1/graph/sessions/{sid}/depth               POST    Re-expand to a depth
    /api/v1/graph/sessions/{sid}/nodes/{nid}/expand  POST    Expand one node
    /api/v1/graph/sessions/{sid}/reset               POST    Back to the depth-1 graph
    /api/v1/graph/sessions/{sid}                     DELETE  Drop the session

Catalog and graph errors are raised as ``ChordGraphError`` subclasses and
turned into JSON error bodies by
:class:`~src.api.middleware.ErrorHandlingMiddleware`.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request

from src.api.schemas import (
    ApiSourceHealth,
    ArtistRelationshipsResponse,
    ArtistResponse,
    ArtistSearchResponse,
    CreateGraphSessionRequest,
    DeleteSessionResponse,
    ErrorResponse,
    ExpandDepthRequest,
    GraphSessionResponse,
    HealthResponse,
    HealthSources,
    LifeSpanResponse,
    LocalSourceHealth,
    RecoveryCheckResponse,
)
from src.models.expansion import (
    EXPANSION_DEPTH_LABELS,
    MIN_DEPTH,
    ExpansionReport,
    FetchRecord,
)
from src.pipeline.session_store import GraphSessionStore
from src.services.catalog_router import CatalogRouter
from src.services.graph_builder import GraphBuilder
from src.services.graph_expansion import GraphExpansionEngine
from src.services.health_monitor import ReplicaHealthMonitor
from src.services.request_throttle import RequestThrottle
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")

_MBID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)
_MIN_QUERY_LENGTH = 2


# ---------------------------------------------------------------------------
# Dependency injection helpers — resolve singletons from app.state
# ---------------------------------------------------------------------------


def _get_catalog_router(request: Request) -> CatalogRouter:
    return request.app.state.catalog_router


def _get_health_monitor(request: Request) -> ReplicaHealthMonitor:
    return request.app.state.health_monitor


def _get_throttle(request: Request) -> RequestThrottle:
    return request.app.state.throttle


def _get_session_store(request: Request) -> GraphSessionStore:
    return request.app.state.session_store


def _get_graph_builder(request: Request) -> GraphBuilder:
    return request.app.state.graph_builder


CatalogRouterDep = Annotated[CatalogRouter, Depends(_get_catalog_router)]
HealthMonitorDep = Annotated[ReplicaHealthMonitor, Depends(_get_health_monitor)]
ThrottleDep = Annotated[RequestThrottle, Depends(_get_throttle)]
SessionStoreDep = Annotated[GraphSessionStore, Depends(_get_session_store)]
GraphBuilderDep = Annotated[GraphBuilder, Depends(_get_graph_builder)]


# ---------------------------------------------------------------------------
# Artists
# ---------------------------------------------------------------------------


@router.get(
    "/artists/search",
    response_model=ArtistSearchResponse,
    responses={400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
    summary="Search artists by name",
)
async def search_artists(
    catalog: CatalogRouterDep,
    q: str = Query(default=""),
    limit: int = Query(default=25, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> ArtistSearchResponse:
    query = q.strip()
    if len(query) < _MIN_QUERY_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"Search query must be at least {_MIN_QUERY_LENGTH} characters",
        )

    result = await catalog.search(query, limit=limit, offset=offset)
    return ArtistSearchResponse(
        query=query,
        limit=limit,
        offset=offset,
        artists=result.data,
        source=result.source,
        latency_ms=result.latency_ms,
    )


@router.get(
    "/artists/{mbid}",
    response_model=ArtistResponse | ArtistRelationshipsResponse | LifeSpanResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
    summary="Fetch an artist, its relationships or its life span",
)
async def get_artist(
    mbid: str,
    catalog: CatalogRouterDep,
    builder: GraphBuilderDep,
    include: str | None = Query(default=None),
) -> ArtistResponse | ArtistRelationshipsResponse | LifeSpanResponse:
    """Look up one artist by MusicBrainz id.

    ``include=relationships`` returns the artist's social connections and
    ``include=life-span`` only its begin/end dates.
    """
    if not _MBID_RE.match(mbid):
        raise HTTPException(status_code=400, detail="Invalid MBID format. Expected UUID.")

    if include == "relationships":
        rel_result = await catalog.fetch_relationships(mbid)
        if rel_result.data is None:
            raise HTTPException(status_code=404, detail="Artist not found")
        payload = rel_result.data
        return ArtistRelationshipsResponse(
            artist=payload.entity,
            relationships=payload.relationships,
            related_artists=payload.related_entities,
            sections=builder.group_relationships(payload),
            source=rel_result.source,
            latency_ms=rel_result.latency_ms,
        )

    if include == "life-span":
        span_result = await catalog.fetch_active_span(mbid)
        return LifeSpanResponse(
            life_span=span_result.data,
            source=span_result.source,
            latency_ms=span_result.latency_ms,
        )

    result = await catalog.fetch_entity(mbid)
    if result.data is None:
        raise HTTPException(status_code=404, detail="Artist not found")
    return ArtistResponse(artist=result.data, source=result.source, latency_ms=result.latency_ms)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


async def _build_health(
    request: Request,
    catalog: CatalogRouter,
    health: ReplicaHealthMonitor,
    throttle: RequestThrottle,
) -> HealthResponse:
    status = await catalog.get_health_status()
    return HealthResponse(
        status="healthy" if status.replica_available else "degraded",
        version=request.app.version,
        is_local=status.replica_available,
        sources=HealthSources(
            local_db=LocalSourceHealth(
                configured=health.has_replica,
                available=status.replica_available,
                last_checked=status.last_checked_at,
            ),
            api=ApiSourceHealth(
                available=status.api_available,
                min_interval_s=throttle.min_interval,
                pending_requests=throttle.pending,
            ),
        ),
        timestamp=datetime.now(timezone.utc),
    )


@router.get("/health", response_model=HealthResponse, summary="Data-source health check")
async def health_check(
    request: Request,
    catalog: CatalogRouterDep,
    health: HealthMonitorDep,
    throttle: ThrottleDep,
) -> HealthResponse:
    return await _build_health(request, catalog, health, throttle)


@router.post(
    "/health",
    response_model=RecoveryCheckResponse,
    summary="Force a replica recovery check",
)
async def recovery_check(
    request: Request,
    catalog: CatalogRouterDep,
    health: HealthMonitorDep,
    throttle: ThrottleDep,
) -> RecoveryCheckResponse:
    """Re-probe the replica now, bypassing the cached verdict.

    Only the replica is contacted; the web service throttle is untouched.
    """
    recovered = await catalog.force_health_recheck()
    response = await _build_health(request, catalog, health, throttle)
    _logger.info("recovery_check", recovered=recovered)
    return RecoveryCheckResponse(**response.model_dump(), recovered=recovered)


# ---------------------------------------------------------------------------
# Graph sessions
# ---------------------------------------------------------------------------


def _session_response(
    engine: GraphExpansionEngine,
    report: ExpansionReport | None = None,
    root_fetch: FetchRecord | None = None,
) -> GraphSessionResponse:
    graph = engine.graph
    return GraphSessionResponse(
        session_id=engine.session_id,
        root_id=engine.root_id,
        depth=engine.depth,
        depth_label=EXPANSION_DEPTH_LABELS.get(engine.depth, ""),
        state=engine.state,
        progress=engine.progress,
        graph=graph,
        node_count=graph.node_count,
        edge_count=graph.edge_count,
        relationship_types=engine.available_relationship_types,
        report=report,
        root_fetch=root_fetch,
    )


def _require_session(store: GraphSessionStore, session_id: str) -> GraphExpansionEngine:
    engine = store.get(session_id)
    if engine is None:
        raise HTTPException(status_code=404, detail=f"Graph session '{session_id}' not found")
    return engine


@router.post(
    "/graph/sessions",
    response_model=GraphSessionResponse,
    status_code=201,
    responses={404: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
    summary="Open a graph session on an artist",
)
async def create_graph_session(
    body: CreateGraphSessionRequest, store: SessionStoreDep
) -> GraphSessionResponse:
    if not _MBID_RE.match(body.artist_id):
        raise HTTPException(status_code=400, detail="Invalid MBID format. Expected UUID.")

    created = await store.create(body.artist_id)
    if created is None:
        raise HTTPException(status_code=404, detail="Artist not found")
    engine, root_fetch = created

    # Answer with the depth-1 graph; deeper levels fill in behind it.
    if body.depth > MIN_DEPTH:
        engine.start_expansion(body.depth)
    return _session_response(engine, root_fetch=root_fetch)


@router.get(
    "/graph/sessions/{session_id}",
    response_model=GraphSessionResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Current graph of a session",
)
async def get_graph_session(session_id: str, store: SessionStoreDep) -> GraphSessionResponse:
    engine = _require_session(store, session_id)
    return _session_response(engine, report=engine.last_report)


@router.post(
    "/graph/sessions/{session_id}/depth",
    response_model=GraphSessionResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Re-expand a session's graph to a depth",
)
async def expand_graph_session(
    session_id: str, body: ExpandDepthRequest, store: SessionStoreDep
) -> GraphSessionResponse:
    engine = _require_session(store, session_id)
    report = await engine.expand_to_depth(body.depth)
    return _session_response(engine, report=report)


@router.post(
    "/graph/sessions/{session_id}/nodes/{node_id}/expand",
    response_model=GraphSessionResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Expand a single node",
)
async def expand_graph_node(
    session_id: str, node_id: str, store: SessionStoreDep
) -> GraphSessionResponse:
    engine = _require_session(store, session_id)
    report = await engine.expand_node(node_id)
    return _session_response(engine, report=report)


@router.post(
    "/graph/sessions/{session_id}/reset",
    response_model=GraphSessionResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Reset a session to its depth-1 graph",
)
async def reset_graph_session(session_id: str, store: SessionStoreDep) -> GraphSessionResponse:
    engine = _require_session(store, session_id)
    engine.reset()
    return _session_response(engine)


@router.delete(
    "/graph/sessions/{session_id}",
    response_model=DeleteSessionResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Drop a graph session",
)
async def delete_graph_session(session_id: str, store: SessionStoreDep) -> DeleteSessionResponse:
    if not store.delete(session_id):
        raise HTTPException(status_code=404, detail=f"Graph session '{session_id}' not found")
    return DeleteSessionResponse(session_id=session_id, deleted=True)
