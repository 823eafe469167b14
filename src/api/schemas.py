"""Pydantic request/response schemas for the chordgraph API.

Defines the public contract for every REST endpoint: artist search and
lookup, data-source health, and graph sessions.  Every catalog response
carries the ``source`` and ``latency_ms`` of the call that produced it so the
UI can show where the data came from.

Convention: request schemas end with "Request", response schemas end with
"Response".
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from src.models.entities import ActiveSpan, Entity, Relationship, RelationshipType
from src.models.expansion import (
    MAX_DEPTH,
    MIN_DEPTH,
    ExpansionProgress,
    ExpansionReport,
    ExpansionState,
    FetchRecord,
)
from src.models.graph import ArtistGraph, RelationshipGroup
from src.models.source import DataSource


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None


# ---------------------------------------------------------------------------
# Artists
# ---------------------------------------------------------------------------


class SourcedResponse(BaseModel):
    """Telemetry shared by every catalog response."""

    source: DataSource
    latency_ms: float


class ArtistSearchResponse(SourcedResponse):
    """Search results for ``GET /artists/search``."""

    query: str
    limit: int
    offset: int
    artists: list[Entity] = Field(default_factory=list)


class ArtistResponse(SourcedResponse):
    artist: Entity


class ArtistRelationshipsResponse(SourcedResponse):
    """``GET /artists/{mbid}?include=relationships``."""

    artist: Entity
    relationships: list[Relationship] = Field(default_factory=list)
    related_artists: list[Entity] = Field(default_factory=list)
    # Relationship sections for the detail view, already sorted.
    sections: list[RelationshipGroup] = Field(default_factory=list)


class LifeSpanResponse(SourcedResponse):
    """``GET /artists/{mbid}?include=life-span``."""

    life_span: ActiveSpan | None = None


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class LocalSourceHealth(BaseModel):
    configured: bool
    available: bool
    last_checked: datetime | None = None


class ApiSourceHealth(BaseModel):
    available: bool = True
    # The public web service is always rate-limited.
    rate_limited: bool = True
    min_interval_s: float
    pending_requests: int = 0


class HealthSources(BaseModel):
    local_db: LocalSourceHealth
    api: ApiSourceHealth


class HealthResponse(BaseModel):
    """Data-source health check response.

    ``status`` is ``"healthy"`` when the local replica serves reads and
    ``"degraded"`` when everything goes through the rate-limited web service.
    """

    status: str
    version: str
    is_local: bool
    sources: HealthSources
    timestamp: datetime


class RecoveryCheckResponse(HealthResponse):
    """``POST /health``: a forced replica re-check."""

    action: str = "recovery_check"
    recovered: bool


# ---------------------------------------------------------------------------
# Graph sessions
# ---------------------------------------------------------------------------


class CreateGraphSessionRequest(BaseModel):
    """Open a graph session on an artist.

    A ``depth`` above 1 starts expanding in the background; follow it over
    the session WebSocket or by polling the session.
    """

    artist_id: str = Field(..., min_length=1)
    depth: int = Field(default=MIN_DEPTH, ge=MIN_DEPTH, le=MAX_DEPTH)


class ExpandDepthRequest(BaseModel):
    depth: int = Field(..., ge=MIN_DEPTH, le=MAX_DEPTH)


class GraphSessionResponse(BaseModel):
    """Snapshot of a graph session, plus the report of the last operation."""

    session_id: str
    root_id: str
    depth: int
    depth_label: str
    state: ExpansionState
    progress: ExpansionProgress
    graph: ArtistGraph
    node_count: int
    edge_count: int
    relationship_types: list[RelationshipType] = Field(default_factory=list)
    report: ExpansionReport | None = None
    # How the root artist itself was fetched, on session creation only.
    root_fetch: FetchRecord | None = None


class DeleteSessionResponse(BaseModel):
    session_id: str
    deleted: bool
