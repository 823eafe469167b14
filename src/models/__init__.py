"""chordgraph domain models — re-exports all public model classes.

Other parts of the codebase can import directly from ``src.models``
(e.g. ``from src.models import Entity``) instead of the submodules:

    - entities.py   — Catalog entities, relationships and their payloads
    - source.py     — Which data source served a call, and replica health
    - graph.py      — The artist social-network graph and grouped views
    - expansion.py  — Expansion session state, progress and reports

If you add a new model class, remember to add it to ``__all__`` too.
"""

from __future__ import annotations

# --- Entity models: artists as the catalog describes them, plus the
# directed relationships between them. ---
from src.models.entities import (
    ActiveSpan,
    Direction,
    Entity,
    EntityKind,
    Period,
    Relationship,
    RelationshipsPayload,
    RelationshipType,
)
# --- Expansion models: depth limits, run state and per-run reports. ---
from src.models.expansion import (
    MAX_DEPTH,
    MIN_DEPTH,
    ExpansionProgress,
    ExpansionReport,
    ExpansionState,
    FetchRecord,
)
# --- Graph models: nodes, edges, and the section view of one artist. ---
from src.models.graph import (
    ArtistGraph,
    GraphEdge,
    GraphNode,
    GroupedItem,
    RelationshipGroup,
)
# --- Source models: provenance and health of the two data sources. ---
from src.models.source import (
    DataSource,
    HealthState,
    HealthStatus,
    SourceResult,
)

__all__ = [
    "ActiveSpan",
    "ArtistGraph",
    "DataSource",
    "Direction",
    "Entity",
    "EntityKind",
    "ExpansionProgress",
    "ExpansionReport",
    "ExpansionState",
    "FetchRecord",
    "GraphEdge",
    "GraphNode",
    "GroupedItem",
    "HealthState",
    "HealthStatus",
    "MAX_DEPTH",
    "MIN_DEPTH",
    "Period",
    "Relationship",
    "RelationshipGroup",
    "RelationshipType",
    "RelationshipsPayload",
    "SourceResult",
]
