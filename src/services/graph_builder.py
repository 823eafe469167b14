"""Graph builder: one relationships payload in, a typed node/edge graph out.

Converts the ``(entity, relationships, related_entities)`` answer of a
catalog fetch into an :class:`~src.models.graph.ArtistGraph` centred on the
queried entity, deriving the membership details the graph displays:

    - founding-member flags, anchored on the earliest known membership year
    - tenure strings per relationship ("1960–1970", "1962–present")
    - up to three instrument/role tags per related artist

The builder is pure: it never fetches anything and never mutates its input.
Merging the result into a larger graph is the expansion engine's job.

Design pattern: Service (stateless).
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import structlog

from src.models.entities import (
    Entity,
    Relationship,
    RelationshipType,
    RelationshipsPayload,
)
from src.models.graph import (
    ArtistGraph,
    GraphEdge,
    GraphNode,
    GroupedItem,
    RelationshipGroup,
    relationship_label,
)
from src.utils.partial_dates import parse_year

logger = structlog.get_logger(logger_name=__name__)

MAX_INSTRUMENTS = 3

# Attribute substrings describing membership status rather than a role.
_ADMIN_ATTRIBUTE_MARKERS = ("founding", "original", "current", "past", "minor")

# Display order of relationship sections in the artist detail view.
_SECTION_ORDER: tuple[RelationshipType, ...] = (
    RelationshipType.MEMBER_OF,
    RelationshipType.FOUNDER_OF,
    RelationshipType.COLLABORATION,
    RelationshipType.SIDE_PROJECT,
    RelationshipType.TOURING_MEMBER,
    RelationshipType.PRODUCER,
    RelationshipType.INFLUENCED_BY,
    RelationshipType.SAME_LABEL,
    RelationshipType.SAME_SCENE,
)

_UNKNOWN_YEAR = 9999


# ---------------------------------------------------------------------------
# Derivation helpers
# ---------------------------------------------------------------------------


def format_tenure(begin: str | None, end: str | None) -> str:
    """Render a membership period as a display string.

    >>> format_tenure("1960", "1970")
    '1960–1970'
    >>> format_tenure("1960-05", None)
    '1960–present'
    >>> format_tenure("1960", "1960-12-01")
    '1960'
    >>> format_tenure(None, "1970")
    ''
    """
    begin_year = parse_year(begin)
    if begin_year is None:
        return ""
    end_year = parse_year(end)
    if end_year is None:
        return f"{begin_year}–present"
    if end_year == begin_year:
        return str(begin_year)
    return f"{begin_year}–{end_year}"


def extract_instruments(attributes: Iterable[str]) -> list[str]:
    """Keep role/instrument tags, dropping status tags like "original"."""
    instruments: list[str] = []
    for attribute in attributes:
        lowered = attribute.lower()
        if any(marker in lowered for marker in _ADMIN_ATTRIBUTE_MARKERS):
            continue
        if attribute not in instruments:
            instruments.append(attribute)
        if len(instruments) == MAX_INSTRUMENTS:
            break
    return instruments


def earliest_member_year(root: Entity, relationships: Iterable[Relationship]) -> int | None:
    """Earliest of the root's own begin year and every membership begin year.

    Only ``member_of`` relationships touching *root* count.
    """
    years: list[int] = []
    if root.active_span is not None:
        root_year = parse_year(root.active_span.begin)
        if root_year is not None:
            years.append(root_year)
    for rel in relationships:
        if rel.type is not RelationshipType.MEMBER_OF or rel.other_end(root.id) is None:
            continue
        year = parse_year(rel.period.begin)
        if year is not None:
            years.append(year)
    return min(years) if years else None


def _has_founder_attribute(rel: Relationship) -> bool:
    for attribute in rel.attributes:
        lowered = attribute.lower()
        if "found" in lowered or lowered == "original":
            return True
    return False


def is_founding_relationship(rel: Relationship, earliest_year: int | None) -> bool:
    """Whether *rel* marks its member as a founder.

    A member whose join year is unknown is only founding when the catalog
    says so explicitly.
    """
    if rel.type is RelationshipType.FOUNDER_OF:
        return True
    if rel.type is not RelationshipType.MEMBER_OF:
        return False
    if _has_founder_attribute(rel):
        return True
    joined = parse_year(rel.period.begin)
    return joined is not None and earliest_year is not None and joined == earliest_year


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


class GraphBuilder:
    """Builds depth-1 graphs and relationship sections from catalog payloads."""

    def build(self, payload: RelationshipsPayload) -> ArtistGraph:
        """Build the graph of *payload*'s entity and its direct connections.

        The root node is marked ``is_root`` and ``is_loaded``.  Relationships
        pointing at an entity missing from the payload are skipped.
        """
        root = payload.entity
        related = self._related_by_id(payload)
        links = self._links_to_root(root, payload.relationships)
        earliest = earliest_member_year(root, payload.relationships)

        nodes = [GraphNode(entity=root, is_loaded=True, is_root=True)]
        for entity in related.values():
            entity_links = links.get(entity.id, [])
            nodes.append(
                GraphNode(
                    entity=entity,
                    is_founding_member=any(
                        is_founding_relationship(rel, earliest) for rel in entity_links
                    ),
                    instruments=extract_instruments(
                        attr for rel in entity_links for attr in rel.attributes
                    ),
                )
            )

        known_ids = {root.id, *related}
        edges: list[GraphEdge] = []
        skipped = 0
        for rel in payload.relationships:
            if rel.source_id not in known_ids or rel.target_id not in known_ids:
                skipped += 1
                continue
            edges.append(
                GraphEdge(
                    id=rel.id,
                    source_id=rel.source_id,
                    target_id=rel.target_id,
                    type=rel.type,
                    tenure=format_tenure(rel.period.begin, rel.period.end),
                )
            )

        graph = ArtistGraph(nodes=nodes, edges=edges)
        logger.debug(
            "graph_built",
            root_id=root.id,
            node_count=graph.node_count,
            edge_count=graph.edge_count,
            skipped_relationships=skipped,
        )
        return graph

    def build_from_raw(self, raw: dict[str, Any]) -> ArtistGraph:
        """Validate an untyped payload dict, then :meth:`build` it."""
        return self.build(RelationshipsPayload.model_validate(raw))

    def group_relationships(self, payload: RelationshipsPayload) -> list[RelationshipGroup]:
        """Relationship sections for the artist detail view.

        Within a section: founders first, then current members, then by
        join year.  A relationship without its own dates falls back to the
        related artist's active span.
        """
        root = payload.entity
        related = self._related_by_id(payload)
        earliest = earliest_member_year(root, payload.relationships)

        grouped: dict[RelationshipType, list[GroupedItem]] = {}
        for rel in payload.relationships:
            other_id = rel.other_end(root.id)
            entity = related.get(other_id) if other_id is not None else None
            if entity is None:
                continue

            span = entity.active_span
            begin = rel.period.begin or (span.begin if span else None)
            end = rel.period.end or (span.end if span else None)
            begin_year = parse_year(begin)

            grouped.setdefault(rel.type, []).append(
                GroupedItem(
                    relationship_id=rel.id,
                    entity=entity,
                    is_founding_member=is_founding_relationship(rel, earliest),
                    is_current=end is None and not rel.period.ended,
                    tenure=format_tenure(begin, end),
                    instruments=extract_instruments(rel.attributes),
                    sort_year=begin_year if begin_year is not None else _UNKNOWN_YEAR,
                )
            )

        sections: list[RelationshipGroup] = []
        for rel_type in _SECTION_ORDER:
            items = grouped.get(rel_type)
            if not items:
                continue
            items.sort(
                key=lambda item: (not item.is_founding_member, not item.is_current, item.sort_year)
            )
            sections.append(
                RelationshipGroup(
                    type=rel_type,
                    label=relationship_label(rel_type, root.kind),
                    items=items,
                )
            )
        return sections

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _related_by_id(payload: RelationshipsPayload) -> dict[str, Entity]:
        related: dict[str, Entity] = {}
        for entity in payload.related_entities:
            if entity.id != payload.entity.id and entity.id not in related:
                related[entity.id] = entity
        return related

    @staticmethod
    def _links_to_root(
        root: Entity, relationships: Iterable[Relationship]
    ) -> dict[str, list[Relationship]]:
        links: dict[str, list[Relationship]] = {}
        for rel in relationships:
            other_id = rel.other_end(root.id)
            if other_id is not None and other_id != root.id:
                links.setdefault(other_id, []).append(rel)
        return links
