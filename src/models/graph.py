"""Graph models for the artist social network.

Defines Pydantic v2 models for graph nodes, edges and the mutable
:class:`ArtistGraph` container that the expansion engine grows.

Nodes and edges are frozen; the graph replaces a node in place (same index)
when its ``is_loaded`` flag flips, so element order is stable across merges.
Merging is an idempotent union keyed on node id / edge id: the first version
of an element wins and later copies are ignored.
"""

from __future__ import annotations

from typing import Iterable

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from src.models.entities import Entity, EntityKind, RelationshipType


class GraphNode(BaseModel):
    """An entity placed in the graph, plus derived display attributes."""

    model_config = ConfigDict(frozen=True)

    entity: Entity
    # Relationships fetched for this node. Flips false -> true exactly once.
    is_loaded: bool = False
    is_root: bool = False
    is_founding_member: bool = False
    # Up to three role/instrument tags, e.g. ["guitar", "vocals"].
    instruments: list[str] = Field(default_factory=list)

    @property
    def id(self) -> str:
        return self.entity.id

    @property
    def name(self) -> str:
        return self.entity.name

    @property
    def kind(self) -> EntityKind:
        return self.entity.kind


class GraphEdge(BaseModel):
    """One relationship drawn between two nodes."""

    model_config = ConfigDict(frozen=True)

    # Same as the relationship id, so repeated memberships stay distinct.
    id: str
    source_id: str
    target_id: str
    type: RelationshipType
    # "1960–1970", "1962–present", "1960" or "" when the start is unknown.
    tenure: str = ""


class ArtistGraph(BaseModel):
    """Ordered nodes and edges with id indexes for O(1) membership checks."""

    nodes: list[GraphNode] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)

    _node_index: dict[str, int] = PrivateAttr(default_factory=dict)
    _edge_ids: set[str] = PrivateAttr(default_factory=set)

    def model_post_init(self, __context: object) -> None:
        # Rebuild indexes; drop duplicates a caller may have passed in.
        nodes, edges = self.nodes, self.edges
        self.nodes, self.edges = [], []
        self._node_index, self._edge_ids = {}, set()
        self.add_nodes(nodes)
        self.add_edges(edges)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add_node(self, node: GraphNode) -> bool:
        """Append *node* unless its id is already present. Returns ``True`` if added."""
        if node.id in self._node_index:
            return False
        self._node_index[node.id] = len(self.nodes)
        self.nodes.append(node)
        return True

    def add_nodes(self, nodes: Iterable[GraphNode]) -> list[GraphNode]:
        return [node for node in nodes if self.add_node(node)]

    def add_edge(self, edge: GraphEdge) -> bool:
        """Append *edge* unless its id is already present. Returns ``True`` if added."""
        if edge.id in self._edge_ids:
            return False
        self._edge_ids.add(edge.id)
        self.edges.append(edge)
        return True

    def add_edges(self, edges: Iterable[GraphEdge]) -> list[GraphEdge]:
        return [edge for edge in edges if self.add_edge(edge)]

    def mark_loaded(self, node_id: str) -> bool:
        """Set ``is_loaded`` on *node_id*. Returns ``False`` if the node is unknown."""
        index = self._node_index.get(node_id)
        if index is None:
            return False
        node = self.nodes[index]
        if not node.is_loaded:
            self.nodes[index] = node.model_copy(update={"is_loaded": True})
        return True

    def merge(
        self,
        nodes: Iterable[GraphNode],
        edges: Iterable[GraphEdge],
        expanded_node_id: str | None = None,
    ) -> tuple[list[GraphNode], list[GraphEdge]]:
        """Union *nodes* and *edges* into the graph.

        Existing elements are never replaced, so merging the same payload
        twice leaves the graph unchanged.  When *expanded_node_id* is given
        that node is marked loaded.

        Returns the nodes and edges that were actually added.
        """
        if expanded_node_id is not None:
            self.mark_loaded(expanded_node_id)
        return self.add_nodes(nodes), self.add_edges(edges)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def node(self, node_id: str) -> GraphNode | None:
        index = self._node_index.get(node_id)
        return self.nodes[index] if index is not None else None

    def has_node(self, node_id: str) -> bool:
        return node_id in self._node_index

    def has_edge(self, edge_id: str) -> bool:
        return edge_id in self._edge_ids

    def edges_connected_to(self, node_id: str) -> list[GraphEdge]:
        return [e for e in self.edges if node_id in (e.source_id, e.target_id)]

    def neighbor_ids(self, node_id: str) -> list[str]:
        seen: list[str] = []
        for edge in self.edges_connected_to(node_id):
            other = edge.target_id if edge.source_id == node_id else edge.source_id
            if other not in seen:
                seen.append(other)
        return seen

    @property
    def root(self) -> GraphNode | None:
        return next((n for n in self.nodes if n.is_root), None)

    def relationship_types(self) -> list[RelationshipType]:
        """Edge types present in the graph, in order of first appearance."""
        types: list[RelationshipType] = []
        for edge in self.edges:
            if edge.type not in types:
                types.append(edge.type)
        return types

    @property
    def node_count(self) -> int:
        return len(self.nodes)

    @property
    def edge_count(self) -> int:
        return len(self.edges)


# ---------------------------------------------------------------------------
# Relationship lists for the artist detail view
# ---------------------------------------------------------------------------

# Section titles when the artist being viewed is a group.
RELATIONSHIP_LABELS_FOR_GROUP: dict[RelationshipType, str] = {
    RelationshipType.MEMBER_OF: "Members",
    RelationshipType.FOUNDER_OF: "Founders",
    RelationshipType.SIDE_PROJECT: "Side Projects",
    RelationshipType.COLLABORATION: "Collaborations",
    RelationshipType.PRODUCER: "Producers",
    RelationshipType.INFLUENCED_BY: "Influences",
    RelationshipType.SAME_SCENE: "Same Scene",
    RelationshipType.SAME_LABEL: "Same Label",
    RelationshipType.TOURING_MEMBER: "Touring Members",
}

# Section titles when the artist being viewed is a person.
RELATIONSHIP_LABELS_FOR_PERSON: dict[RelationshipType, str] = {
    RelationshipType.MEMBER_OF: "Bands & Groups",
    RelationshipType.FOUNDER_OF: "Founded",
    RelationshipType.SIDE_PROJECT: "Side Projects",
    RelationshipType.COLLABORATION: "Collaborations",
    RelationshipType.PRODUCER: "Produced",
    RelationshipType.INFLUENCED_BY: "Influences",
    RelationshipType.SAME_SCENE: "Same Scene",
    RelationshipType.SAME_LABEL: "Same Label",
    RelationshipType.TOURING_MEMBER: "Touring For",
}


def relationship_label(rel_type: RelationshipType, viewed_kind: EntityKind) -> str:
    """Section title for *rel_type*, phrased for the kind of artist being viewed."""
    labels = (
        RELATIONSHIP_LABELS_FOR_PERSON
        if viewed_kind is EntityKind.PERSON
        else RELATIONSHIP_LABELS_FOR_GROUP
    )
    return labels.get(rel_type, rel_type.value)


class GroupedItem(BaseModel):
    """One row of a relationship section: the related artist plus derived badges."""

    model_config = ConfigDict(frozen=True)

    relationship_id: str
    entity: Entity
    is_founding_member: bool = False
    # No known end date.
    is_current: bool = False
    tenure: str = ""
    instruments: list[str] = Field(default_factory=list)
    # Join year, 9999 when unknown so undated rows sort last.
    sort_year: int = 9999


class RelationshipGroup(BaseModel):
    """All rows of one relationship type, already sorted for display."""

    model_config = ConfigDict(frozen=True)

    type: RelationshipType
    label: str
    items: list[GroupedItem] = Field(default_factory=list)
