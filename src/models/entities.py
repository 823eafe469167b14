"""Core catalog entities for chordgraph.

Defines enums and Pydantic v2 models for artists, dated relationships between
them, and the per-operation payloads returned by catalog providers.  All
models are frozen.

These models are the validation boundary for upstream data: both the
MusicBrainz web service and the local replica hand back loosely shaped rows
and JSON, and every field here carries a lenient default or a ``before``
validator so that a malformed field degrades to "unknown" instead of failing
the whole payload.

Key relationships:
    - Relationship links two Entity ids and carries a Period
    - RelationshipsPayload bundles the queried Entity, its relationships and
      every Entity on the other end of them
    - Both are consumed by src/services/graph_builder.py
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class EntityKind(str, Enum):  # noqa: UP042 — StrEnum requires Python 3.11+
    """Kinds of catalogued artist."""

    PERSON = "person"
    GROUP = "group"
    OTHER = "other"


class RelationshipType(str, Enum):  # noqa: UP042
    """Social connection types rendered as graph edges."""

    MEMBER_OF = "member_of"
    FOUNDER_OF = "founder_of"
    COLLABORATION = "collaboration"
    PRODUCER = "producer"
    INFLUENCED_BY = "influenced_by"
    SIDE_PROJECT = "side_project"
    TOURING_MEMBER = "touring_member"
    SAME_LABEL = "same_label"
    SAME_SCENE = "same_scene"


class Direction(str, Enum):  # noqa: UP042
    """Orientation of a relationship relative to the queried entity.

    ``forward`` means the queried entity is the relationship source.
    """

    FORWARD = "forward"
    BACKWARD = "backward"


# MusicBrainz artist types collapse onto the three kinds the graph styles.
_KIND_ALIASES: dict[str, EntityKind] = {
    "person": EntityKind.PERSON,
    "group": EntityKind.GROUP,
    "orchestra": EntityKind.GROUP,
    "choir": EntityKind.GROUP,
}


def coerce_entity_kind(value: Any) -> EntityKind:
    """Map a raw artist type (``"Person"``, ``"Orchestra"``, ``None``...) to a kind."""
    if isinstance(value, EntityKind):
        return value
    if not isinstance(value, str):
        return EntityKind.OTHER
    return _KIND_ALIASES.get(value.strip().lower(), EntityKind.OTHER)


def coerce_relationship_type(value: Any) -> RelationshipType:
    """Map a raw type to a :class:`RelationshipType`.

    Anything unrecognized becomes ``collaboration`` so the connection is
    still drawn rather than silently lost.
    """
    if isinstance(value, RelationshipType):
        return value
    if isinstance(value, str):
        try:
            return RelationshipType(value.strip().lower())
        except ValueError:
            pass
    return RelationshipType.COLLABORATION


def relationship_id(
    source_id: str,
    rel_type: RelationshipType | str,
    target_id: str,
    begin: str | None = None,
) -> str:
    """Build the stable id of a relationship.

    The begin date is part of the id so that a member who left and rejoined
    a group produces two distinct relationships.
    """
    type_value = rel_type.value if isinstance(rel_type, RelationshipType) else rel_type
    base = f"{source_id}-{type_value}-{target_id}"
    return f"{base}-{begin}" if begin else base


# ---------------------------------------------------------------------------
# Period: a partial-date interval shared by artists and relationships.
# ---------------------------------------------------------------------------

class Period(BaseModel):
    """A ``{begin, end, ended}`` interval of partial-date strings."""

    model_config = ConfigDict(frozen=True)

    begin: str | None = None
    end: str | None = None
    # MusicBrainz keeps "ended" separately: an interval can be known to have
    # ended without a known end date.
    ended: bool = False

    @field_validator("begin", "end", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @field_validator("ended", mode="before")
    @classmethod
    def _ended_default(cls, value: Any) -> bool:
        return bool(value)


class ActiveSpan(BaseModel):
    """Begin/end of an artist's activity, returned by ``fetch_active_span``."""

    model_config = ConfigDict(frozen=True)

    begin: str | None = None
    end: str | None = None


# ---------------------------------------------------------------------------
# Entity
# ---------------------------------------------------------------------------

class Entity(BaseModel):
    """A catalogued artist: a person, a group, or something else."""

    model_config = ConfigDict(frozen=True)

    # Externally assigned MusicBrainz id; chordgraph never mints its own.
    id: str
    name: str = ""
    kind: EntityKind = EntityKind.OTHER
    disambiguation: str | None = None
    country: str | None = None
    active_span: Period | None = None
    # Top catalog tags, most popular first.
    genres: list[str] = Field(default_factory=list)

    @field_validator("name", mode="before")
    @classmethod
    def _name_default(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("kind", mode="before")
    @classmethod
    def _kind_default(cls, value: Any) -> EntityKind:
        return coerce_entity_kind(value)

    @field_validator("disambiguation", "country", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @field_validator("genres", mode="before")
    @classmethod
    def _genres_default(cls, value: Any) -> list[str]:
        if not isinstance(value, (list, tuple)):
            return []
        return [str(g) for g in value if g]


# ---------------------------------------------------------------------------
# Relationship
# ---------------------------------------------------------------------------

class Relationship(BaseModel):
    """A typed, dated connection between two entities."""

    model_config = ConfigDict(frozen=True)

    id: str
    source_id: str
    target_id: str
    type: RelationshipType = RelationshipType.COLLABORATION
    # Free-text role / instrument tags, e.g. ["original", "guitar"].
    attributes: list[str] = Field(default_factory=list)
    period: Period = Field(default_factory=Period)
    direction: Direction = Direction.FORWARD

    @model_validator(mode="before")
    @classmethod
    def _fill_id(cls, data: Any) -> Any:
        if not isinstance(data, dict) or data.get("id"):
            return data
        data = dict(data)
        rel_type = coerce_relationship_type(data.get("type"))
        period = data.get("period")
        if isinstance(period, Period):
            begin = period.begin
        elif isinstance(period, dict):
            begin = Period.model_validate(period).begin
        else:
            begin = None
        data["id"] = relationship_id(
            str(data.get("source_id", "")), rel_type, str(data.get("target_id", "")), begin
        )
        return data

    @field_validator("type", mode="before")
    @classmethod
    def _type_default(cls, value: Any) -> RelationshipType:
        return coerce_relationship_type(value)

    @field_validator("attributes", mode="before")
    @classmethod
    def _attributes_default(cls, value: Any) -> list[str]:
        if not isinstance(value, (list, tuple)):
            return []
        return [str(a) for a in value if isinstance(a, str) and a.strip()]

    @field_validator("period", mode="before")
    @classmethod
    def _period_default(cls, value: Any) -> Any:
        return value if value is not None else Period()

    @field_validator("direction", mode="before")
    @classmethod
    def _direction_default(cls, value: Any) -> Direction:
        if isinstance(value, Direction):
            return value
        if isinstance(value, str) and value.strip().lower() == "backward":
            return Direction.BACKWARD
        return Direction.FORWARD

    def other_end(self, entity_id: str) -> str | None:
        """Return the id on the other side of *entity_id*, or ``None`` if not an endpoint."""
        if self.source_id == entity_id:
            return self.target_id
        if self.target_id == entity_id:
            return self.source_id
        return None


# ---------------------------------------------------------------------------
# RelationshipsPayload: one fetch_relationships result.
# ---------------------------------------------------------------------------

class RelationshipsPayload(BaseModel):
    """The queried entity, its relationships, and the entities they point to."""

    model_config = ConfigDict(frozen=True)

    entity: Entity
    relationships: list[Relationship] = Field(default_factory=list)
    related_entities: list[Entity] = Field(default_factory=list)

    @field_validator("relationships", mode="before")
    @classmethod
    def _drop_unlinked_relationships(cls, value: Any) -> list[Any]:
        # A relationship without both endpoints cannot be drawn; drop it
        # rather than rejecting the whole payload.
        if not isinstance(value, (list, tuple)):
            return []
        return [
            item
            for item in value
            if isinstance(item, Relationship)
            or (isinstance(item, dict) and item.get("source_id") and item.get("target_id"))
        ]

    @field_validator("related_entities", mode="before")
    @classmethod
    def _drop_anonymous_entities(cls, value: Any) -> list[Any]:
        if not isinstance(value, (list, tuple)):
            return []
        return [
            item
            for item in value
            if isinstance(item, Entity) or (isinstance(item, dict) and item.get("id"))
        ]
