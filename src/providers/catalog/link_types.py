"""MusicBrainz artist-artist link types and how they map onto graph edges.

Both catalog providers see the same link-type names (``"member of band"``,
``"subgroup"``...), whether they come from the web service JSON or from the
replica's ``link_type`` table, so the mapping lives here once.
"""

from __future__ import annotations

from src.models.entities import RelationshipType

# Identity / alias links: they connect two names of the same act, not two
# people who worked together.
SKIPPED_LINK_TYPES: frozenset[str] = frozenset({"tribute", "is person", "named after"})

_LINK_TYPE_MAP: dict[str, RelationshipType] = {
    "member of band": RelationshipType.MEMBER_OF,
    "founder": RelationshipType.FOUNDER_OF,
    "collaboration": RelationshipType.COLLABORATION,
    "vocal": RelationshipType.COLLABORATION,
    "instrument": RelationshipType.COLLABORATION,
    "producer": RelationshipType.PRODUCER,
    "influenced by": RelationshipType.INFLUENCED_BY,
    "subgroup": RelationshipType.SIDE_PROJECT,
    "supporting musician": RelationshipType.TOURING_MEMBER,
}


def map_link_type(link_type: str | None) -> RelationshipType | None:
    """Return the relationship type for a MusicBrainz link-type name.

    ``None`` means the link should be dropped.  Unmapped names fall back to
    ``collaboration``.
    """
    name = (link_type or "").strip().lower()
    if name in SKIPPED_LINK_TYPES:
        return None
    return _LINK_TYPE_MAP.get(name, RelationshipType.COLLABORATION)
