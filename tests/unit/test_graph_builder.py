"""Unit tests for GraphBuilder and its derivation helpers."""

from __future__ import annotations

from src.models.entities import (
    Entity,
    EntityKind,
    Period,
    Relationship,
    RelationshipsPayload,
    RelationshipType,
)
from src.services.graph_builder import (
    GraphBuilder,
    earliest_member_year,
    extract_instruments,
    format_tenure,
    is_founding_relationship,
)

BAND = Entity(id="band", name="The Band", kind=EntityKind.GROUP)


def _person(pid: str, begin: str | None = None) -> Entity:
    span = Period(begin=begin) if begin else None
    return Entity(id=pid, name=pid.upper(), kind=EntityKind.PERSON, active_span=span)


def _member(
    pid: str,
    begin: str | None = None,
    end: str | None = None,
    attributes: list[str] | None = None,
    rel_type: RelationshipType = RelationshipType.MEMBER_OF,
) -> Relationship:
    return Relationship.model_validate(
        {
            "source_id": pid,
            "target_id": BAND.id,
            "type": rel_type,
            "attributes": attributes or [],
            "period": {"begin": begin, "end": end, "ended": end is not None},
            "direction": "backward",
        }
    )


def _payload(relationships: list[Relationship], related: list[Entity], root: Entity = BAND):
    return RelationshipsPayload(entity=root, relationships=relationships, related_entities=related)


# ======================================================================
# Helpers
# ======================================================================


class TestFormatTenure:
    def test_closed_range(self) -> None:
        assert format_tenure("1960", "1970") == "1960–1970"

    def test_open_range(self) -> None:
        assert format_tenure("1962-05-01", None) == "1962–present"

    def test_same_year(self) -> None:
        assert format_tenure("1960-01", "1960-12-31") == "1960"

    def test_unknown_start(self) -> None:
        assert format_tenure(None, "1970") == ""
        assert format_tenure("", None) == ""

    def test_garbage_start(self) -> None:
        assert format_tenure("sometime", "1970") == ""


class TestExtractInstruments:
    def test_drops_status_tags(self) -> None:
        attrs = ["original", "guitar", "founding member", "past", "vocals", "minor"]
        assert extract_instruments(attrs) == ["guitar", "vocals"]

    def test_caps_at_three_preserving_order(self) -> None:
        attrs = ["drums", "bass", "keyboard", "lead vocals"]
        assert extract_instruments(attrs) == ["drums", "bass", "keyboard"]

    def test_deduplicates(self) -> None:
        assert extract_instruments(["guitar", "guitar", "bass"]) == ["guitar", "bass"]

    def test_empty(self) -> None:
        assert extract_instruments([]) == []


class TestFoundingDetection:
    def test_earliest_year_includes_root_span(self) -> None:
        root = Entity(id="band", name="B", kind=EntityKind.GROUP, active_span=Period(begin="1958"))
        rels = [_member("a", "1960"), _member("b", "1962")]
        assert earliest_member_year(root, rels) == 1958

    def test_earliest_year_ignores_non_membership(self) -> None:
        rels = [
            _member("a", "1965"),
            _member("p", "1950", rel_type=RelationshipType.PRODUCER),
        ]
        assert earliest_member_year(BAND, rels) == 1965

    def test_earliest_year_unknown(self) -> None:
        assert earliest_member_year(BAND, [_member("a")]) is None

    def test_earliest_joiners_are_founding(self) -> None:
        rels = [_member("a", "1960"), _member("b", "1960"), _member("c", "1962")]
        earliest = earliest_member_year(BAND, rels)

        assert [is_founding_relationship(r, earliest) for r in rels] == [True, True, False]

    def test_explicit_founder_attribute_wins(self) -> None:
        rels = [
            _member("a", "1960"),
            _member("b", "1960"),
            _member("c", "1962", attributes=["founder"]),
        ]
        earliest = earliest_member_year(BAND, rels)

        assert is_founding_relationship(rels[2], earliest) is True

    def test_original_attribute_counts(self) -> None:
        rel = _member("c", "1970", attributes=["original"])
        assert is_founding_relationship(rel, 1960) is True

    def test_unknown_join_year_is_not_founding(self) -> None:
        rel = _member("x")
        assert is_founding_relationship(rel, 1960) is False
        assert is_founding_relationship(rel, None) is False

    def test_founder_of_is_founding(self) -> None:
        rel = _member("x", rel_type=RelationshipType.FOUNDER_OF)
        assert is_founding_relationship(rel, None) is True

    def test_collaboration_never_founding(self) -> None:
        rel = _member("x", "1960", rel_type=RelationshipType.COLLABORATION)
        assert is_founding_relationship(rel, 1960) is False


# ======================================================================
# GraphBuilder.build
# ======================================================================


class TestBuild:
    def test_band_with_single_member(self, band_x_payload, person_y) -> None:
        graph = GraphBuilder().build(band_x_payload)

        assert graph.node_count == 2
        assert graph.edge_count == 1

        root = graph.root
        assert root is not None
        assert root.id == band_x_payload.entity.id
        assert root.is_loaded is True

        member = graph.node(person_y.id)
        assert member is not None
        assert member.is_founding_member is True
        assert member.is_loaded is False
        assert member.is_root is False
        assert member.instruments == ["guitar"]

        edge = graph.edges[0]
        assert edge.type is RelationshipType.MEMBER_OF
        assert edge.tenure == "1970–present"
        assert edge.source_id == person_y.id

    def test_founding_flags_across_members(self) -> None:
        rels = [_member("a", "1960"), _member("b", "1960"), _member("c", "1962")]
        graph = GraphBuilder().build(_payload(rels, [_person("a"), _person("b"), _person("c")]))

        flags = {n.id: n.is_founding_member for n in graph.nodes if not n.is_root}
        assert flags == {"a": True, "b": True, "c": False}

    def test_rejoined_member_keeps_both_edges(self) -> None:
        rels = [_member("a", "1960", "1965"), _member("a", "1970")]
        graph = GraphBuilder().build(_payload(rels, [_person("a")]))

        assert graph.node_count == 2
        assert [e.tenure for e in graph.edges] == ["1960–1965", "1970–present"]

    def test_relationship_to_missing_entity_is_skipped(self) -> None:
        rels = [_member("a", "1960"), _member("ghost", "1960")]
        graph = GraphBuilder().build(_payload(rels, [_person("a")]))

        assert graph.node_count == 2
        assert graph.edge_count == 1
        assert not graph.has_node("ghost")

    def test_duplicate_related_entities_collapse(self) -> None:
        rels = [_member("a", "1960")]
        graph = GraphBuilder().build(_payload(rels, [_person("a"), _person("a")]))

        assert graph.node_count == 2

    def test_root_without_relationships(self) -> None:
        graph = GraphBuilder().build(_payload([], []))

        assert graph.node_count == 1
        assert graph.edge_count == 0
        assert graph.root is not None

    def test_input_not_mutated(self, band_x_payload) -> None:
        before = band_x_payload.model_dump()
        GraphBuilder().build(band_x_payload)
        assert band_x_payload.model_dump() == before

    def test_build_from_raw_tolerates_malformed_fields(self) -> None:
        raw = {
            "entity": {"id": "band", "name": None, "kind": "Orchestra"},
            "relationships": [
                {
                    "source_id": "a",
                    "target_id": "band",
                    "type": "made_up_type",
                    "attributes": "not-a-list",
                    "period": None,
                },
                {"source_id": "", "target_id": "band", "type": "member_of"},
            ],
            "related_entities": [{"id": "a", "name": "A", "genres": None}, {"name": "no id"}],
        }

        graph = GraphBuilder().build_from_raw(raw)

        assert graph.root is not None
        assert graph.root.kind is EntityKind.GROUP
        assert graph.root.name == ""
        assert graph.node_count == 2
        assert graph.edges[0].type is RelationshipType.COLLABORATION
        assert graph.edges[0].tenure == ""


# ======================================================================
# GraphBuilder.group_relationships
# ======================================================================


class TestGroupRelationships:
    def test_sections_ordered_and_labelled_for_group(self) -> None:
        rels = [
            _member("p", rel_type=RelationshipType.PRODUCER),
            _member("a", "1960"),
        ]
        sections = GraphBuilder().group_relationships(
            _payload(rels, [_person("p"), _person("a")])
        )

        assert [s.type for s in sections] == [RelationshipType.MEMBER_OF, RelationshipType.PRODUCER]
        assert [s.label for s in sections] == ["Members", "Producers"]

    def test_labels_for_person(self) -> None:
        person = Entity(id="y", name="Y", kind=EntityKind.PERSON)
        rel = Relationship(
            id="r1", source_id="y", target_id="band", type=RelationshipType.MEMBER_OF
        )
        payload = RelationshipsPayload(entity=person, relationships=[rel], related_entities=[BAND])

        sections = GraphBuilder().group_relationships(payload)

        assert sections[0].label == "Bands & Groups"

    def test_founders_then_current_then_year(self) -> None:
        rels = [
            _member("late", "1975", "1980"),
            _member("current", "1972"),
            _member("founder", "1960", "1970"),
            _member("undated"),
        ]
        related = [_person(p) for p in ("late", "current", "founder", "undated")]

        sections = GraphBuilder().group_relationships(_payload(rels, related))

        items = sections[0].items
        assert [i.entity.id for i in items] == ["founder", "current", "undated", "late"]
        assert items[0].is_founding_member is True
        assert items[1].is_current is True
        assert items[2].sort_year == 9999

    def test_falls_back_to_artist_span(self) -> None:
        rels = [_member("a")]
        sections = GraphBuilder().group_relationships(_payload(rels, [_person("a", "1981")]))

        item = sections[0].items[0]
        assert item.tenure == "1981–present"
        assert item.sort_year == 1981
