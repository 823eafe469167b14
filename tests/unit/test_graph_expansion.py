"""Unit tests for GraphExpansionEngine leveled BFS expansion."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.models.entities import Entity, EntityKind, Relationship, RelationshipsPayload
from src.models.expansion import ExpansionProgress, ExpansionState
from src.models.source import DataSource, SourceResult
from src.pipeline.progress_tracker import ProgressTracker
from src.services.catalog_router import CatalogRouter
from src.services.graph_expansion import GraphExpansionEngine
from src.utils.errors import (
    CatalogUnavailableError,
    ExpansionInProgressError,
    InvalidDepthError,
    UnknownNodeError,
)

# R (root band) <- A, B ; A -> S (side band) <- C ; C -> T <- D
_ENTITIES = {
    "R": Entity(id="R", name="Root Band", kind=EntityKind.GROUP),
    "A": Entity(id="A", name="Alice", kind=EntityKind.PERSON),
    "B": Entity(id="B", name="Bob", kind=EntityKind.PERSON),
    "S": Entity(id="S", name="Side Band", kind=EntityKind.GROUP),
    "C": Entity(id="C", name="Carol", kind=EntityKind.PERSON),
    "T": Entity(id="T", name="Third Band", kind=EntityKind.GROUP),
    "D": Entity(id="D", name="Dave", kind=EntityKind.PERSON),
}

_MEMBERSHIPS = [("A", "R"), ("B", "R"), ("A", "S"), ("C", "S"), ("C", "T"), ("D", "T")]


def _rel(person: str, band: str) -> Relationship:
    return Relationship.model_validate(
        {"source_id": person, "target_id": band, "type": "member_of", "period": {"begin": "1970"}}
    )


def _payload(entity_id: str) -> RelationshipsPayload:
    rels = [_rel(p, b) for p, b in _MEMBERSHIPS if entity_id in (p, b)]
    related = [_ENTITIES[r.other_end(entity_id)] for r in rels]
    return RelationshipsPayload(
        entity=_ENTITIES[entity_id], relationships=rels, related_entities=related
    )


def _router(overrides: dict | None = None) -> MagicMock:
    """Router mock answering from the sample network.

    *overrides* maps a node id to an exception to raise or a payload/None.
    """
    overrides = overrides or {}

    async def fetch(node_id: str) -> SourceResult:
        if node_id in overrides:
            value = overrides[node_id]
            if isinstance(value, Exception):
                raise value
            return SourceResult(data=value, source=DataSource.API, latency_ms=5.0)
        return SourceResult(data=_payload(node_id), source=DataSource.LOCAL, latency_ms=1.0)

    router = MagicMock(spec=CatalogRouter)
    router.fetch_relationships = AsyncMock(side_effect=fetch)
    return router


def _engine(router: MagicMock | None = None, **kwargs) -> GraphExpansionEngine:
    return GraphExpansionEngine("session-1", _payload("R"), router or _router(), **kwargs)


def _fetched(router: MagicMock) -> list[str]:
    return [call.args[0] for call in router.fetch_relationships.await_args_list]


# ======================================================================
# expand_to_depth
# ======================================================================


class TestExpandToDepth:
    def test_initial_graph_is_depth_one(self) -> None:
        engine = _engine()

        assert engine.depth == 1
        assert engine.state is ExpansionState.IDLE
        assert {n.id for n in engine.graph.nodes} == {"R", "A", "B"}
        assert engine.node_depth("R") == 0
        assert engine.node_depth("A") == 1

    @pytest.mark.asyncio
    async def test_depth_one_fetches_nothing(self) -> None:
        router = _router()
        engine = _engine(router)

        report = await engine.expand_to_depth(1)

        assert report.levels_completed == 0
        router.fetch_relationships.assert_not_awaited()
        assert engine.graph.node_count == 3

    @pytest.mark.asyncio
    async def test_depth_two(self) -> None:
        router = _router()
        engine = _engine(router)

        report = await engine.expand_to_depth(2)

        assert _fetched(router) == ["A", "B"]
        assert {n.id for n in engine.graph.nodes} == {"R", "A", "B", "S"}
        assert engine.node_depth("S") == 2
        assert engine.graph.node("A").is_loaded is True
        assert engine.graph.node("S").is_loaded is False
        assert report.levels_completed == 1
        assert report.expanded == ["A", "B"]
        assert [f.source for f in report.fetches] == [DataSource.LOCAL, DataSource.LOCAL]
        assert engine.state is ExpansionState.IDLE

    @pytest.mark.asyncio
    async def test_depth_four(self) -> None:
        engine = _engine()

        report = await engine.expand_to_depth(4)

        assert {n.id for n in engine.graph.nodes} == {"R", "A", "B", "S", "C", "T"}
        assert engine.node_depth("C") == 3
        assert engine.node_depth("T") == 4
        assert report.levels_completed == 3

    @pytest.mark.asyncio
    async def test_first_observed_depth_wins(self) -> None:
        engine = _engine()

        await engine.expand_to_depth(3)

        # S's payload lists A again; A keeps the depth it was first seen at.
        assert engine.node_depth("A") == 1
        assert engine.node_depth("S") == 2

    @pytest.mark.asyncio
    async def test_stops_when_frontier_empty(self) -> None:
        lonely = RelationshipsPayload(
            entity=_ENTITIES["R"],
            relationships=[_rel("B", "R")],
            related_entities=[_ENTITIES["B"]],
        )
        router = _router({"B": lonely})
        engine = GraphExpansionEngine("s", lonely, router)

        report = await engine.expand_to_depth(4)

        assert _fetched(router) == ["B"]
        assert report.levels_completed == 1

    @pytest.mark.asyncio
    async def test_depth_change_rebuilds_from_root(self) -> None:
        engine = _engine()
        await engine.expand_to_depth(3)

        await engine.expand_to_depth(2)

        assert engine.depth == 2
        assert {n.id for n in engine.graph.nodes} == {"R", "A", "B", "S"}

    @pytest.mark.asyncio
    async def test_merge_does_not_duplicate_edges(self) -> None:
        engine = _engine()

        await engine.expand_to_depth(2)

        edge_ids = [e.id for e in engine.graph.edges]
        assert len(edge_ids) == len(set(edge_ids)) == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("depth", [0, 5, -1])
    async def test_invalid_depth(self, depth: int) -> None:
        engine = _engine()

        with pytest.raises(InvalidDepthError):
            await engine.expand_to_depth(depth)
        assert engine.state is ExpansionState.IDLE


# ======================================================================
# Failure handling and limits
# ======================================================================


class TestFailuresAndLimits:
    @pytest.mark.asyncio
    async def test_failed_node_stays_collapsed(self) -> None:
        router = _router({"A": CatalogUnavailableError("both sources down")})
        engine = _engine(router)

        report = await engine.expand_to_depth(2)

        assert report.failed == ["A"]
        assert report.expanded == ["B"]
        assert engine.graph.node("A").is_loaded is False
        assert not engine.graph.has_node("S")
        assert engine.state is ExpansionState.IDLE

    @pytest.mark.asyncio
    async def test_not_found_marks_node_loaded(self) -> None:
        router = _router({"B": None})
        engine = _engine(router)

        report = await engine.expand_to_depth(2)

        assert "B" in report.expanded
        assert engine.graph.node("B").is_loaded is True
        assert report.fetches[1].source is DataSource.API

    @pytest.mark.asyncio
    async def test_merged_artist_answer_rekeyed_to_requested_node(self) -> None:
        # The catalog answers for A under the id A was merged into.
        merged = RelationshipsPayload(
            entity=Entity(id="A-merged", name="Alice", kind=EntityKind.PERSON),
            relationships=[_rel("A-merged", "R"), _rel("A-merged", "S")],
            related_entities=[_ENTITIES["R"], _ENTITIES["S"]],
        )
        engine = _engine(_router({"A": merged}))

        report = await engine.expand_to_depth(2)

        assert report.expanded == ["A", "B"]
        assert [n.id for n in engine.graph.nodes if n.is_root] == ["R"]
        assert not engine.graph.has_node("A-merged")
        assert engine.graph.node("A").is_loaded is True
        assert engine.node_depth("S") == 2
        assert engine.graph.has_edge("A-member_of-S-1970")
        assert all("A-merged" not in (e.source_id, e.target_id) for e in engine.graph.edges)

    @pytest.mark.asyncio
    async def test_node_cap_trims_new_nodes(self) -> None:
        # A's fetch brings two new artists (S and C) but only one fits.
        engine = _engine(_router({"A": _payload("S")}), max_nodes=4)

        report = await engine.expand_to_depth(2)

        assert report.truncated is True
        assert engine.graph.node_count == 4
        assert engine.graph.has_node("S")
        assert not engine.graph.has_node("C")
        # No edge may point at a node that was cut.
        node_ids = {n.id for n in engine.graph.nodes}
        assert all(e.source_id in node_ids and e.target_id in node_ids for e in engine.graph.edges)

    @pytest.mark.asyncio
    async def test_node_cap_stops_expansion(self) -> None:
        router = _router()
        engine = _engine(router, max_nodes=4)

        report = await engine.expand_to_depth(3)

        # A's fetch fills the last slot; B and the next level are never fetched.
        assert report.truncated is True
        assert report.levels_completed == 0
        assert _fetched(router) == ["A"]
        assert engine.graph.node_count == 4


# ======================================================================
# Concurrency and single-node operations
# ======================================================================


class TestSessionOperations:
    @pytest.mark.asyncio
    async def test_second_expansion_rejected_while_busy(self) -> None:
        release = asyncio.Event()

        async def slow_fetch(node_id: str) -> SourceResult:
            await release.wait()
            return SourceResult(data=_payload(node_id), source=DataSource.LOCAL, latency_ms=1.0)

        router = MagicMock(spec=CatalogRouter)
        router.fetch_relationships = AsyncMock(side_effect=slow_fetch)
        engine = _engine(router)

        running = asyncio.create_task(engine.expand_to_depth(2))
        await asyncio.sleep(0)

        assert engine.is_expanding is True
        with pytest.raises(ExpansionInProgressError):
            await engine.expand_to_depth(3)
        with pytest.raises(ExpansionInProgressError):
            await engine.expand_node("B")
        with pytest.raises(ExpansionInProgressError):
            engine.reset()

        release.set()
        report = await running
        assert report.levels_completed == 1
        assert engine.state is ExpansionState.IDLE

    @pytest.mark.asyncio
    async def test_start_expansion_runs_in_background(self) -> None:
        engine = _engine()

        task = engine.start_expansion(3)

        assert engine.is_expanding is True
        assert engine.depth == 3
        assert engine.last_report is None
        with pytest.raises(ExpansionInProgressError):
            await engine.expand_to_depth(2)

        report = await task
        assert engine.state is ExpansionState.IDLE
        assert engine.last_report == report
        assert engine.node_depth("C") == 3

    @pytest.mark.asyncio
    async def test_start_expansion_validates_depth(self) -> None:
        engine = _engine()

        with pytest.raises(InvalidDepthError):
            engine.start_expansion(9)
        assert engine.state is ExpansionState.IDLE

    @pytest.mark.asyncio
    async def test_cancel_stops_background_expansion(self) -> None:
        async def hang(node_id: str) -> SourceResult:
            await asyncio.Event().wait()

        router = MagicMock(spec=CatalogRouter)
        router.fetch_relationships = AsyncMock(side_effect=hang)
        engine = _engine(router)

        task = engine.start_expansion(2)
        await asyncio.sleep(0)
        engine.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert engine.state is ExpansionState.IDLE
        assert engine.last_report is None

    @pytest.mark.asyncio
    async def test_cancel_before_first_step_returns_to_idle(self) -> None:
        engine = _engine()

        task = engine.start_expansion(2)
        engine.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert engine.state is ExpansionState.IDLE
        await engine.expand_to_depth(2)

    @pytest.mark.asyncio
    async def test_expand_node(self) -> None:
        router = _router()
        engine = _engine(router)

        report = await engine.expand_node("A")

        assert report.expanded == ["A"]
        assert engine.graph.has_node("S")
        assert engine.node_depth("S") == 2
        assert engine.depth == 1

    @pytest.mark.asyncio
    async def test_expand_loaded_node_is_noop(self) -> None:
        router = _router()
        engine = _engine(router)

        report = await engine.expand_node("R")

        assert report.expanded == []
        router.fetch_relationships.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_expand_unknown_node(self) -> None:
        engine = _engine()

        with pytest.raises(UnknownNodeError):
            await engine.expand_node("nobody")

    @pytest.mark.asyncio
    async def test_reset(self) -> None:
        engine = _engine()
        await engine.expand_to_depth(3)

        engine.reset()

        assert engine.depth == 1
        assert engine.graph.node_count == 3
        assert engine.available_relationship_types == [engine.graph.edges[0].type]

    @pytest.mark.asyncio
    async def test_progress_reported(self) -> None:
        tracker = ProgressTracker()
        updates: list[ExpansionProgress] = []
        tracker.register_listener("session-1", lambda sid, progress: updates.append(progress))
        engine = _engine(tracker=tracker)

        await engine.expand_to_depth(2)

        assert updates[0] == ExpansionProgress(
            level=1, current=0, total=2, message="Expanding level 1: 1/2"
        )
        assert updates[-1].current == updates[-1].total == 2
        assert engine.progress == updates[-1]
