"""Leveled breadth-first expansion of one session's artist graph.

A :class:`GraphExpansionEngine` owns the graph of a single browsing session.
It starts from the depth-1 graph of the root artist and grows it level by
level: at each level every unexpanded node discovered at exactly that depth
is fetched through the :class:`~src.services.catalog_router.CatalogRouter`,
built into a sub-graph and merged in.

    IDLE ──expand_to_depth()/start_expansion()/expand_node()──→ EXPANDING ──done──→ IDLE

Only one expansion runs at a time; a second request while one is running is
rejected with :class:`~src.utils.errors.ExpansionInProgressError`, not
queued.  A node whose fetch fails is logged and left collapsed; the rest of
the level still expands.
"""

from __future__ import annotations

import asyncio

import structlog

from src.models.entities import RelationshipType, RelationshipsPayload, relationship_id
from src.models.expansion import (
    MAX_DEPTH,
    MIN_DEPTH,
    ExpansionProgress,
    ExpansionReport,
    ExpansionState,
    FetchRecord,
)
from src.models.graph import ArtistGraph
from src.pipeline.progress_tracker import ProgressTracker
from src.services.catalog_router import CatalogRouter
from src.services.graph_builder import GraphBuilder
from src.utils.errors import ExpansionInProgressError, InvalidDepthError, UnknownNodeError
from src.utils.logging import get_logger

DEFAULT_MAX_NODES = 500


def _rebase_payload(payload: RelationshipsPayload, node_id: str) -> RelationshipsPayload:
    """Re-key *payload* from the id the catalog answered with to *node_id*."""
    canonical = payload.entity.id

    def _end(entity_id: str) -> str:
        return node_id if entity_id == canonical else entity_id

    relationships = []
    for rel in payload.relationships:
        source_id, target_id = _end(rel.source_id), _end(rel.target_id)
        if source_id == target_id:
            continue
        relationships.append(
            rel.model_copy(
                update={
                    "id": relationship_id(source_id, rel.type, target_id, rel.period.begin),
                    "source_id": source_id,
                    "target_id": target_id,
                }
            )
        )
    return RelationshipsPayload(
        entity=payload.entity.model_copy(update={"id": node_id}),
        relationships=relationships,
        related_entities=[e for e in payload.related_entities if e.id != node_id],
    )


class _ExpansionRun:
    """Accumulates the outcome of one expansion call."""

    def __init__(self) -> None:
        self.expanded: list[str] = []
        self.failed: list[str] = []
        self.fetches: list[FetchRecord] = []
        self.truncated = False

    def report(self, target_depth: int, levels_completed: int) -> ExpansionReport:
        return ExpansionReport(
            target_depth=target_depth,
            levels_completed=levels_completed,
            expanded=self.expanded,
            failed=self.failed,
            fetches=self.fetches,
            truncated=self.truncated,
        )


class GraphExpansionEngine:
    """Per-session expansion state machine over an :class:`ArtistGraph`.

    Parameters
    ----------
    session_id:
        Browsing session that owns this engine; used for progress events.
    root_payload:
        Relationships payload of the root artist.  Every depth change
        rebuilds from it.
    router:
        Source router used for every relationship fetch.
    builder:
        Graph builder; a fresh one by default.
    tracker:
        Progress tracker receiving ``(level, current, total)`` updates.
    max_nodes:
        Hard cap on graph size.  Hitting it stops the expansion and marks
        the report ``truncated``.
    """

    def __init__(
        self,
        session_id: str,
        root_payload: RelationshipsPayload,
        router: CatalogRouter,
        *,
        builder: GraphBuilder | None = None,
        tracker: ProgressTracker | None = None,
        max_nodes: int = DEFAULT_MAX_NODES,
    ) -> None:
        self._session_id = session_id
        self._root_payload = root_payload
        self._router = router
        self._builder = builder or GraphBuilder()
        self._tracker = tracker
        self._max_nodes = max(1, max_nodes)
        self._state = ExpansionState.IDLE
        self._depth = MIN_DEPTH
        self._task: asyncio.Task[ExpansionReport] | None = None
        self._last_report: ExpansionReport | None = None
        self._logger: structlog.BoundLogger = get_logger(__name__)

        self._graph: ArtistGraph
        self._node_depths: dict[str, int]
        self._reset_graph()

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def root_id(self) -> str:
        return self._root_payload.entity.id

    @property
    def graph(self) -> ArtistGraph:
        return self._graph

    @property
    def depth(self) -> int:
        return self._depth

    @property
    def state(self) -> ExpansionState:
        return self._state

    @property
    def is_expanding(self) -> bool:
        return self._state is ExpansionState.EXPANDING

    @property
    def progress(self) -> ExpansionProgress:
        if self._tracker is None:
            return ExpansionProgress()
        return self._tracker.get_status(self._session_id)

    @property
    def last_report(self) -> ExpansionReport | None:
        """Report of the most recent depth expansion, background ones included."""
        return self._last_report

    def node_depth(self, node_id: str) -> int | None:
        """BFS level at which *node_id* was first observed (root is 0)."""
        return self._node_depths.get(node_id)

    @property
    def available_relationship_types(self) -> list[RelationshipType]:
        """Edge types present in the current graph, for filter controls."""
        return self._graph.relationship_types()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def expand_to_depth(self, depth: int) -> ExpansionReport:
        """Rebuild the graph from the root and expand it to *depth* levels.

        Level 1 is the root's direct connections, which the root payload
        already holds; each further level costs one relationship fetch per
        frontier node.  Stops early once a level has nothing to expand.
        """
        self._check_depth(depth)
        self._begin()
        return await self._run_to_depth(depth)

    def start_expansion(self, depth: int) -> asyncio.Task[ExpansionReport]:
        """Expand to *depth* in a background task and return at once.

        The engine is ``EXPANDING`` before this returns, so a concurrent
        request is rejected just as it would be for :meth:`expand_to_depth`.
        Progress goes to the tracker; the report lands in :attr:`last_report`.
        """
        self._check_depth(depth)
        self._begin()
        self._depth = depth
        task = asyncio.create_task(self._run_to_depth(depth))
        task.add_done_callback(self._on_task_done)
        self._task = task
        return task

    def cancel(self) -> None:
        """Cancel a background expansion, if one is running."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            self._logger.info("expansion_cancelled", session_id=self._session_id)

    async def _run_to_depth(self, depth: int) -> ExpansionReport:
        run = _ExpansionRun()
        levels_completed = 0
        try:
            self._reset_graph()
            self._depth = depth
            self._logger.info(
                "expansion_started",
                session_id=self._session_id,
                root_id=self.root_id,
                target_depth=depth,
            )

            for level in range(MIN_DEPTH, depth):
                frontier = [
                    node.id
                    for node in self._graph.nodes
                    if not node.is_loaded and self._node_depths.get(node.id) == level
                ]
                if not frontier:
                    self._logger.debug(
                        "expansion_frontier_exhausted", session_id=self._session_id, level=level
                    )
                    break

                total = len(frontier)
                for index, node_id in enumerate(frontier):
                    if self._graph.node_count >= self._max_nodes:
                        run.truncated = True
                        break
                    await self._report_progress(
                        level, index, total, f"Expanding level {level}: {index + 1}/{total}"
                    )
                    await self._expand_one(node_id, level, run)
                else:
                    levels_completed += 1
                    await self._report_progress(level, total, total, f"Level {level} complete")

                if run.truncated:
                    self._logger.warning(
                        "expansion_truncated",
                        session_id=self._session_id,
                        level=level,
                        max_nodes=self._max_nodes,
                    )
                    break
        finally:
            self._state = ExpansionState.IDLE

        report = run.report(depth, levels_completed)
        self._logger.info(
            "expansion_completed",
            session_id=self._session_id,
            target_depth=depth,
            levels_completed=levels_completed,
            expanded=len(report.expanded),
            failed=len(report.failed),
            node_count=self._graph.node_count,
            edge_count=self._graph.edge_count,
            truncated=report.truncated,
        )
        self._last_report = report
        return report

    async def expand_node(self, node_id: str) -> ExpansionReport:
        """Fetch and merge the connections of one node, leaving the depth as is.

        Already-loaded nodes are a no-op.
        """
        if self.is_expanding:
            raise ExpansionInProgressError()
        if not self._graph.has_node(node_id):
            raise UnknownNodeError(message=f"Node '{node_id}' is not part of the graph")

        run = _ExpansionRun()
        node = self._graph.node(node_id)
        if node is None or node.is_loaded:
            return run.report(self._depth, 0)

        self._begin()
        try:
            level = self._node_depths.get(node_id, self._depth)
            await self._report_progress(level, 0, 1, f"Expanding {node.name or node_id}")
            await self._expand_one(node_id, level, run)
            await self._report_progress(level, 1, 1, "Node expanded")
        finally:
            self._state = ExpansionState.IDLE
        return run.report(self._depth, 0)

    def reset(self) -> None:
        """Return to the depth-1 graph of the root artist."""
        if self.is_expanding:
            raise ExpansionInProgressError()
        self._reset_graph()
        self._depth = MIN_DEPTH
        self._logger.info("expansion_reset", session_id=self._session_id)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _check_depth(depth: int) -> None:
        if not MIN_DEPTH <= depth <= MAX_DEPTH:
            raise InvalidDepthError(
                message=f"Depth must be between {MIN_DEPTH} and {MAX_DEPTH}, got {depth}"
            )

    def _begin(self) -> None:
        if self.is_expanding:
            raise ExpansionInProgressError()
        self._state = ExpansionState.EXPANDING

    def _on_task_done(self, task: asyncio.Task[ExpansionReport]) -> None:
        if self._task is task:
            self._task = None
        if task.cancelled():
            # Cancelled before its first step, the run never reached its finally.
            self._state = ExpansionState.IDLE
            return
        exc = task.exception()
        if exc is not None:
            self._logger.error(
                "expansion_task_failed", session_id=self._session_id, error=str(exc)
            )

    def _reset_graph(self) -> None:
        self._graph = self._builder.build(self._root_payload)
        self._node_depths = {
            node.id: (0 if node.is_root else MIN_DEPTH) for node in self._graph.nodes
        }

    async def _expand_one(self, node_id: str, level: int, run: _ExpansionRun) -> None:
        """Fetch, build and merge one node. Failures leave the node collapsed."""
        try:
            result = await self._router.fetch_relationships(node_id)
        except Exception as exc:
            run.failed.append(node_id)
            self._logger.warning(
                "expansion_node_failed",
                session_id=self._session_id,
                node_id=node_id,
                error=str(exc),
            )
            return

        run.fetches.append(
            FetchRecord(node_id=node_id, source=result.source, latency_ms=result.latency_ms)
        )
        if result.data is None:
            # Gone from the catalog: nothing left to fetch for it.
            self._graph.mark_loaded(node_id)
            run.expanded.append(node_id)
            self._logger.info(
                "expansion_node_not_found", session_id=self._session_id, node_id=node_id
            )
            return

        payload = result.data
        if payload.entity.id != node_id:
            # Merged artist: the catalog answered with the surviving id.
            self._logger.info(
                "expansion_node_redirected",
                session_id=self._session_id,
                node_id=node_id,
                canonical_id=payload.entity.id,
            )
            payload = _rebase_payload(payload, node_id)

        sub_graph = self._builder.build(payload)
        new_nodes = [n for n in sub_graph.nodes if not self._graph.has_node(n.id)]
        room = self._max_nodes - self._graph.node_count
        if len(new_nodes) > room:
            new_nodes = new_nodes[: max(room, 0)]
            run.truncated = True

        kept_ids = {n.id for n in new_nodes}
        edges = [
            e
            for e in sub_graph.edges
            if all(self._graph.has_node(end) or end in kept_ids for end in (e.source_id, e.target_id))
        ]
        added_nodes, added_edges = self._graph.merge(new_nodes, edges, expanded_node_id=node_id)
        for node in added_nodes:
            # First observation wins; a node already seen keeps its depth.
            self._node_depths.setdefault(node.id, level + 1)
        run.expanded.append(node_id)

        self._logger.debug(
            "expansion_node_merged",
            session_id=self._session_id,
            node_id=node_id,
            source=result.source.value,
            latency_ms=result.latency_ms,
            new_nodes=len(added_nodes),
            new_edges=len(added_edges),
        )

    async def _report_progress(self, level: int, current: int, total: int, message: str) -> None:
        if self._tracker is not None:
            await self._tracker.update(self._session_id, level, current, total, message)
