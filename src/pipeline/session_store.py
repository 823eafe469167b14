"""In-memory store of graph sessions, one expansion engine per session.

Sessions isolate browsing contexts: each owns its own graph and expansion
state, so two users exploring different artists never share mutable graph
data.  Sessions are held in a ``cachetools.TTLCache``; one that has not been
touched for ``ttl`` seconds is dropped, and the least recently used one
is evicted when ``max_sessions`` is reached.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Callable

import structlog
from cachetools import TTLCache

from src.models.expansion import FetchRecord
from src.pipeline.progress_tracker import ProgressTracker
from src.services.catalog_router import CatalogRouter
from src.services.graph_builder import GraphBuilder
from src.services.graph_expansion import DEFAULT_MAX_NODES, GraphExpansionEngine

logger = structlog.get_logger(logger_name=__name__)


class _SessionCache(TTLCache):
    """``TTLCache`` that reports every session it drops on its own.

    ``popitem`` is the capacity eviction and ``expire`` the TTL sweep;
    explicit deletes go through neither.
    """

    def __init__(
        self,
        maxsize: int,
        ttl: float,
        on_drop: Callable[[str, GraphExpansionEngine, str], None],
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(maxsize=maxsize, ttl=ttl, timer=timer)
        self._on_drop = on_drop

    def popitem(self) -> tuple[str, GraphExpansionEngine]:
        key, engine = super().popitem()
        self._on_drop(key, engine, "evicted")
        return key, engine

    def expire(self, now: float | None = None) -> list[tuple[str, GraphExpansionEngine]]:
        expired = list(super().expire(now) or ())
        for key, engine in expired:
            self._on_drop(key, engine, "expired")
        return expired


class GraphSessionStore:
    """Creates, looks up and drops :class:`GraphExpansionEngine` sessions.

    Parameters
    ----------
    router:
        Shared source router handed to every engine.
    tracker:
        Shared progress tracker; progress is keyed by session id.
    max_sessions:
        Upper bound on live sessions.
    ttl:
        Idle seconds before a session expires.
    max_nodes:
        Node cap passed to each engine.
    clock:
        Monotonic time source for the idle timer.
    """

    def __init__(
        self,
        router: CatalogRouter,
        tracker: ProgressTracker,
        *,
        builder: GraphBuilder | None = None,
        max_sessions: int = 100,
        ttl: int = 3600,
        max_nodes: int = DEFAULT_MAX_NODES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._router = router
        self._tracker = tracker
        self._builder = builder or GraphBuilder()
        self._max_nodes = max_nodes
        self._sessions = _SessionCache(max_sessions, ttl, self._on_drop, timer=clock)

    async def create(self, artist_id: str) -> tuple[GraphExpansionEngine, FetchRecord] | None:
        """Fetch the root artist and open a session on its depth-1 graph.

        Returns ``None`` when the artist is not in the catalog.  Catalog
        failures propagate as
        :class:`~src.utils.errors.CatalogUnavailableError`.
        """
        result = await self._router.fetch_relationships(artist_id)
        if result.data is None:
            logger.info("graph_session_root_not_found", artist_id=artist_id)
            return None

        session_id = uuid.uuid4().hex
        engine = GraphExpansionEngine(
            session_id,
            result.data,
            self._router,
            builder=self._builder,
            tracker=self._tracker,
            max_nodes=self._max_nodes,
        )
        self._sessions[session_id] = engine
        logger.info(
            "graph_session_created",
            session_id=session_id,
            artist_id=artist_id,
            source=result.source.value,
            latency_ms=result.latency_ms,
        )
        return engine, FetchRecord(
            node_id=artist_id, source=result.source, latency_ms=result.latency_ms
        )

    def get(self, session_id: str) -> GraphExpansionEngine | None:
        """Return the session's engine and refresh its idle timer."""
        self._sessions.expire()
        engine = self._sessions.get(session_id)
        if engine is not None:
            self._sessions[session_id] = engine
        return engine

    def delete(self, session_id: str) -> bool:
        engine = self._sessions.pop(session_id, None)
        self._tracker.clear(session_id)
        if engine is None:
            return False
        engine.cancel()
        logger.info("graph_session_deleted", session_id=session_id)
        return True

    def _on_drop(self, session_id: str, engine: GraphExpansionEngine, reason: str) -> None:
        engine.cancel()
        self._tracker.clear(session_id)
        logger.info("graph_session_dropped", session_id=session_id, reason=reason)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions
