"""Replica-first routing of catalog reads with in-call fallback.

Every logical catalog operation goes through :class:`CatalogRouter`, which
tries the local replica while the health monitor considers it available and
falls back to the rate-limited web service otherwise.  A replica failure
demotes it and is retried against the web service within the same call, so
callers only see an error when both sources failed.

Results are wrapped in :class:`~src.models.source.SourceResult` so the UI can
show which source served each request and how long it took.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

from src.interfaces.catalog_provider import ICatalogProvider
from src.models.entities import ActiveSpan, Entity, RelationshipsPayload
from src.models.source import DataSource, HealthStatus, SourceResult
from src.services.health_monitor import ReplicaHealthMonitor
from src.utils.errors import CatalogUnavailableError, ChordGraphError
from src.utils.logging import get_logger

_T = TypeVar("_T")


class CatalogRouter:
    """Chooses the data source for each catalog call.

    Parameters
    ----------
    api:
        The MusicBrainz web-service provider; always present.
    health:
        Monitor for the replica.  Its verdict decides whether the replica is
        tried at all.
    replica:
        The local replica provider, or ``None`` when none is configured.
    """

    def __init__(
        self,
        api: ICatalogProvider,
        health: ReplicaHealthMonitor,
        replica: ICatalogProvider | None = None,
    ) -> None:
        self._api = api
        self._health = health
        self._replica = replica
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Catalog operations
    # ------------------------------------------------------------------

    async def search(
        self, query: str, limit: int = 10, offset: int = 0
    ) -> SourceResult[list[Entity]]:
        return await self._route(
            "search", lambda p: p.search_artists(query, limit=limit, offset=offset)
        )

    async def fetch_entity(self, entity_id: str) -> SourceResult[Entity | None]:
        return await self._route("fetch_entity", lambda p: p.get_artist(entity_id))

    async def fetch_relationships(
        self, entity_id: str
    ) -> SourceResult[RelationshipsPayload | None]:
        return await self._route(
            "fetch_relationships", lambda p: p.get_artist_relationships(entity_id)
        )

    async def fetch_active_span(self, entity_id: str) -> SourceResult[ActiveSpan | None]:
        return await self._route(
            "fetch_active_span", lambda p: p.get_artist_life_span(entity_id)
        )

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def get_health_status(self) -> HealthStatus:
        return await self._health.status()

    async def force_health_recheck(self) -> bool:
        """Re-probe the replica now. Never touches the web service."""
        return await self._health.force_recheck()

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    async def _route(
        self,
        operation: str,
        call: Callable[[ICatalogProvider], Awaitable[_T]],
    ) -> SourceResult[_T]:
        """Run *call* on the replica if healthy, else (or on failure) on the API.

        A replica answer of ``None`` means "not in the catalog" and is
        returned as local data, not treated as a failure.
        """
        started = time.perf_counter()

        if self._replica is not None and await self._health.is_available():
            try:
                data = await call(self._replica)
            except Exception as exc:
                self._health.mark_unavailable(reason=str(exc))
                self._logger.warning(
                    "catalog_fallback",
                    operation=operation,
                    error=str(exc),
                )
            else:
                return self._result(data, DataSource.LOCAL, started, operation)

        try:
            data = await call(self._api)
        except ChordGraphError as exc:
            self._logger.error(
                "catalog_unavailable",
                operation=operation,
                error=str(exc),
            )
            raise CatalogUnavailableError(
                message=f"Catalog {operation} failed on every data source: {exc.message}",
                provider_name=exc.provider_name,
            ) from exc
        return self._result(data, DataSource.API, started, operation)

    def _result(
        self, data: _T, source: DataSource, started: float, operation: str
    ) -> SourceResult[_T]:
        latency_ms = round((time.perf_counter() - started) * 1000, 2)
        self._logger.debug(
            "catalog_call",
            operation=operation,
            source=source.value,
            latency_ms=latency_ms,
        )
        return SourceResult(data=data, source=source, latency_ms=latency_ms)
