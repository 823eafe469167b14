"""MusicBrainz web-service provider implementing ICatalogProvider.

Talks to the public ``ws/2`` JSON API through an injected
``httpx.AsyncClient``.  Every HTTP request, including each retry, is queued
on the shared :class:`~src.services.request_throttle.RequestThrottle` so the
process as a whole never goes over the 1 request/second limit.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Awaitable, Callable

import httpx
import structlog

from src.config.settings import Settings
from src.interfaces.catalog_provider import ICatalogProvider
from src.models.entities import (
    ActiveSpan,
    Direction,
    Entity,
    Period,
    Relationship,
    RelationshipsPayload,
)
from src.providers.catalog.link_types import map_link_type
from src.services.request_throttle import RequestThrottle
from src.utils.errors import RateLimitError, TransientUpstreamError, UpstreamError

logger = structlog.get_logger(logger_name=__name__)

_MAX_GENRES = 5


class MusicBrainzAPIProvider(ICatalogProvider):
    """Catalog provider backed by the public MusicBrainz web service.

    MusicBrainz needs no API key, but clients must send a descriptive
    user-agent and stay under one request per second.  Rate-limited (503,
    429) and other transient failures are retried with linear backoff, each
    attempt re-entering the shared throttle.

    Attributes
    ----------
    _http : httpx.AsyncClient
        Injected client, owned by the application.
    _throttle : RequestThrottle
        Process-wide FIFO throttle shared by every web-service caller.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        throttle: RequestThrottle,
        *,
        max_attempts: int = 3,
        retry_backoff: float = 1.0,
        retry_backoff_cap: float = 5.0,
        timeout: float = 10.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._http = http_client
        self._throttle = throttle
        self._base_url = settings.musicbrainz_api_url.rstrip("/")
        self._max_attempts = max(1, max_attempts)
        self._retry_backoff = retry_backoff
        self._retry_backoff_cap = retry_backoff_cap
        self._timeout = timeout
        self._sleep = sleep

        contact = settings.musicbrainz_contact or "no contact configured"
        self._user_agent = (
            f"{settings.musicbrainz_app_name}/{settings.musicbrainz_app_version} ( {contact} )"
        )
        logger.info(
            "musicbrainz_api_provider_initialized",
            base_url=self._base_url,
            user_agent=self._user_agent,
        )

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _send(self, path: str, params: dict[str, Any]) -> dict[str, Any] | None:
        """Perform one GET. Returns ``None`` on HTTP 404."""
        url = f"{self._base_url}/{path.lstrip('/')}"
        try:
            response = await self._http.get(
                url,
                params={**params, "fmt": "json"},
                headers={"User-Agent": self._user_agent, "Accept": "application/json"},
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            raise TransientUpstreamError(
                message=f"MusicBrainz request failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        status = response.status_code
        if status == 404:
            return None
        if status in (429, 503):
            raise RateLimitError(
                message="MusicBrainz rate limit exceeded",
                provider_name=self.get_provider_name(),
                status_code=status,
            )
        if status >= 500:
            raise TransientUpstreamError(
                message=f"MusicBrainz API error: {status}",
                provider_name=self.get_provider_name(),
                status_code=status,
            )
        if status >= 400:
            raise UpstreamError(
                message=f"MusicBrainz API error: {status}",
                provider_name=self.get_provider_name(),
                status_code=status,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise UpstreamError(
                message="MusicBrainz returned a non-JSON body",
                provider_name=self.get_provider_name(),
                status_code=status,
            ) from exc
        return body if isinstance(body, dict) else {}

    async def _request(self, path: str, params: dict[str, Any]) -> dict[str, Any] | None:
        """Throttled GET with bounded retries for transient failures."""
        attempt = 1
        while True:
            try:
                return await self._throttle.enqueue(lambda: self._send(path, params))
            except TransientUpstreamError as exc:
                if attempt >= self._max_attempts:
                    logger.warning(
                        "musicbrainz_retries_exhausted",
                        path=path,
                        attempts=attempt,
                        error=str(exc),
                    )
                    raise
                delay = min(self._retry_backoff * attempt, self._retry_backoff_cap)
                logger.info(
                    "musicbrainz_retry",
                    path=path,
                    attempt=attempt,
                    delay_s=delay,
                    status_code=exc.status_code,
                )
                await self._sleep(delay)
                attempt += 1

    # ------------------------------------------------------------------
    # ICatalogProvider implementation
    # ------------------------------------------------------------------

    async def search_artists(
        self, query: str, limit: int = 10, offset: int = 0
    ) -> list[Entity]:
        """Search MusicBrainz for artists matching *query*."""
        body = await self._request(
            "artist", {"query": query, "limit": limit, "offset": offset}
        )
        with self._mapping_errors("artist"):
            results = [
                self._map_artist(raw)
                for raw in (body or {}).get("artists") or []
                if isinstance(raw, dict) and raw.get("id")
            ]
        logger.debug("musicbrainz_artist_search", query=query, result_count=len(results))
        return results

    async def get_artist(self, artist_id: str) -> Entity | None:
        body = await self._request(f"artist/{artist_id}", {"inc": "tags"})
        if not body or not body.get("id"):
            return None
        with self._mapping_errors(f"artist/{artist_id}"):
            return self._map_artist(body)

    async def get_artist_relationships(self, artist_id: str) -> RelationshipsPayload | None:
        """Fetch *artist_id* with its artist-to-artist relations."""
        body = await self._request(f"artist/{artist_id}", {"inc": "artist-rels+tags"})
        if not body or not body.get("id"):
            return None

        with self._mapping_errors(f"artist/{artist_id}"):
            return self._map_relationships(artist_id, body)

    async def get_artist_life_span(self, artist_id: str) -> ActiveSpan | None:
        entity = await self.get_artist(artist_id)
        if entity is None or entity.active_span is None or not entity.active_span.begin:
            return None
        span = entity.active_span
        return ActiveSpan(begin=span.begin, end=span.end if span.ended else None)

    def get_provider_name(self) -> str:
        return "musicbrainz_api"

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _mapping_errors(self, path: str) -> Iterator[None]:
        """Turn a malformed response body into an :class:`UpstreamError`."""
        try:
            yield
        except (TypeError, ValueError, KeyError) as exc:
            logger.warning("musicbrainz_malformed_response", path=path, error=str(exc))
            raise UpstreamError(
                message=f"MusicBrainz returned a malformed {path} body",
                provider_name=self.get_provider_name(),
            ) from exc

    def _map_relationships(self, artist_id: str, body: dict[str, Any]) -> RelationshipsPayload:
        entity = self._map_artist(body)
        relationships: list[Relationship] = []
        related: dict[str, Entity] = {}

        for rel in body.get("relations") or []:
            if not isinstance(rel, dict) or (rel.get("target-type") or "artist") != "artist":
                continue
            rel_type = map_link_type(rel.get("type"))
            other = rel.get("artist")
            if rel_type is None or not isinstance(other, dict) or not other.get("id"):
                continue

            direction = (
                Direction.BACKWARD if rel.get("direction") == "backward" else Direction.FORWARD
            )
            if direction is Direction.FORWARD:
                source_id, target_id = entity.id, other["id"]
            else:
                source_id, target_id = other["id"], entity.id

            relationships.append(
                Relationship.model_validate(
                    {
                        "source_id": source_id,
                        "target_id": target_id,
                        "type": rel_type,
                        "attributes": rel.get("attributes") or [],
                        "period": {
                            "begin": rel.get("begin"),
                            "end": rel.get("end"),
                            "ended": rel.get("ended"),
                        },
                        "direction": direction,
                    }
                )
            )
            if other["id"] not in related and other["id"] != entity.id:
                related[other["id"]] = self._map_artist(other)

        logger.debug(
            "musicbrainz_relationships_fetched",
            artist_id=artist_id,
            relationship_count=len(relationships),
            related_count=len(related),
        )
        return RelationshipsPayload(
            entity=entity,
            relationships=relationships,
            related_entities=list(related.values()),
        )

    @staticmethod
    def _map_artist(raw: dict[str, Any]) -> Entity:
        life_span = raw.get("life-span")
        active_span = Period.model_validate(life_span) if isinstance(life_span, dict) else None

        tags = [t for t in raw.get("tags") or [] if isinstance(t, dict) and t.get("name")]
        tags.sort(key=lambda t: t.get("count") or 0, reverse=True)

        return Entity(
            id=raw["id"],
            name=raw.get("name"),
            kind=raw.get("type"),
            disambiguation=raw.get("disambiguation"),
            country=raw.get("country"),
            active_span=active_span,
            genres=[t["name"] for t in tags[:_MAX_GENRES]],
        )
