"""Local MusicBrainz replica provider implementing IReplicaProvider.

Reads a relational mirror of the MusicBrainz catalog through a pooled
SQLAlchemy async engine: PostgreSQL via ``asyncpg`` for a real mirror, or
SQLite via ``aiosqlite`` for a small local extract.  Queries are built with
SQLAlchemy Core against the tables in
:mod:`src.providers.catalog.replica_schema`.

Every query runs under a timeout.  A replica that is down, slow or broken
surfaces as :class:`~src.utils.errors.ReplicaUnavailableError` so the source
router can demote it and fall back to the web service.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Any, Awaitable, Callable, TypeVar

import sqlalchemy as sa
import structlog
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from src.interfaces.catalog_provider import IReplicaProvider
from src.models.entities import (
    ActiveSpan,
    Direction,
    Entity,
    Period,
    Relationship,
    RelationshipsPayload,
)
from src.providers.catalog.link_types import SKIPPED_LINK_TYPES, map_link_type
from src.providers.catalog.replica_schema import (
    MUSICBRAINZ_SCHEMA,
    artist,
    artist_tag,
    artist_type,
    iso_3166_1,
    l_artist_artist,
    link,
    link_attribute,
    link_attribute_type,
    link_type,
    schema_translate_map,
    tag,
)
from src.utils.errors import ReplicaUnavailableError
from src.utils.partial_dates import format_partial_date

logger = structlog.get_logger(logger_name=__name__)

_T = TypeVar("_T")

_MAX_GENRES = 5


def create_replica_engine(
    url: str,
    *,
    schema: str | None = MUSICBRAINZ_SCHEMA,
    pool_size: int = 5,
    max_overflow: int = 5,
    pool_timeout: float = 2.0,
    connect_timeout: float = 2.0,
    statement_timeout: float = 5.0,
) -> AsyncEngine:
    """Create the pooled async engine for the replica at *url*.

    Parameters
    ----------
    url:
        SQLAlchemy URL, e.g. ``postgresql+asyncpg://mb:mb@localhost/musicbrainz``
        or ``sqlite+aiosqlite:///data/musicbrainz.db``.
    schema:
        Schema holding the MusicBrainz tables on PostgreSQL.  Ignored for
        SQLite.
    pool_timeout:
        Seconds to wait for a free pooled connection.
    connect_timeout, statement_timeout:
        Passed to asyncpg so a dead server fails fast.
    """
    kwargs: dict[str, Any] = {
        "pool_pre_ping": True,
        "execution_options": {"schema_translate_map": schema_translate_map(url, schema)},
    }
    if url.startswith("postgresql"):
        kwargs.update(
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=pool_timeout,
            connect_args={"timeout": connect_timeout, "command_timeout": statement_timeout},
        )
    return create_async_engine(url, **kwargs)


class MusicBrainzReplicaProvider(IReplicaProvider):
    """Catalog provider backed by a local MusicBrainz database mirror.

    Attributes
    ----------
    _engine : AsyncEngine
        Pooled engine; disposed by :meth:`close`.
    _query_timeout : float
        Upper bound in seconds for one logical operation.
    _ping_timeout : float
        Upper bound in seconds for the ``SELECT 1`` liveness probe.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        *,
        query_timeout: float = 5.0,
        ping_timeout: float = 2.0,
    ) -> None:
        self._engine = engine
        self._query_timeout = query_timeout
        self._ping_timeout = ping_timeout
        logger.info(
            "replica_provider_initialized",
            dialect=engine.dialect.name,
            query_timeout=query_timeout,
        )

    # ------------------------------------------------------------------
    # Execution helpers
    # ------------------------------------------------------------------

    async def _execute(self, fn: Callable[[AsyncConnection], Awaitable[_T]]) -> _T:
        async with self._engine.connect() as conn:
            return await fn(conn)

    async def _run(self, operation: str, fn: Callable[[AsyncConnection], Awaitable[_T]]) -> _T:
        """Run *fn* on a pooled connection under the query timeout."""
        try:
            return await asyncio.wait_for(self._execute(fn), timeout=self._query_timeout)
        except asyncio.TimeoutError as exc:
            raise ReplicaUnavailableError(
                message=f"Replica {operation} timed out after {self._query_timeout}s",
                provider_name=self.get_provider_name(),
            ) from exc
        except Exception as exc:
            raise ReplicaUnavailableError(
                message=f"Replica {operation} failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    # ------------------------------------------------------------------
    # IReplicaProvider implementation
    # ------------------------------------------------------------------

    async def ping(self) -> bool:
        try:
            await asyncio.wait_for(
                self._execute(lambda conn: conn.execute(sa.text("SELECT 1"))),
                timeout=self._ping_timeout,
            )
        except Exception as exc:
            logger.warning("replica_ping_failed", error=str(exc) or type(exc).__name__)
            return False
        return True

    async def close(self) -> None:
        await self._engine.dispose()
        logger.info("replica_engine_disposed")

    async def search_artists(
        self, query: str, limit: int = 10, offset: int = 0
    ) -> list[Entity]:
        """Case-insensitive substring search on name and sort name.

        Exact name matches rank first, the rest alphabetically.
        """
        needle = query.strip().lower()

        async def _search(conn: AsyncConnection) -> list[Entity]:
            stmt = (
                _artist_select()
                .where(
                    sa.or_(
                        sa.func.lower(artist.c.name).contains(needle, autoescape=True),
                        sa.func.lower(artist.c.sort_name).contains(needle, autoescape=True),
                    )
                )
                .order_by(
                    sa.case((sa.func.lower(artist.c.name) == needle, 0), else_=1),
                    artist.c.name,
                    artist.c.id,
                )
                .limit(limit)
                .offset(offset)
            )
            rows = (await conn.execute(stmt)).all()
            genres = await _fetch_genres(conn, [row.id for row in rows])
            return [_row_to_entity(row, genres.get(row.id, [])) for row in rows]

        results = await self._run("search", _search)
        logger.debug("replica_artist_search", query=query, result_count=len(results))
        return results

    async def get_artist(self, artist_id: str) -> Entity | None:
        mbid = _normalize_mbid(artist_id)
        if mbid is None:
            return None

        async def _get(conn: AsyncConnection) -> Entity | None:
            row = await _fetch_artist_row(conn, mbid)
            if row is None:
                return None
            genres = await _fetch_genres(conn, [row.id])
            return _row_to_entity(row, genres.get(row.id, []))

        return await self._run("get_artist", _get)

    async def get_artist_relationships(self, artist_id: str) -> RelationshipsPayload | None:
        """Fetch both directions of every social artist-artist link."""
        mbid = _normalize_mbid(artist_id)
        if mbid is None:
            return None

        async def _get(conn: AsyncConnection) -> RelationshipsPayload | None:
            root = await _fetch_artist_row(conn, mbid)
            if root is None:
                return None

            a0 = artist.alias("a0")
            a1 = artist.alias("a1")
            stmt = (
                sa.select(
                    l_artist_artist.c.link,
                    l_artist_artist.c.entity0,
                    l_artist_artist.c.entity1,
                    a0.c.gid.label("gid0"),
                    a1.c.gid.label("gid1"),
                    link_type.c.name.label("link_type"),
                    link.c.begin_date_year,
                    link.c.begin_date_month,
                    link.c.begin_date_day,
                    link.c.end_date_year,
                    link.c.end_date_month,
                    link.c.end_date_day,
                    link.c.ended,
                )
                .select_from(
                    l_artist_artist.join(link, l_artist_artist.c.link == link.c.id)
                    .join(link_type, link.c.link_type == link_type.c.id)
                    .join(a0, l_artist_artist.c.entity0 == a0.c.id)
                    .join(a1, l_artist_artist.c.entity1 == a1.c.id)
                )
                .where(
                    sa.or_(
                        l_artist_artist.c.entity0 == root.id,
                        l_artist_artist.c.entity1 == root.id,
                    ),
                    link_type.c.name.not_in(sorted(SKIPPED_LINK_TYPES)),
                )
                .order_by(l_artist_artist.c.id)
            )
            link_rows = (await conn.execute(stmt)).all()
            attributes = await _fetch_link_attributes(conn, [r.link for r in link_rows])

            relationships: list[Relationship] = []
            other_ids: list[int] = []
            for row in link_rows:
                rel_type = map_link_type(row.link_type)
                if rel_type is None:
                    continue
                forward = row.entity0 == root.id
                other_id = row.entity1 if forward else row.entity0
                if other_id == root.id:
                    continue
                relationships.append(
                    Relationship.model_validate(
                        {
                            "source_id": str(row.gid0),
                            "target_id": str(row.gid1),
                            "type": rel_type,
                            "attributes": attributes.get(row.link, []),
                            "period": Period(
                                begin=format_partial_date(
                                    row.begin_date_year, row.begin_date_month, row.begin_date_day
                                ),
                                end=format_partial_date(
                                    row.end_date_year, row.end_date_month, row.end_date_day
                                ),
                                ended=row.ended,
                            ),
                            "direction": Direction.FORWARD if forward else Direction.BACKWARD,
                        }
                    )
                )
                if other_id not in other_ids:
                    other_ids.append(other_id)

            related_rows: list[sa.Row[Any]] = []
            if other_ids:
                result = await conn.execute(_artist_select().where(artist.c.id.in_(other_ids)))
                by_id = {row.id: row for row in result.all()}
                related_rows = [by_id[i] for i in other_ids if i in by_id]
            genres = await _fetch_genres(conn, [root.id, *(r.id for r in related_rows)])

            return RelationshipsPayload(
                entity=_row_to_entity(root, genres.get(root.id, [])),
                relationships=relationships,
                related_entities=[_row_to_entity(r, genres.get(r.id, [])) for r in related_rows],
            )

        payload = await self._run("get_artist_relationships", _get)
        if payload is not None:
            logger.debug(
                "replica_relationships_fetched",
                artist_id=artist_id,
                relationship_count=len(payload.relationships),
                related_count=len(payload.related_entities),
            )
        return payload

    async def get_artist_life_span(self, artist_id: str) -> ActiveSpan | None:
        mbid = _normalize_mbid(artist_id)
        if mbid is None:
            return None

        async def _get(conn: AsyncConnection) -> ActiveSpan | None:
            row = await _fetch_artist_row(conn, mbid)
            if row is None:
                return None
            begin = format_partial_date(
                row.begin_date_year, row.begin_date_month, row.begin_date_day
            )
            if begin is None:
                return None
            end = (
                format_partial_date(row.end_date_year, row.end_date_month, row.end_date_day)
                if row.ended
                else None
            )
            return ActiveSpan(begin=begin, end=end)

        return await self._run("get_artist_life_span", _get)

    def get_provider_name(self) -> str:
        return "musicbrainz_replica"


# ----------------------------------------------------------------------
# Query builders
# ----------------------------------------------------------------------


def _normalize_mbid(value: str) -> str | None:
    try:
        return str(uuid.UUID(value))
    except (TypeError, ValueError):
        return None


def _artist_select() -> sa.Select[Any]:
    # An area can carry several ISO codes; pick one so each artist is one row.
    country = (
        sa.select(iso_3166_1.c.code)
        .where(iso_3166_1.c.area == artist.c.area)
        .order_by(iso_3166_1.c.code)
        .limit(1)
        .correlate(artist)
        .scalar_subquery()
    )
    return sa.select(
        artist.c.id,
        artist.c.gid,
        artist.c.name,
        artist.c.comment,
        artist.c.begin_date_year,
        artist.c.begin_date_month,
        artist.c.begin_date_day,
        artist.c.end_date_year,
        artist.c.end_date_month,
        artist.c.end_date_day,
        artist.c.ended,
        artist_type.c.name.label("type_name"),
        country.label("country"),
    ).select_from(artist.outerjoin(artist_type, artist.c.type == artist_type.c.id))


async def _fetch_artist_row(conn: AsyncConnection, artist_id: str) -> sa.Row[Any] | None:
    result = await conn.execute(_artist_select().where(artist.c.gid == artist_id))
    return result.first()


async def _fetch_genres(conn: AsyncConnection, artist_ids: list[int]) -> dict[int, list[str]]:
    """Top tags per artist, most-voted first."""
    if not artist_ids:
        return {}
    stmt = (
        sa.select(artist_tag.c.artist, tag.c.name)
        .select_from(artist_tag.join(tag, artist_tag.c.tag == tag.c.id))
        .where(artist_tag.c.artist.in_(artist_ids), artist_tag.c.count > 0)
        .order_by(artist_tag.c.artist, artist_tag.c.count.desc(), tag.c.name)
    )
    genres: dict[int, list[str]] = {}
    for row in (await conn.execute(stmt)).all():
        names = genres.setdefault(row.artist, [])
        if len(names) < _MAX_GENRES:
            names.append(row.name)
    return genres


async def _fetch_link_attributes(conn: AsyncConnection, link_ids: list[int]) -> dict[int, list[str]]:
    if not link_ids:
        return {}
    stmt = (
        sa.select(link_attribute.c.link, link_attribute_type.c.name)
        .select_from(
            link_attribute.join(
                link_attribute_type,
                link_attribute.c.attribute_type == link_attribute_type.c.id,
            )
        )
        .where(link_attribute.c.link.in_(sorted(set(link_ids))))
        .order_by(link_attribute.c.link, link_attribute_type.c.name)
    )
    attributes: dict[int, list[str]] = {}
    for row in (await conn.execute(stmt)).all():
        attributes.setdefault(row.link, []).append(row.name)
    return attributes


def _row_to_entity(row: sa.Row[Any], genres: list[str]) -> Entity:
    begin = format_partial_date(row.begin_date_year, row.begin_date_month, row.begin_date_day)
    end = format_partial_date(row.end_date_year, row.end_date_month, row.end_date_day)
    active_span = Period(begin=begin, end=end, ended=row.ended) if begin or end or row.ended else None
    return Entity(
        id=str(row.gid),
        name=row.name,
        kind=row.type_name,
        disambiguation=row.comment,
        country=row.country,
        active_span=active_span,
        genres=genres,
    )
