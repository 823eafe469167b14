"""Catalog provider implementations.

Two concrete implementations of ICatalogProvider, chosen per call by
``CatalogRouter``:

    1. MusicBrainzReplicaProvider — SQL queries against a local mirror of
       the MusicBrainz database (PostgreSQL via asyncpg, or a SQLite extract
       via aiosqlite).  No rate limit; used whenever the replica is healthy.
    2. MusicBrainzAPIProvider     — the public MusicBrainz web service over
       httpx.  Rate limit: 1 req/sec, enforced by the shared RequestThrottle.

Both return the same types (Entity, RelationshipsPayload, ActiveSpan) so the
router can serve either one without the caller noticing.
"""

from src.providers.catalog.musicbrainz_api_provider import MusicBrainzAPIProvider
from src.providers.catalog.replica_provider import (
    MusicBrainzReplicaProvider,
    create_replica_engine,
)

__all__ = [
    "MusicBrainzAPIProvider",
    "MusicBrainzReplicaProvider",
    "create_replica_engine",
]
