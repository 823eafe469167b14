"""Abstract base class for catalog data providers.

Defines the contract shared by the two ways chordgraph reads the MusicBrainz
catalog: the rate-limited public web service and a local relational replica.
The source router treats them as interchangeable, trying the replica first
and falling back to the web service.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.entities import ActiveSpan, Entity, RelationshipsPayload


class ICatalogProvider(ABC):
    """Contract for artist-catalog reads used to build the social graph.

    "Not found" is reported as ``None`` (or an empty list), never as an
    exception.  Exceptions mean the provider could not answer.
    """

    @abstractmethod
    async def search_artists(
        self, query: str, limit: int = 10, offset: int = 0
    ) -> list[Entity]:
        """Search the catalog for artists matching *query*.

        Parameters
        ----------
        query:
            Free-text artist name.
        limit:
            Maximum number of results.
        offset:
            Number of results to skip, for paging.

        Returns
        -------
        list[Entity]
            Zero or more artists ranked by relevance.
        """

    @abstractmethod
    async def get_artist(self, artist_id: str) -> Entity | None:
        """Fetch one artist by MusicBrainz id, or ``None`` if unknown."""

    @abstractmethod
    async def get_artist_relationships(self, artist_id: str) -> RelationshipsPayload | None:
        """Fetch an artist, its artist-to-artist relationships and the related artists.

        Returns
        -------
        RelationshipsPayload or None
            ``None`` when the artist does not exist in this catalog.
        """

    @abstractmethod
    async def get_artist_life_span(self, artist_id: str) -> ActiveSpan | None:
        """Return the artist's begin/end dates, or ``None`` if unknown.

        ``end`` is only set when the catalog marks the span as ended.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"musicbrainz_api"``."""


class IReplicaProvider(ICatalogProvider):
    """A catalog provider backed by a local database that can be probed."""

    @abstractmethod
    async def ping(self) -> bool:
        """Run a cheap liveness query. Returns ``False`` instead of raising."""

    @abstractmethod
    async def close(self) -> None:
        """Release pooled connections."""
