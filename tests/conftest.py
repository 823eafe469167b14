"""Shared pytest fixtures for the chordgraph test suite."""

from __future__ import annotations

from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.interfaces.catalog_provider import ICatalogProvider, IReplicaProvider
from src.models.entities import (
    ActiveSpan,
    Entity,
    EntityKind,
    Period,
    Relationship,
    RelationshipsPayload,
    RelationshipType,
)

# Stable MusicBrainz-shaped ids used across the suite.
BAND_ID = "b10bbbfc-cf9e-42e0-be17-e2c3e1d2600d"
PERSON_Y_ID = "4d5447d7-c61c-4120-ba1b-d7f471d385b9"
PERSON_Z_ID = "0383dadf-2a4e-4d10-a46a-e9e041da8eb3"
SIDE_BAND_ID = "e01646f2-2a04-450d-8bf2-0d993082e058"


# ---------------------------------------------------------------------------
# Project fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Return a minimal mock configuration for testing."""
    return {
        "app": {"name": "chordgraph", "version": "0.1.0"},
        "throttle": {"min_interval": 1.1},
        "upstream": {
            "timeout": 10.0,
            "max_attempts": 3,
            "retry_backoff": 1.0,
            "retry_backoff_cap": 5.0,
        },
        "replica": {
            "url": "",
            "schema": "musicbrainz",
            "pool_size": 5,
            "pool_timeout": 2.0,
            "query_timeout": 5.0,
            "ping_timeout": 2.0,
            "connect_timeout": 2.0,
            "max_overflow": 5,
        },
        "health": {"ttl": 30.0},
        "expansion": {"max_nodes": 500},
        "sessions": {"max_sessions": 100, "ttl": 3600},
        "api": {"cors_origins": ["http://localhost:3000"]},
    }


# ---------------------------------------------------------------------------
# Catalog sample data: "Band X" with member "Y" (guitar, 1970-present)
# ---------------------------------------------------------------------------


@pytest.fixture
def band_x() -> Entity:
    return Entity(
        id=BAND_ID,
        name="Band X",
        kind=EntityKind.GROUP,
        country="GB",
        genres=["rock"],
    )


@pytest.fixture
def person_y() -> Entity:
    return Entity(id=PERSON_Y_ID, name="Y", kind=EntityKind.PERSON)


@pytest.fixture
def band_x_payload(band_x: Entity, person_y: Entity) -> RelationshipsPayload:
    """Band X with one member_of relationship from person Y."""
    return RelationshipsPayload(
        entity=band_x,
        relationships=[
            Relationship.model_validate(
                {
                    "source_id": PERSON_Y_ID,
                    "target_id": BAND_ID,
                    "type": RelationshipType.MEMBER_OF,
                    "attributes": ["guitar"],
                    "period": Period(begin="1970", end=None, ended=False),
                    "direction": "backward",
                }
            )
        ],
        related_entities=[person_y],
    )


# ---------------------------------------------------------------------------
# Mock provider fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_api_provider(band_x: Entity, band_x_payload: RelationshipsPayload) -> ICatalogProvider:
    """Mock web-service provider answering for Band X.

    Override e.g. ``mock_api_provider.get_artist.return_value = None`` or
    ``.side_effect = [...]`` for specific tests.
    """
    mock = MagicMock(spec=ICatalogProvider)
    mock.get_provider_name.return_value = "mock-api"
    mock.search_artists = AsyncMock(return_value=[band_x])
    mock.get_artist = AsyncMock(return_value=band_x)
    mock.get_artist_relationships = AsyncMock(return_value=band_x_payload)
    mock.get_artist_life_span = AsyncMock(return_value=ActiveSpan(begin="1969"))
    return mock


@pytest.fixture
def mock_replica_provider(band_x: Entity, band_x_payload: RelationshipsPayload) -> IReplicaProvider:
    """Mock replica provider that is reachable and answers for Band X."""
    mock = MagicMock(spec=IReplicaProvider)
    mock.get_provider_name.return_value = "mock-replica"
    mock.ping = AsyncMock(return_value=True)
    mock.close = AsyncMock()
    mock.search_artists = AsyncMock(return_value=[band_x])
    mock.get_artist = AsyncMock(return_value=band_x)
    mock.get_artist_relationships = AsyncMock(return_value=band_x_payload)
    mock.get_artist_life_span = AsyncMock(return_value=ActiveSpan(begin="1969"))
    return mock


class FakeClock:
    """Manually advanced monotonic clock for TTL and spacing tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()
