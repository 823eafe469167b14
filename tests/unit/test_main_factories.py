"""Unit tests for the DI factories in src/main.py and the config loader.

Covers replica selection, full component assembly, the ``create_app``
factory and layered configuration loading.  Nothing here opens a network
connection: engines are created lazily and the HTTP client is never used.
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import pytest
from fastapi import FastAPI

from src.config.loader import DEFAULT_CONFIG, load_config
from src.config.settings import Settings


# ======================================================================
# Shared helpers
# ======================================================================


def _settings(**overrides) -> Settings:
    defaults = {
        "musicbrainz_app_name": "chordgraph-test",
        "musicbrainz_app_version": "0.1.0",
        "musicbrainz_contact": "test@example.com",
        "replica_url": "",
        "app_env": "test",
    }
    defaults.update(overrides)
    return Settings(_env_file=None, **defaults)


def _config(mock_config: dict[str, Any], **replica) -> dict[str, Any]:
    cfg = copy.deepcopy(mock_config)
    cfg["replica"].update(replica)
    return cfg


# ======================================================================
# _build_replica
# ======================================================================


class TestBuildReplica:
    def test_no_url_means_no_replica(self, mock_config) -> None:
        from src.main import _build_replica

        assert _build_replica(_config(mock_config, url="")) is None

    @pytest.mark.asyncio
    async def test_sqlite_replica(self, mock_config, tmp_path: Path) -> None:
        from src.main import _build_replica
        from src.providers.catalog.replica_provider import MusicBrainzReplicaProvider

        url = f"sqlite+aiosqlite:///{tmp_path / 'mb.db'}"
        replica = _build_replica(_config(mock_config, url=url))

        assert isinstance(replica, MusicBrainzReplicaProvider)
        assert replica.get_provider_name() == "musicbrainz_replica"
        await replica.close()


# ======================================================================
# _build_all
# ======================================================================


class TestBuildAll:
    @pytest.mark.asyncio
    async def test_components_without_replica(self, mock_config) -> None:
        from src.main import _build_all

        components = _build_all(_settings(), _config(mock_config, url=""))

        assert set(components) == {
            "http_client",
            "throttle",
            "api_provider",
            "replica_provider",
            "health_monitor",
            "catalog_router",
            "graph_builder",
            "progress_tracker",
            "session_store",
        }
        assert components["replica_provider"] is None
        assert components["health_monitor"].has_replica is False
        assert components["throttle"].min_interval == 1.1
        assert components["api_provider"].get_provider_name() == "musicbrainz_api"
        assert len(components["session_store"]) == 0

        status = await components["catalog_router"].get_health_status()
        assert status.replica_available is False

        await components["throttle"].aclose()
        await components["http_client"].aclose()

    @pytest.mark.asyncio
    async def test_components_with_replica(self, mock_config, tmp_path: Path) -> None:
        from src.main import _build_all

        url = f"sqlite+aiosqlite:///{tmp_path / 'mb.db'}"
        components = _build_all(_settings(replica_url=url), _config(mock_config, url=url))

        assert components["replica_provider"] is not None
        assert components["health_monitor"].has_replica is True

        await components["throttle"].aclose()
        await components["http_client"].aclose()
        await components["replica_provider"].close()


# ======================================================================
# create_app
# ======================================================================


class TestCreateApp:
    def test_routes_registered(self) -> None:
        from src.main import create_app

        application = create_app()
        api_paths = application.openapi()["paths"]
        route_paths = {getattr(route, "path", None) for route in application.routes}

        assert isinstance(application, FastAPI)
        assert application.title == "chordgraph API"
        assert "/api/v1/artists/search" in api_paths
        assert "/api/v1/health" in api_paths
        assert "/api/v1/graph/sessions/{session_id}/depth" in api_paths
        assert "/ws/graph/{session_id}" in route_paths


# ======================================================================
# load_config
# ======================================================================


class TestLoadConfig:
    def test_defaults_when_file_missing(self, tmp_path: Path) -> None:
        config = load_config(str(tmp_path / "absent.yaml"), settings=_settings())

        assert config["throttle"]["min_interval"] == DEFAULT_CONFIG["throttle"]["min_interval"]
        assert config["replica"]["query_timeout"] == 5.0
        assert config["replica"]["url"] == ""

    def test_yaml_overrides_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("throttle:\n  min_interval: 2.5\nhealth:\n  ttl: 10\n", encoding="utf-8")

        config = load_config(str(path), settings=_settings())

        assert config["throttle"]["min_interval"] == 2.5
        assert config["health"]["ttl"] == 10
        # Untouched sibling keys survive the merge.
        assert config["upstream"]["max_attempts"] == 3

    def test_settings_override_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("replica:\n  url: sqlite+aiosqlite:///yaml.db\n  pool_size: 1\n")

        config = load_config(
            str(path),
            settings=_settings(replica_url="postgresql+asyncpg://mb@db/mb", replica_pool_size=9),
        )

        assert config["replica"]["url"] == "postgresql+asyncpg://mb@db/mb"
        assert config["replica"]["pool_size"] == 9

    def test_only_consumed_sections(self, tmp_path: Path) -> None:
        config = load_config(str(tmp_path / "absent.yaml"), settings=_settings())

        assert set(config) == {
            "app", "throttle", "upstream", "replica", "health", "expansion", "sessions", "api"
        }
        assert set(config["app"]) == {"name", "version"}
        assert set(config["expansion"]) == {"max_nodes"}

    def test_default_config_not_mutated(self, tmp_path: Path) -> None:
        before = copy.deepcopy(DEFAULT_CONFIG)
        path = tmp_path / "config.yaml"
        path.write_text("throttle:\n  min_interval: 9.0\n")

        load_config(str(path), settings=_settings())

        assert DEFAULT_CONFIG == before

    def test_replica_kind(self) -> None:
        assert _settings().replica_kind == "none"
        assert _settings(replica_url="sqlite+aiosqlite:///mb.db").replica_kind == "sqlite"
        assert _settings(replica_url="postgresql+asyncpg://x/y").replica_kind == "postgresql"
