"""YAML configuration loader with environment variable overrides.

Configuration is loaded in layers (later layers override earlier):

    1. config/config.yaml  — static defaults checked into the repo
    2. .env file           — local developer overrides (not committed)
    3. Environment vars    — set at deploy time

:func:`load_config` reads the YAML file first, then deep-merges the
environment-based values from :class:`~src.config.settings.Settings` on top.
"""

from pathlib import Path

import yaml

from src.config.settings import Settings

# Used when config/config.yaml is missing, so the service still starts with
# safe values for the MusicBrainz rate limit.
DEFAULT_CONFIG: dict = {
    "app": {"name": "chordgraph", "version": "0.1.0"},
    "throttle": {"min_interval": 1.1},
    "upstream": {
        "timeout": 10.0,
        "max_attempts": 3,
        "retry_backoff": 1.0,
        "retry_backoff_cap": 5.0,
    },
    "replica": {
        "query_timeout": 5.0,
        "ping_timeout": 2.0,
        "connect_timeout": 2.0,
        "max_overflow": 5,
    },
    "health": {"ttl": 30.0},
    "expansion": {"max_nodes": 500},
    "sessions": {"max_sessions": 100, "ttl": 3600},
    "api": {"cors_origins": ["http://localhost:3000", "http://127.0.0.1:3000"]},
}


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Environment variables (via Settings) override YAML values where keys overlap.

    Args:
        path: Path to the YAML configuration file.
        settings: Settings to merge; a fresh ``Settings()`` when omitted.

    Returns:
        Fully resolved configuration dictionary.
    """
    config: dict = {}
    _deep_merge(config, DEFAULT_CONFIG)

    config_path = Path(path)
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}
        _deep_merge(config, yaml_config)

    settings = settings or Settings()
    env_overrides = {
        "replica": {
            "url": settings.replica_url,
            "schema": settings.replica_schema,
            "pool_size": settings.replica_pool_size,
            "pool_timeout": settings.replica_pool_timeout,
        },
    }

    _deep_merge(config, env_overrides)
    return config


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        elif isinstance(value, dict):
            base[key] = {}
            _deep_merge(base[key], value)
        else:
            base[key] = value
