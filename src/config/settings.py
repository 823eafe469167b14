"""Application settings loaded from environment variables via pydantic-settings.

Values come from, in priority order:

    1. Environment variables, e.g. ``REPLICA_URL=postgresql+asyncpg://...``
    2. The ``.env`` file in the project root (local development)
    3. The defaults below

Field ``replica_url`` maps to env var ``REPLICA_URL`` and so on.  Tunables
that rarely change per deployment (throttle spacing, retry policy, health
TTL, expansion caps) live in ``config/config.yaml`` and are read through
:func:`src.config.loader.load_config`; the fields here override them.

Use ``.env.example`` as the template for a local ``.env``.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """chordgraph application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === MusicBrainz web service ===
    # MusicBrainz requires a meaningful User-Agent: "app/version ( contact )".
    musicbrainz_app_name: str = "chordgraph"
    musicbrainz_app_version: str = "0.1.0"
    musicbrainz_contact: str = ""
    musicbrainz_api_url: str = "https://musicbrainz.org/ws/2"

    # === Local replica ===
    # Empty string = no replica configured; every call goes to the web service.
    replica_url: str = ""
    replica_schema: str = "musicbrainz"
    replica_pool_size: int = 5
    replica_pool_timeout: float = 2.0

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    @property
    def replica_kind(self) -> str:
        """``"postgresql"``, ``"sqlite"`` or ``"none"``, for health reporting."""
        if not self.replica_url:
            return "none"
        return "sqlite" if self.replica_url.startswith("sqlite") else "postgresql"
