"""chordgraph configuration: env-backed ``Settings`` and the layered YAML loader."""

from src.config.loader import DEFAULT_CONFIG, load_config
from src.config.settings import Settings

__all__ = ["DEFAULT_CONFIG", "Settings", "load_config"]
