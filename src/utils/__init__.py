"""Utility modules for chordgraph.

- **errors** -- Domain-specific exception hierarchy rooted at ChordGraphError;
  each layer raises its own subclass so callers can handle failures
  granularly without broad ``except Exception`` blocks.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
- **partial_dates** -- Parsing and display of MusicBrainz partial dates
  ("1994", "1994-05", "1994-05-12").
"""

# -- Domain exception hierarchy --------------------------------------------
from src.utils.errors import (
    CatalogUnavailableError,
    ChordGraphError,
    ExpansionInProgressError,
    GraphError,
    InvalidDepthError,
    RateLimitError,
    ReplicaUnavailableError,
    TransientUpstreamError,
    UnknownNodeError,
    UpstreamError,
)

# -- Structured logging setup ----------------------------------------------
from src.utils.logging import configure_logging, get_logger

# -- Partial date helpers --------------------------------------------------
from src.utils.partial_dates import (
    PartialDate,
    format_partial_date,
    parse_partial_date,
    parse_year,
)

__all__ = [
    "CatalogUnavailableError",
    "ChordGraphError",
    "ExpansionInProgressError",
    "GraphError",
    "InvalidDepthError",
    "PartialDate",
    "RateLimitError",
    "ReplicaUnavailableError",
    "TransientUpstreamError",
    "UnknownNodeError",
    "UpstreamError",
    "configure_logging",
    "format_partial_date",
    "get_logger",
    "parse_partial_date",
    "parse_year",
]
