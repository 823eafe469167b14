"""Source-routing models: where a result came from and how healthy the replica is.

Every logical catalog operation returns a :class:`SourceResult` so the UI can
always show which data source served a request and how long it took; this is
how a user tells "no data" apart from "upstream degraded".
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


class DataSource(str, Enum):  # noqa: UP042 — StrEnum requires Python 3.11+
    """The data source that served a catalog call."""

    LOCAL = "local"  # the relational replica
    API = "api"      # the rate-limited public web service


class HealthState(str, Enum):  # noqa: UP042
    """Cached verdict about replica availability."""

    UNKNOWN = "unknown"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


class SourceResult(BaseModel, Generic[T]):
    """Data plus the source that served it and the caller-observed latency."""

    model_config = ConfigDict(frozen=True)

    data: T
    source: DataSource
    # Wall-clock milliseconds around the whole routed operation, including a
    # health probe when one was needed.
    latency_ms: float


class HealthStatus(BaseModel):
    """Snapshot of data-source health for the ``/health`` endpoint."""

    model_config = ConfigDict(frozen=True)

    state: HealthState
    replica_available: bool
    last_checked_at: datetime | None = None
    # The public web service is assumed reachable; it is only ever slow.
    api_available: bool = True
