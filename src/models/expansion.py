"""Graph expansion session models.

These describe the state machine of a per-session expansion engine and the
report it returns after each expansion, including the source/latency of every
relationship fetch it made.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from src.models.source import DataSource

MIN_DEPTH = 1
MAX_DEPTH = 4

EXPANSION_DEPTH_LABELS: dict[int, str] = {
    1: "Level 1 - Direct connections only",
    2: "Level 2 - Include members' other bands",
    3: "Level 3 - Two degrees of separation",
    4: "Level 4 - Three degrees (large graph)",
}


class ExpansionState(str, Enum):  # noqa: UP042 — StrEnum requires Python 3.11+
    """``IDLE -> EXPANDING -> IDLE``."""

    IDLE = "idle"
    EXPANDING = "expanding"


class FetchRecord(BaseModel):
    """Telemetry for one relationship fetch made during an expansion."""

    model_config = ConfigDict(frozen=True)

    node_id: str
    source: DataSource
    latency_ms: float


class ExpansionProgress(BaseModel):
    """Determinate progress across the current level's frontier."""

    model_config = ConfigDict(frozen=True)

    level: int = 0
    current: int = 0
    total: int = 0
    message: str = ""


class ExpansionReport(BaseModel):
    """Outcome of one ``expand_to_depth`` or ``expand_node`` call."""

    model_config = ConfigDict(frozen=True)

    target_depth: int
    # Number of BFS levels whose frontier was processed.
    levels_completed: int = 0
    expanded: list[str] = Field(default_factory=list)
    # Nodes whose fetch failed; they stay collapsed.
    failed: list[str] = Field(default_factory=list)
    fetches: list[FetchRecord] = Field(default_factory=list)
    # True when the node cap stopped the expansion early.
    truncated: bool = False
