"""Replica health tracking with a TTL-bounded cached verdict.

The monitor answers one question for the source router: "should this call
try the local replica?"  The verdict lives in an immutable
:class:`HealthSnapshot` that is replaced as a whole, so readers never see a
half-updated state and never need a lock.  Only probes take the lock, and
callers that arrive while a probe is running wait for it and reuse its
verdict instead of probing again.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog

from src.interfaces.catalog_provider import IReplicaProvider
from src.models.source import HealthState, HealthStatus
from src.utils.logging import get_logger

DEFAULT_HEALTH_TTL = 30.0  # seconds


@dataclass(frozen=True)
class HealthSnapshot:
    """One replica health verdict; replaced, never mutated."""

    state: HealthState = HealthState.UNKNOWN
    last_checked_at: datetime | None = None
    # Monotonic timestamp of the verdict, used for the TTL.
    checked_at_monotonic: float | None = None


class ReplicaHealthMonitor:
    """Caches replica availability and re-probes it when the verdict expires.

    Parameters
    ----------
    replica:
        The replica to probe, or ``None`` when no replica is configured (the
        verdict is then permanently ``unavailable``).
    ttl:
        Seconds a verdict stays valid.  After that, the next caller probes.
    clock:
        Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        replica: IReplicaProvider | None,
        *,
        ttl: float = DEFAULT_HEALTH_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._replica = replica
        self._ttl = ttl
        self._clock = clock
        self._snapshot = HealthSnapshot()
        self._probe_lock = asyncio.Lock()
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> HealthSnapshot:
        return self._snapshot

    @property
    def has_replica(self) -> bool:
        return self._replica is not None

    def is_stale(self, snapshot: HealthSnapshot | None = None) -> bool:
        snap = snapshot or self._snapshot
        if snap.state is HealthState.UNKNOWN or snap.checked_at_monotonic is None:
            return True
        return self._clock() - snap.checked_at_monotonic >= self._ttl

    async def is_available(self) -> bool:
        """Return the cached verdict, probing first when it is unknown or expired."""
        if self._replica is None:
            return False
        if self.is_stale():
            await self.probe()
        return self._snapshot.state is HealthState.AVAILABLE

    async def status(self) -> HealthStatus:
        """Current :class:`HealthStatus`, refreshed if the verdict is stale."""
        await self.is_available()
        snap = self._snapshot
        return HealthStatus(
            state=snap.state if self._replica is not None else HealthState.UNAVAILABLE,
            replica_available=snap.state is HealthState.AVAILABLE,
            last_checked_at=snap.last_checked_at,
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def probe(self) -> bool:
        """Ping the replica and record the verdict.

        Concurrent callers share one probe: whoever gets the lock second
        sees that the snapshot changed while it waited and returns that
        verdict without pinging again.
        """
        if self._replica is None:
            return False

        observed = self._snapshot
        async with self._probe_lock:
            if self._snapshot is not observed:
                return self._snapshot.state is HealthState.AVAILABLE

            pinged_from = self._snapshot
            started = time.perf_counter()
            try:
                ok = await self._replica.ping()
            except Exception as exc:
                self._logger.warning("replica_probe_error", error=str(exc))
                ok = False

            # A query failure reported during the ping is newer than its answer.
            if (
                self._snapshot is not pinged_from
                and self._snapshot.state is HealthState.UNAVAILABLE
            ):
                self._logger.info("replica_probe_superseded", ping_ok=ok)
                return False

            self._swap(HealthState.AVAILABLE if ok else HealthState.UNAVAILABLE)
            self._logger.info(
                "replica_probe",
                available=ok,
                latency_ms=round((time.perf_counter() - started) * 1000, 1),
            )
            return ok

    def mark_unavailable(self, reason: str = "") -> None:
        """Demote the replica immediately after a failed query."""
        if self._replica is None:
            return
        was = self._snapshot.state
        self._swap(HealthState.UNAVAILABLE)
        if was is not HealthState.UNAVAILABLE:
            self._logger.warning("replica_demoted", reason=reason)

    async def force_recheck(self) -> bool:
        """Discard the cached verdict and probe now, bypassing the TTL."""
        self._snapshot = HealthSnapshot()
        available = await self.probe()
        self._logger.info("replica_recheck", available=available)
        return available

    def _swap(self, state: HealthState) -> None:
        self._snapshot = HealthSnapshot(
            state=state,
            last_checked_at=datetime.now(timezone.utc),
            checked_at_monotonic=self._clock(),
        )
