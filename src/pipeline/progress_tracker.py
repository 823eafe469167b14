"""Expansion progress tracking with callback-based listener notification.

Tracks the current level and ``(current, total)`` position of each graph
session's expansion and broadcasts updates to registered listener callbacks.
Listeners are keyed by session ID so several sessions can expand at the
same time without cross-talk.

    GraphExpansionEngine ──update()──→ ProgressTracker ──callback()──→ WebSocket handler
                                                       ──→ (any other listener)

Listener errors are caught and logged so a dropped WebSocket cannot stall
an expansion.  Both sync and async callbacks are supported.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import structlog

from src.models.expansion import ExpansionProgress
from src.utils.logging import get_logger


class ProgressTracker:
    """Tracks and broadcasts expansion progress via callbacks.

    External consumers (e.g. WebSocket handlers) register callbacks that are
    invoked with ``(session_id, progress)`` whenever :meth:`update` is called
    for that session.
    """

    def __init__(self) -> None:
        self._statuses: dict[str, ExpansionProgress] = {}
        self._listeners: dict[str, list[Callable]] = {}
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def update(
        self,
        session_id: str,
        level: int,
        current: int,
        total: int,
        message: str = "",
    ) -> None:
        """Record a progress update and notify all registered listeners.

        Parameters
        ----------
        session_id:
            The graph session to update.
        level:
            BFS level being expanded (1-based).
        current:
            Frontier nodes processed so far at this level.
        total:
            Frontier size at this level.
        message:
            Human-readable status message.
        """
        total = max(0, total)
        current = max(0, min(current, total))
        progress = ExpansionProgress(level=level, current=current, total=total, message=message)
        self._statuses[session_id] = progress

        self._logger.debug(
            "progress_update",
            session_id=session_id,
            level=level,
            current=current,
            total=total,
        )

        await self._notify_listeners(session_id, progress)

    def register_listener(self, session_id: str, callback: Callable) -> None:
        """Register a callback accepting ``(session_id, progress)`` for a session."""
        listeners = self._listeners.setdefault(session_id, [])
        if callback not in listeners:
            listeners.append(callback)
            self._logger.debug(
                "listener_registered",
                session_id=session_id,
                total_listeners=len(listeners),
            )

    def unregister_listener(self, session_id: str, callback: Callable) -> None:
        listeners = self._listeners.get(session_id, [])
        if callback in listeners:
            listeners.remove(callback)
            if not listeners:
                self._listeners.pop(session_id, None)
            self._logger.debug(
                "listener_unregistered",
                session_id=session_id,
                remaining_listeners=len(listeners),
            )

    def get_status(self, session_id: str) -> ExpansionProgress:
        """Latest progress for a session; zeroed when nothing was reported yet."""
        return self._statuses.get(session_id, ExpansionProgress())

    def clear(self, session_id: str) -> None:
        """Forget a session's progress and listeners."""
        self._statuses.pop(session_id, None)
        self._listeners.pop(session_id, None)

    def __contains__(self, session_id: object) -> bool:
        """True while any progress or listener is held for *session_id*."""
        return session_id in self._statuses or session_id in self._listeners

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _notify_listeners(self, session_id: str, progress: ExpansionProgress) -> None:
        # Iterate over a copy: a listener may unregister itself.
        for callback in list(self._listeners.get(session_id, [])):
            try:
                result = callback(session_id, progress)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                self._logger.warning(
                    "listener_callback_error",
                    session_id=session_id,
                    error=str(exc),
                    callback=getattr(callback, "__name__", repr(callback)),
                )
