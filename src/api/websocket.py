"""WebSocket endpoint for real-time graph expansion progress.

Connects a client to one graph session via the ``ProgressTracker`` listener
mechanism.  Each update is pushed as a JSON message:

    { "session_id": "abc", "level": 2, "current": 3, "total": 12, "message": "..." }

The current snapshot is sent right after the connection is accepted, so a
client that connects mid-expansion is immediately up to date.
"""

from __future__ import annotations

import contextlib

import structlog
from fastapi import WebSocket, WebSocketDisconnect

from src.models.expansion import ExpansionProgress
from src.pipeline.progress_tracker import ProgressTracker
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


def _message(session_id: str, progress: ExpansionProgress) -> dict:
    return {"session_id": session_id, **progress.model_dump()}


async def websocket_progress(websocket: WebSocket, session_id: str) -> None:
    """Stream expansion progress updates to the client over WebSocket.

    Parameters
    ----------
    websocket:
        The WebSocket connection managed by FastAPI / Starlette.
    session_id:
        The graph session to subscribe to.
    """
    progress_tracker: ProgressTracker = websocket.app.state.progress_tracker

    await websocket.accept()
    _logger.info("websocket_connected", session_id=session_id)

    async def _on_progress(sid: str, progress: ExpansionProgress) -> None:
        # The socket may close between updates; cleanup happens in finally.
        with contextlib.suppress(Exception):
            await websocket.send_json(_message(sid, progress))

    progress_tracker.register_listener(session_id, _on_progress)

    try:
        await websocket.send_json(_message(session_id, progress_tracker.get_status(session_id)))

        # Blocks until the client disconnects.
        while True:
            await websocket.receive_text()

    except WebSocketDisconnect:
        _logger.info("websocket_disconnected", session_id=session_id)

    finally:
        progress_tracker.unregister_listener(session_id, _on_progress)
        _logger.debug("websocket_listener_cleaned_up", session_id=session_id)
