"""Process-wide FIFO throttle for calls to the MusicBrainz web service.

MusicBrainz allows one request per second per client and answers 503 (and
eventually bans the address) when a client goes faster.  Every direct call to
the public web service therefore goes through one shared
:class:`RequestThrottle`, which runs queued operations one at a time, in
arrival order, with at least ``min_interval`` seconds between dispatches.

The throttle never retries and never deduplicates.  Retries belong to the
caller, which simply enqueues again.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, TypeVar

import structlog

from src.utils.logging import get_logger

_T = TypeVar("_T")

DEFAULT_MIN_INTERVAL = 1.1  # seconds; a small margin over the 1 req/s limit

_Job = tuple[Callable[[], Awaitable[Any]], "asyncio.Future[Any]"]


class RequestThrottle:
    """Serializes async operations with a minimum spacing between dispatches.

    A single worker task, started lazily by the first :meth:`enqueue`, owns
    the "last dispatch" timestamp.  Callers only ever put work on the queue
    and await a future.

    If a caller is cancelled while its operation is queued or running, the
    operation is *not* pulled from the queue: it still runs in its turn and
    the result is discarded.  Later callers are never blocked by it.

    Parameters
    ----------
    min_interval:
        Minimum seconds between the start of two consecutive operations.
    clock:
        Monotonic clock, injectable for tests.
    sleep:
        Async sleep function, injectable for tests.
    name:
        Label used in log events.
    """

    def __init__(
        self,
        min_interval: float = DEFAULT_MIN_INTERVAL,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        name: str = "musicbrainz",
    ) -> None:
        if min_interval < 0:
            raise ValueError("min_interval must be >= 0")
        self._min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._name = name
        self._queue: asyncio.Queue[_Job] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._last_dispatch = float("-inf")
        self._dispatched = 0
        self._closed = False
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def min_interval(self) -> float:
        return self._min_interval

    @property
    def pending(self) -> int:
        """Number of operations waiting to be dispatched."""
        return self._queue.qsize()

    @property
    def dispatched(self) -> int:
        """Total number of operations started since creation."""
        return self._dispatched

    async def enqueue(self, operation: Callable[[], Awaitable[_T]]) -> _T:
        """Queue *operation* and return its result once it has run.

        The operation's exception, if any, is raised here and only here.
        """
        if self._closed:
            raise RuntimeError(f"Request throttle '{self._name}' is closed")

        loop = asyncio.get_running_loop()
        future: asyncio.Future[_T] = loop.create_future()
        self._queue.put_nowait((operation, future))
        self._ensure_worker()
        return await future

    async def aclose(self) -> None:
        """Stop the worker and cancel every operation still waiting."""
        self._closed = True
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

        while not self._queue.empty():
            _, future = self._queue.get_nowait()
            if not future.done():
                future.cancel()

        self._logger.info("throttle_closed", throttle=self._name, dispatched=self._dispatched)

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(
                self._run(), name=f"request-throttle-{self._name}"
            )

    async def _run(self) -> None:
        while True:
            operation, future = await self._queue.get()
            try:
                waited = 0.0
                while (wait := self._last_dispatch + self._min_interval - self._clock()) > 0:
                    waited += wait
                    await self._sleep(wait)

                self._last_dispatch = self._clock()
                self._dispatched += 1
                self._logger.debug(
                    "throttle_dispatch",
                    throttle=self._name,
                    waited_ms=round(waited * 1000, 1),
                    pending=self._queue.qsize(),
                    abandoned=future.done(),
                )

                try:
                    result = await operation()
                except asyncio.CancelledError:
                    if not future.done():
                        future.cancel()
                    raise
                except Exception as exc:
                    if not future.done():
                        future.set_exception(exc)
                    else:
                        self._logger.debug(
                            "throttle_abandoned_operation_failed",
                            throttle=self._name,
                            error=str(exc),
                        )
                else:
                    if not future.done():
                        future.set_result(result)
            except asyncio.CancelledError:
                # Closed while waiting for the dispatch slot.
                if not future.done():
                    future.cancel()
                raise
            finally:
                self._queue.task_done()
