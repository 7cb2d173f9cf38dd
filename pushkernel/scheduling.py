"""
Push Kernel — Turn Schedulers

A scheduler defers a callback to the next turn. The observer uses one to
deliver each turn's aggregate exactly once, after the synchronous burst of
mutations that produced it.

  AsyncioScheduler — loop.call_soon on the running (or given) event loop
  ManualScheduler  — queue drained by an explicit run_pending() turn boundary
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Callable
from typing import Protocol

from pushkernel.errors import SchedulingError

logger = logging.getLogger(__name__)


class Scheduler(Protocol):
    def schedule(self, callback: Callable[[], None]) -> None: ...


class AsyncioScheduler:
    """Run callbacks on the next iteration of an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def schedule(self, callback: Callable[[], None]) -> None:
        loop = self._loop
        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                raise SchedulingError(
                    "no running event loop to defer the flush onto; pass a ManualScheduler"
                ) from None
        loop.call_soon(callback)


class ManualScheduler:
    """
    Queue callbacks until the host calls run_pending().

    Callbacks scheduled while the queue is being drained run on the next
    call, so one run_pending() is exactly one turn.
    """

    def __init__(self) -> None:
        self._queue: deque[Callable[[], None]] = deque()

    def schedule(self, callback: Callable[[], None]) -> None:
        self._queue.append(callback)

    @property
    def pending(self) -> int:
        return len(self._queue)

    def run_pending(self) -> int:
        """Run every callback queued before this call. Returns how many ran."""
        batch = list(self._queue)
        self._queue.clear()
        for callback in batch:
            callback()
        if batch:
            logger.debug("scheduler: ran %d deferred callback(s)", len(batch))
        return len(batch)
