"""
Concurrency Gate

Bounds the number of in-flight calls to the completion service and paces
dispatch start times, no matter how many callers enqueue work at once.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Backlog size above which queue depth is logged
BACKLOG_LOG_THRESHOLD = 2


@dataclass
class QueueEntry:
    """A deferred task waiting for a dispatch slot."""

    task: Callable[[], Awaitable[Any]]
    future: asyncio.Future
    enqueued_at: float = field(default=0.0)


class ConcurrencyGate:
    """
    FIFO dispatcher with a concurrency cap and minimum dispatch spacing.

    Dispatch order is FIFO among waiting entries. Completion order is not:
    a fast call dispatched later may finish before a slow one dispatched
    earlier. A task's own exception is delivered unchanged to its waiter.

    Example:
        gate = ConcurrencyGate(max_concurrent=3, min_spacing=0.3)
        response = await gate.enqueue(lambda: client.chat.completions.create(...))
    """

    def __init__(
        self,
        max_concurrent: int = 3,
        min_spacing: float = 0.3,
        avg_call_seconds: float = 3.0,
    ):
        """
        Initialize the gate.

        Args:
            max_concurrent: Maximum tasks executing at once
            min_spacing: Minimum seconds between consecutive dispatches
            avg_call_seconds: Assumed call duration for wait estimates
        """
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self._max_concurrent = max_concurrent
        self._min_spacing = max(min_spacing, 0.0)
        self._avg_call_seconds = avg_call_seconds
        self._queue: deque[QueueEntry] = deque()
        self._active = 0
        self._last_dispatch: float | None = None
        self._wakeup: asyncio.TimerHandle | None = None
        self._running: set[asyncio.Task] = set()

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def active_count(self) -> int:
        return self._active

    @property
    def queue_length(self) -> int:
        return len(self._queue)

    async def enqueue(self, task: Callable[[], Awaitable[T]]) -> T:
        """
        Queue a zero-argument async operation and wait for its outcome.

        Args:
            task: Callable returning an awaitable, invoked once dispatched

        Returns:
            Whatever the task returns

        Raises:
            Exception: Whatever the task raises
        """
        loop = asyncio.get_running_loop()
        entry = QueueEntry(task=task, future=loop.create_future(), enqueued_at=loop.time())
        self._queue.append(entry)

        if len(self._queue) > BACKLOG_LOG_THRESHOLD:
            logger.info(
                f"LLM queue backlog: {len(self._queue)} waiting, "
                f"{self._active}/{self._max_concurrent} active"
            )

        self._pump()
        return await entry.future

    def is_busy(self) -> bool:
        """Whether new work would have to wait."""
        return len(self._queue) > 0 or self._active >= self._max_concurrent

    def get_estimated_wait_time(self) -> int:
        """Rough wait in seconds for a task enqueued now."""
        pending = len(self._queue) + self._active
        return math.ceil(pending / self._max_concurrent * self._avg_call_seconds)

    def get_stats(self) -> dict[str, int]:
        return {
            "queue_length": len(self._queue),
            "active_count": self._active,
            "max_concurrent": self._max_concurrent,
        }

    def _pump(self) -> None:
        """Dispatch as many waiting entries as the cap and spacing allow."""
        loop = asyncio.get_running_loop()

        while self._queue and self._active < self._max_concurrent:
            now = loop.time()
            if self._last_dispatch is not None:
                remaining = self._last_dispatch + self._min_spacing - now
                if remaining > 0:
                    if self._wakeup is None:
                        self._wakeup = loop.call_later(remaining, self._on_wakeup)
                    return

            entry = self._queue.popleft()
            self._active += 1
            self._last_dispatch = now
            running = loop.create_task(self._run(entry))
            self._running.add(running)
            running.add_done_callback(self._running.discard)

    def _on_wakeup(self) -> None:
        self._wakeup = None
        self._pump()

    async def _run(self, entry: QueueEntry) -> None:
        try:
            result = await entry.task()
        except asyncio.CancelledError:
            entry.future.cancel()
            raise
        except Exception as e:
            if not entry.future.done():
                entry.future.set_exception(e)
        else:
            if not entry.future.done():
                entry.future.set_result(result)
        finally:
            self._active -= 1
            self._pump()
