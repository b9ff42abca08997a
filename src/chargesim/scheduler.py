"""Fixed-period tick scheduling on the asyncio event loop."""

import asyncio
import logging
import math
from typing import Callable, Optional

from .logging_utils import log_error

logger = logging.getLogger(__name__)

TickCallback = Callable[[], None]


class SchedulerError(RuntimeError):
    """Raised when starting a scheduler that is already running."""


class PeriodicScheduler:
    """
    Invokes a callback immediately and then on every period boundary.

    Boundaries are anchored at the start time, so a slow callback does not
    push later ticks back. Missed boundaries are skipped rather than replayed.
    ``cancel()`` is idempotent and may be called from inside the callback.
    """

    def __init__(self):
        self._task: Optional[asyncio.Task] = None
        self._callback: Optional[TickCallback] = None
        self._period = 0.0
        self._active = False
        self.ticks = 0

    @property
    def active(self) -> bool:
        return self._active

    @property
    def period(self) -> float:
        return self._period

    def start(self, callback: TickCallback, period_seconds: float):
        """
        Begin ticking. The first invocation happens synchronously, before
        this method returns.

        Args:
            callback: Synchronous tick handler
            period_seconds: Time between ticks

        Raises:
            SchedulerError: if the scheduler is already running
        """
        if self._active:
            raise SchedulerError("Scheduler is already running")
        if period_seconds <= 0:
            raise ValueError(f"period_seconds must be positive, got {period_seconds}")

        loop = asyncio.get_running_loop()
        self._callback = callback
        self._period = period_seconds
        self._active = True
        self.ticks = 0

        started_at = loop.time()
        try:
            self._fire()
        except Exception:
            self._active = False
            raise
        if self._active:
            self._task = loop.create_task(self._run(started_at))

    def cancel(self):
        """Stop ticking. No further callbacks fire after this returns."""
        if self._active:
            logger.debug(f"Scheduler cancelled after {self.ticks} tick(s)")
        self._active = False
        task, self._task = self._task, None
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()

    def _owns_loop(self) -> bool:
        # A cancel followed by a restart hands ticking to a new task
        return self._active and self._task is asyncio.current_task()

    def _fire(self):
        self.ticks += 1
        self._callback()

    async def _run(self, started_at: float):
        loop = asyncio.get_running_loop()
        boundary = 1
        while self._owns_loop():
            deadline = started_at + boundary * self._period
            await asyncio.sleep(max(0.0, deadline - loop.time()))
            if not self._owns_loop():
                break
            try:
                self._fire()
            except Exception as e:
                log_error(
                    logger,
                    "scheduler_callback_error",
                    f"Tick callback failed, stopping scheduler: {e}",
                    exc_info=e,
                )
                self._active = False
                break
            elapsed = loop.time() - started_at
            boundary = max(boundary + 1, math.floor(elapsed / self._period) + 1)
