"""Debounce and single-flight primitives for refresh orchestration."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import Any, AsyncIterator, Awaitable, Callable

logger = logging.getLogger(__name__)


class FlightInProgressError(RuntimeError):
    """Raised when a single-flight section is entered while already held."""


class SingleFlightScheduler:
    """Cancelable delayed task paired with a single-flight flag.

    ``debounce`` coalesces bursts of triggers so only the last one inside
    ``delay`` seconds runs. ``try_acquire``/``release`` guard the expensive
    operation itself; the check and the set happen without yielding to the
    event loop.
    """

    def __init__(self, delay: float):
        self._delay = max(0.0, float(delay))
        self._pending: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[None]] = set()
        self._busy = False

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    @property
    def busy(self) -> bool:
        return self._busy

    def debounce(self, callback: Callable[[], Awaitable[Any]]) -> None:
        """Run ``callback`` after the delay, replacing any pending run."""

        self.cancel_pending()

        async def _runner() -> None:
            await asyncio.sleep(self._delay)
            task = asyncio.current_task()
            if self._pending is task:
                self._pending = None
            if task is not None:
                self._background.add(task)
                task.add_done_callback(self._background.discard)
            try:
                await callback()
            except Exception as exc:  # pragma: no cover - background safety net
                logger.exception("Debounced task failed: %s", exc)

        self._pending = asyncio.create_task(_runner())

    def spawn(self, coro: Awaitable[Any]) -> asyncio.Task[None]:
        """Track a background coroutine so ``join`` can wait for it."""

        async def _runner() -> None:
            try:
                await coro
            except Exception as exc:  # pragma: no cover - background safety net
                logger.exception("Background task failed: %s", exc)

        task = asyncio.create_task(_runner())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def cancel_pending(self) -> None:
        # A run leaves ``_pending`` once its delay elapses, so only sleeping
        # runs are canceled here.
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None

    def try_acquire(self) -> bool:
        if self._busy:
            return False
        self._busy = True
        return True

    def release(self) -> None:
        self._busy = False

    @asynccontextmanager
    async def flight(self) -> AsyncIterator[None]:
        """Hold the single-flight flag for the duration of the block."""

        if not self.try_acquire():
            raise FlightInProgressError("Operation already in progress")
        try:
            yield
        finally:
            self.release()

    async def join(self) -> None:
        """Wait for the pending debounced run and tracked background work."""

        while True:
            tasks = [task for task in (self._pending, *self._background) if task]
            tasks = [task for task in tasks if not task.done()]
            if not tasks:
                return
            with suppress(asyncio.CancelledError):
                await asyncio.gather(*tasks, return_exceptions=True)

    async def dispose(self) -> None:
        """Cancel the pending debounced run; in-flight work is not interrupted."""

        task = self._pending
        self._pending = None
        if task is None or task.done():
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
