"""Non-blocking progress notification for streamed transfers."""

from __future__ import annotations

import asyncio
import inspect
import logging

from .types import ProgressCallback

logger = logging.getLogger(__name__)


class ProgressNotifier:
    """Deliver ``(bytes_so_far, total)`` notifications to a progress callback.

    Transfers call :meth:`advance` as bytes move. The callback is never run
    inline: each notification is scheduled on the event loop, so a slow
    callback cannot stall the transfer. :meth:`drain` waits for everything
    scheduled so far, and is awaited before a call returns.
    """

    def __init__(self, callback: ProgressCallback, total: int | None = None):
        self._callback = callback
        self._is_async = inspect.iscoroutinefunction(callback)
        self._loop = asyncio.get_running_loop()
        self._tasks: set[asyncio.Task] = set()
        self.total = total
        self.transferred = 0

    def start(self, total: int | None) -> None:
        """Reset the counters at the start of a (re)tried transfer."""
        self.total = total
        self.transferred = 0

    def advance(self, count: int) -> None:
        """Record ``count`` more bytes and schedule a notification.

        Safe to call from any thread.
        """
        if count <= 0:
            return
        self.transferred += count
        self._loop.call_soon_threadsafe(self._dispatch, self.transferred, self.total)

    def _dispatch(self, transferred: int, total: int | None) -> None:
        if self._is_async:
            task = self._loop.create_task(self._run_async(transferred, total))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            return
        try:
            self._callback(transferred, total)
        except Exception:
            logger.exception("Progress callback failed")

    async def _run_async(self, transferred: int, total: int | None) -> None:
        try:
            await self._callback(transferred, total)
        except Exception:
            logger.exception("Progress callback failed")

    async def drain(self) -> None:
        """Wait until every notification scheduled so far has been delivered."""
        # Let call_soon_threadsafe handles queued so far run first
        await asyncio.sleep(0)
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
