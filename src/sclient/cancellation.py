"""Cooperative cancellation for in-flight calls.

Each logical call owns one :class:`CancellationHandle`, registered in the
client's :class:`CancellationRegistry` under the caller's cancel key (or a
generated anonymous key). Cancelling a key signals the handle; the owning
call notices the signal at its next suspension point (before a dispatch,
during a dispatch, or during a backoff wait) and ends with a ``cancelled``
error.

Both classes are safe to use from several threads. Signals sent from a
thread other than the one running the handle's event loop are marshalled
onto that loop.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import uuid

logger = logging.getLogger(__name__)


class CancellationHandle:
    """Cancellation token bound to one logical call."""

    def __init__(self, key: str):
        self.key = key
        self._lock = threading.Lock()
        self._cancelled = False
        self._closed = False
        self._event = asyncio.Event()
        try:
            self._loop: asyncio.AbstractEventLoop | None = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def closed(self) -> bool:
        return self._closed

    def cancel(self) -> bool:
        """Signal cancellation.

        Returns:
            True if this call delivered the signal, False if the handle was
            already cancelled or closed.
        """
        with self._lock:
            if self._cancelled or self._closed:
                return False
            self._cancelled = True

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if self._loop is None or running is self._loop:
            self._event.set()
        else:
            try:
                self._loop.call_soon_threadsafe(self._event.set)
            except RuntimeError:
                # Loop already closed; the flag alone is enough
                logger.debug(f"Event loop closed before cancel of {self.key} was delivered")
        return True

    def close(self) -> None:
        """Mark the handle terminal. Later signals become no-ops."""
        with self._lock:
            self._closed = True

    async def wait(self) -> None:
        """Wait until the handle is cancelled."""
        if self._cancelled:
            return
        await self._event.wait()

    async def sleep(self, delay: float) -> bool:
        """Sleep for ``delay`` seconds unless cancelled first.

        Returns:
            True if the handle was cancelled before or during the sleep.
        """
        if self._cancelled:
            return True
        if delay <= 0:
            return self._cancelled
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return self._cancelled
        return True

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "closed" if self._closed else "live"
        return f"CancellationHandle(key={self.key!r}, {state})"


class CancellationRegistry:
    """Map cancel keys to the handles of live calls.

    Several calls may share one key; cancelling the key signals all of them.
    Signalled handles are removed from the registry immediately, so
    :meth:`cancel_all` leaves it empty. The owning call removes its handle
    once more when it terminates, which is a no-op if it is already gone.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._handles: dict[str, list[CancellationHandle]] = {}

    def register(self, key: str | None = None) -> tuple[str, CancellationHandle]:
        """Create and register a handle.

        Args:
            key: Cancel key. An anonymous key is generated when omitted.

        Returns:
            The key and the new handle
        """
        if key is None:
            key = f"anon-{uuid.uuid4().hex}"
        handle = CancellationHandle(key)
        with self._lock:
            self._handles.setdefault(key, []).append(handle)
        return key, handle

    def remove(self, key: str, handle: CancellationHandle) -> None:
        """Remove ``handle`` from ``key`` and close it."""
        handle.close()
        with self._lock:
            handles = self._handles.get(key)
            if not handles:
                return
            try:
                handles.remove(handle)
            except ValueError:
                return
            if not handles:
                del self._handles[key]

    def cancel(self, key: str) -> None:
        """Signal every live call registered under ``key``. Unknown keys are ignored."""
        with self._lock:
            handles = self._handles.pop(key, [])
        for handle in handles:
            handle.cancel()
        if handles:
            logger.debug(f"Cancelled {len(handles)} call(s) under key {key!r}")

    def cancel_all(self) -> None:
        """Signal every registered call and empty the registry."""
        with self._lock:
            handles = [handle for group in self._handles.values() for handle in group]
            self._handles.clear()
        for handle in handles:
            handle.cancel()
        if handles:
            logger.debug(f"Cancelled all {len(handles)} in-flight call(s)")

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._handles)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._handles

    def __len__(self) -> int:
        with self._lock:
            return sum(len(group) for group in self._handles.values())
