"""Per-run cancellation token.

vcs-runner runtime v0.1.0

A token is created for every run and never reused. Cancelling it:
- runs the registered callbacks (the runner uses one to terminate the child,
  which also ends a blocking read in synchronous mode)
- cancels the bound anyio.CancelScope, hopping onto the owning event loop
  when called from another thread
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Callable

import anyio

__all__ = ["CancellationToken"]

logger = logging.getLogger(__name__)


class CancellationToken:
    """Revocable signal for one run.

    Thread-safe: cancel() may be called from any thread, any number of times.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cancelled = False
        self._callbacks: list[Callable[[], None]] = []
        self._scope: anyio.CancelScope | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._loop_thread: int | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Register a callback for cancel(). Runs immediately if already cancelled."""
        with self._lock:
            if not self._cancelled:
                self._callbacks.append(callback)
                return
        callback()

    def bind(self, scope: anyio.CancelScope) -> None:
        """Attach the scope of the task doing I/O for this run.

        Must be called from inside that task. A token that was cancelled
        before binding cancels the scope right away.
        """
        with self._lock:
            self._scope = scope
            self._loop = asyncio.get_running_loop()
            self._loop_thread = threading.get_ident()
            cancelled = self._cancelled
        if cancelled:
            scope.cancel()

    def unbind(self) -> None:
        with self._lock:
            self._scope = None
            self._loop = None
            self._loop_thread = None

    def cancel(self) -> bool:
        """Request cancellation.

        Returns:
            True if this call did the cancelling, False if it already was
        """
        with self._lock:
            if self._cancelled:
                return False
            self._cancelled = True
            callbacks, self._callbacks = self._callbacks, []
            scope, loop, loop_thread = self._scope, self._loop, self._loop_thread

        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.warning(f"Error in cancel callback: {e}")

        if scope is not None and loop is not None:
            if threading.get_ident() == loop_thread:
                scope.cancel()
            elif not loop.is_closed():
                loop.call_soon_threadsafe(scope.cancel)

        return True
