"""Cooperative cancellation tokens handed to source fetches.

Cancelling a token only signals the fetch to give up; the fetch may still
complete.  Whoever consumes the result checks ``is_cancellation_requested``
before acting on it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


class CancellationToken:
    """Read-only view of a CancellationTokenSource."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def is_cancellation_requested(self) -> bool:
        return self._event.is_set()

    def on_cancellation_requested(self, callback: Callable[[], None]) -> None:
        """Run *callback* once the token is cancelled (immediately if it already is)."""
        if self._event.is_set():
            callback()
            return
        self._callbacks.append(callback)

    async def wait(self) -> None:
        """Block until cancellation is requested."""
        await self._event.wait()

    def _fire(self) -> None:
        if self._event.is_set():
            return
        self._event.set()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Cancellation callback %r failed", callback)


class CancellationTokenSource:
    """Owner side of a token: the only party allowed to cancel it."""

    def __init__(self) -> None:
        self.token = CancellationToken()

    def cancel(self) -> None:
        self.token._fire()
