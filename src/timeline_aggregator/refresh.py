"""Delayed calls and the refresh-coalescing policy."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from timeline_aggregator.core.metrics import TimelineMetrics

logger = logging.getLogger(__name__)


class DelayedCall:
    """Runs *callback* once after *delay_s*; rescheduling restarts the wait."""

    def __init__(self, callback: Callable[[], None], delay_s: float, *, name: str) -> None:
        self._callback = callback
        self._delay_s = delay_s
        self._name = name
        self._task: asyncio.Task | None = None

    @property
    def pending(self) -> bool:
        return self._task is not None

    def schedule(self) -> None:
        self.cancel()
        self._task = asyncio.create_task(self._run(), name=self._name)

    def cancel(self) -> None:
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _run(self) -> None:
        await asyncio.sleep(self._delay_s)
        self._task = None
        try:
            self._callback()
        except Exception:
            logger.exception("Delayed call %s failed", self._name)


class RefreshScheduler:
    """Decides when a finished request is pushed to the presentation layer.

    The first result after the list was empty, and any result that lands
    while nothing else is outstanding, refreshes immediately.  Results that
    land while other sources are still loading are coalesced: each one
    restarts a short debounce window and a single refresh fires when it
    elapses (or earlier, when the last request finishes).
    """

    def __init__(
        self,
        refresh: Callable[[], None],
        *,
        has_pending: Callable[[], bool],
        delay_s: float,
        metrics: TimelineMetrics,
    ) -> None:
        self._refresh = refresh
        self._has_pending = has_pending
        self._metrics = metrics
        self._debounce = DelayedCall(self._refresh_debounced, delay_s, name="timeline-refresh")

    @property
    def debouncing(self) -> bool:
        return self._debounce.pending

    def notify(self, *, had_items: bool) -> None:
        if had_items and self._has_pending():
            self._debounce.schedule()
        else:
            self.flush()

    def flush(self) -> None:
        """Refresh now, dropping any debounce in progress."""
        self._debounce.cancel()
        self._metrics.refreshed(debounced=False)
        self._refresh()

    def cancel(self) -> None:
        self._debounce.cancel()

    def _refresh_debounced(self) -> None:
        self._metrics.refreshed(debounced=True)
        self._refresh()
