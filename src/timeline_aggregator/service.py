"""Interfaces of the collaborators the aggregation engine talks to.

The engine consumes a :class:`TimelineService` (sources, fetches and change
notifications) and an :class:`ActiveResourceTracker` (which resource is in
focus), and pushes results into a :class:`TimelineView`.  Items carrying a
command are executed through an optional :class:`CommandRunner`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any, Generic, Protocol, TypeVar

from timeline_aggregator.cancellation import CancellationToken
from timeline_aggregator.models import (
    ProvidersChangeEvent,
    TimelineChangeEvent,
    TimelineEntry,
    TimelineOptions,
    TimelinePage,
)
from timeline_aggregator.resources import Resource

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Subscription:
    """Handle returned by ``Emitter.subscribe``; ``dispose()`` detaches the listener."""

    def __init__(self, emitter: Emitter[Any], listener: Callable[[Any], None]) -> None:
        self._emitter = emitter
        self._listener = listener
        self.active = True

    def dispose(self) -> None:
        if not self.active:
            return
        self.active = False
        self._emitter._remove(self._listener)


class Emitter(Generic[T]):
    """In-process event channel.

    A listener that raises is logged and skipped so the remaining listeners
    still run.
    """

    def __init__(self) -> None:
        self._listeners: list[Callable[[T], None]] = []

    def subscribe(self, listener: Callable[[T], None]) -> Subscription:
        self._listeners.append(listener)
        return Subscription(self, listener)

    def fire(self, event: T) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Listener %r failed for %r", listener, event)

    def _remove(self, listener: Callable[[T], None]) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass


class TimelineService(Protocol):
    def get_sources(self) -> Sequence[str]: ...

    async def fetch_page(
        self,
        source: str,
        resource: Resource,
        options: TimelineOptions,
        token: CancellationToken,
    ) -> TimelinePage | None:
        """Fetch one page; None means the source has no timeline for *resource*."""
        ...

    def on_did_change_providers(
        self, listener: Callable[[ProvidersChangeEvent], None]
    ) -> Subscription: ...

    def on_did_change_timeline(
        self, listener: Callable[[TimelineChangeEvent], None]
    ) -> Subscription: ...

    def on_did_reset(self, listener: Callable[[None], None]) -> Subscription: ...


class ActiveResourceTracker(Protocol):
    @property
    def active_resource(self) -> Resource | None: ...

    def on_did_change_active_resource(
        self, listener: Callable[[Resource | None], None]
    ) -> Subscription: ...


class TimelineView(Protocol):
    def set_items(self, items: Sequence[TimelineEntry]) -> None: ...

    def set_message(self, message: str | None) -> None: ...


class CommandRunner(Protocol):
    async def execute(self, command_id: str, *args: Any) -> Any: ...
