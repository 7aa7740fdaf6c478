"""Aggregation controller — drives resets, paging and refreshes for one view.

The controller owns the cursor table, the merged item list and the request
slots of one timeline view.  All of its methods must be called from the
event loop that runs the fetches; concurrency comes only from the fetch tasks
it starts, each of which may finish in any order.

State machine::

    IDLE ──resource──▶ RESETTING ──last completion──▶ SETTLED
                          ▲                              │
                          └──────resource/reset──────────┤
                                                         ▼
                                 PAGINATING ◀──load more / change

Every completion re-checks that it is still wanted (token not cancelled,
resource still in focus) before touching any state.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Iterable, Sequence

from timeline_aggregator.config import AggregatorConfig
from timeline_aggregator.coordinator import RequestCoordinator, RequestStatus, TimelineRequest
from timeline_aggregator.core.metrics import TimelineMetrics
from timeline_aggregator.cursors import CursorStore
from timeline_aggregator.items import ItemStore
from timeline_aggregator.models import (
    ConfigurationChangeEvent,
    Cursors,
    LoadMoreItem,
    ProvidersChangeEvent,
    TimelineChangeEvent,
    TimelineEntry,
    TimelineItem,
    TimelineOptions,
)
from timeline_aggregator.refresh import DelayedCall, RefreshScheduler
from timeline_aggregator.resources import Resource, cannot_provide_timeline, same_resource
from timeline_aggregator.service import (
    ActiveResourceTracker,
    CommandRunner,
    Subscription,
    TimelineService,
    TimelineView,
)

logger = logging.getLogger(__name__)

MESSAGE_CANNOT_PROVIDE = "The active resource cannot provide timeline information."
MESSAGE_NO_TIMELINE = "No timeline information was provided."
MESSAGE_LOADING = "Loading timeline for {name}..."


class AggregationState(enum.StrEnum):
    IDLE = "idle"
    RESETTING = "resetting"
    PAGINATING = "paginating"
    SETTLED = "settled"


class AggregationController:
    """Merges the paged timelines of every source for the resource in focus.

    Parameters
    ----------
    service:
        Provides the source list, page fetches and change notifications.
    view:
        Receives the merged list and the informational message.
    resource_tracker:
        Optional focus tracker; when given, the controller follows its active
        resource while visible.  Without it, call
        :meth:`on_active_resource_changed` directly.
    config:
        View configuration; defaults to ``AggregatorConfig()``.
    command_runner:
        Optional executor for item commands (see :meth:`activate`).
    """

    def __init__(
        self,
        service: TimelineService,
        view: TimelineView,
        *,
        resource_tracker: ActiveResourceTracker | None = None,
        config: AggregatorConfig | None = None,
        command_runner: CommandRunner | None = None,
        metrics: TimelineMetrics | None = None,
    ) -> None:
        self._config = config or AggregatorConfig()
        self._service = service
        self._view = view
        self._tracker = resource_tracker
        self._commands = command_runner
        self._metrics = metrics or TimelineMetrics(self._config.name)

        self._excluded_sources: set[str] = set(self._config.excluded_sources)
        self._cursors = CursorStore()
        self._items = ItemStore(dedup_window=self._config.paging.subsequent_page_size)
        self._requests = RequestCoordinator(
            service.fetch_page,
            current_resource=lambda: self._resource,
            metrics=self._metrics,
            view_name=self._config.name,
        )
        self._scheduler = RefreshScheduler(
            self._refresh,
            has_pending=self._requests.has_pending,
            delay_s=self._config.refresh.debounce_s,
            metrics=self._metrics,
        )
        self._loading_message = DelayedCall(
            self._show_loading_message,
            self._config.refresh.loading_message_delay_s,
            name="timeline-loading-message",
        )

        self._resource: Resource | None = None
        self._loading_resource: Resource | None = None
        self._state = AggregationState.IDLE
        self._message: str | None = None
        self._visible = False
        self._subscriptions: list[Subscription] = []
        self._handlers: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def state(self) -> AggregationState:
        return self._state

    @property
    def resource(self) -> Resource | None:
        return self._resource

    @property
    def message(self) -> str | None:
        return self._message

    @property
    def items(self) -> tuple[TimelineEntry, ...]:
        return self._items.sorted_view()

    @property
    def excluded_sources(self) -> frozenset[str]:
        return frozenset(self._excluded_sources)

    @property
    def pending_count(self) -> int:
        return self._requests.pending_count

    @property
    def visible(self) -> bool:
        return self._visible

    def cursors(self, source: str) -> Cursors | None:
        return self._cursors.get(source)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def set_visible(self, visible: bool) -> None:
        """Attach to (or detach from) every change channel.

        Hiding the view abandons a pending debounced refresh but leaves
        fetches in flight; their results are still merged.
        """
        if visible == self._visible:
            return
        self._visible = visible

        if not visible:
            for subscription in self._subscriptions:
                subscription.dispose()
            self._subscriptions = []
            self._scheduler.cancel()
            return

        self._subscriptions = [
            self._service.on_did_change_providers(self.on_sources_changed),
            self._service.on_did_change_timeline(self.on_timeline_changed),
            self._service.on_did_reset(self.on_reset),
        ]
        if self._tracker is not None:
            self._subscriptions.append(
                self._tracker.on_did_change_active_resource(self.on_active_resource_changed)
            )
            self.on_active_resource_changed(self._tracker.active_resource)

    def dispose(self) -> None:
        """Detach, cancel every request and timer, and stop completion handlers."""
        self.set_visible(False)
        self._requests.cancel_all()
        self._scheduler.cancel()
        self._loading_message.cancel()
        for task in list(self._handlers):
            task.cancel()

    async def settled(self) -> None:
        """Wait until every completion handler started so far has run."""
        while self._handlers:
            await asyncio.gather(*list(self._handlers), return_exceptions=True)

    # ------------------------------------------------------------------
    # External events
    # ------------------------------------------------------------------

    def on_active_resource_changed(self, resource: Resource | None) -> None:
        if same_resource(resource, self._resource, self._config.resources.path_equivalent_schemes):
            return
        logger.info("Active resource changed: %s -> %s", self._resource, resource)
        self._resource = resource
        self._load(reset=True)

    def on_sources_changed(self, event: ProvidersChangeEvent) -> None:
        if event.removed:
            changed = cancelled = False
            for source in event.removed:
                cancelled = self._requests.cancel(source) or cancelled
                self._cursors.clear(source)
                changed = self._items.remove_source(source) or changed
            logger.debug("Sources removed: %s (list changed=%s)", event.removed, changed)
            if changed or cancelled:
                if not self._requests.has_pending():
                    self._settle()
                elif changed:
                    self._scheduler.notify(had_items=True)

        if event.added:
            logger.debug("Sources added: %s", event.added)
            self._load(reset=True, sources=event.added)

    def on_timeline_changed(self, event: TimelineChangeEvent) -> None:
        if event.resource is not None and not same_resource(
            event.resource, self._resource, self._config.resources.path_equivalent_schemes
        ):
            return
        sources = None if event.source_id is None else [event.source_id]
        self._load(reset=event.reset, sources=sources)

    def on_reset(self, _event: object = None) -> None:
        self._load(reset=True)

    def on_configuration_changed(self, event: ConfigurationChangeEvent) -> None:
        if event.excluded_sources is None:
            return
        self._excluded_sources = set(event.excluded_sources)
        logger.info("Excluded sources changed: %s", sorted(self._excluded_sources))
        self._load(reset=True)

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    def load_more(self) -> bool:
        """Fetch the next older page from every source that has one.

        Ignored (returns False) when there is no "Load more" entry or it is
        already loading.
        """
        load_more = self._items.load_more
        if load_more is None or load_more.busy:
            return False

        self._items.mark_load_more_busy()
        self._view.set_items(self._items.sorted_view())
        self._load(reset=False)
        if not self._requests.has_pending():
            self._settle()
        return True

    async def activate(self, item: TimelineEntry) -> bool:
        """Handle the user opening *item*.

        The "Load more" entry triggers :meth:`load_more`; a timeline item runs
        its command through the command runner.  Returns whether anything ran.
        """
        if isinstance(item, LoadMoreItem):
            return self.load_more()
        if item.command is None or self._commands is None:
            return False
        try:
            await self._commands.execute(item.command.id, *item.command.arguments)
        except Exception:
            logger.exception("Command %r of item %r failed", item.command.id, item.handle)
            return False
        return True

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _load(
        self,
        *,
        reset: bool,
        sources: Iterable[str] | None = None,
    ) -> None:
        """Issue first-page requests (*reset*) or older-direction continuations."""
        page_size = (
            self._config.paging.initial_page_size
            if reset
            else self._config.paging.subsequent_page_size
        )

        if sources is None and reset:
            self._items.clear()
            self._cursors.clear_all()
            self._loading_message.cancel()
            self._requests.cancel_all()
            self._scheduler.cancel()

        resource = self._resource
        if resource is None or cannot_provide_timeline(
            resource, self._config.resources.unsupported_schemes
        ):
            if sources is None:
                self._state = AggregationState.IDLE
                self._set_message(MESSAGE_CANNOT_PROVIDE)
                self._view.set_items(())
            return

        if sources is None and reset:
            self._loading_resource = resource
            self._loading_message.schedule()

        targets = [
            source
            for source in (sources if sources is not None else self._service.get_sources())
            if source not in self._excluded_sources
        ]
        if not targets:
            if reset:
                self._scheduler.flush()
            return

        issued = 0
        for source in targets:
            if reset:
                if sources is not None:
                    self._cursors.clear(source)
                options = TimelineOptions(limit=page_size)
            else:
                cursors = self._cursors.get(source)
                if cursors is None or not cursors.more:
                    continue
                bounds = cursors.start_cursors
                options = TimelineOptions(
                    cursor=bounds.before if bounds else None, limit=page_size, before=True
                )

            self._start(self._requests.issue(source, resource, options))
            issued += 1

        if issued:
            self._items.mark_load_more_busy()
            self._state = AggregationState.RESETTING if reset else AggregationState.PAGINATING
        logger.debug(
            "Load: reset=%s, issued=%d of %d source(s)",
            reset,
            issued,
            len(targets),
        )

    def _start(self, request: TimelineRequest) -> None:
        task = asyncio.create_task(
            self._handle_request(request), name=f"timeline-complete-{request.source}"
        )
        self._handlers.add(task)
        task.add_done_callback(self._on_handler_done)

    def _on_handler_done(self, task: asyncio.Task) -> None:
        self._handlers.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Timeline completion handler failed", exc_info=exc)

    async def _handle_request(self, request: TimelineRequest) -> None:
        outcome = await self._requests.complete(request)
        if outcome.status is RequestStatus.STALE:
            return

        had_items = not self._items.is_empty
        changed = False
        page_more = False

        if outcome.status is RequestStatus.COMPLETED:
            page = outcome.page
            items: Sequence[TimelineItem]
            if page is None:
                # The source explicitly has no timeline: its paging state is void.
                self._cursors.clear(request.source)
                items = ()
            else:
                if page.paging is not None:
                    self._cursors.record_page(
                        page.source or request.source, page.paging, before=request.options.before
                    )
                    page_more = bool(page.paging.more)
                items = page.items

            if request.options.cursor is not None:
                changed = self._items.merge(items, before=request.options.before)
            else:
                changed = self._items.replace(request.source, items)

        if not self._requests.has_pending():
            self._settle(page_more=page_more)
        elif changed:
            self._scheduler.notify(had_items=had_items)

    def _settle(self, *, page_more: bool = False) -> None:
        """Nothing is outstanding: fix up the sentinel and refresh right away."""
        if not self._items.is_empty and (page_more or self._cursors.any_more()):
            self._items.show_load_more()
        else:
            self._items.hide_load_more()
        self._scheduler.flush()

    # ------------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------------

    def _refresh(self) -> None:
        self._loading_message.cancel()
        if self._resource is not None and not self._requests.has_pending():
            self._state = AggregationState.SETTLED
        self._set_message(MESSAGE_NO_TIMELINE if self._items.is_empty else None)
        self._view.set_items(self._items.sorted_view())

    def _show_loading_message(self) -> None:
        resource = self._loading_resource
        if resource is None or resource != self._resource:
            return
        self._view.set_items(())
        self._set_message(MESSAGE_LOADING.format(name=resource.basename or str(resource)))

    def _set_message(self, message: str | None) -> None:
        self._message = message
        self._view.set_message(message)
