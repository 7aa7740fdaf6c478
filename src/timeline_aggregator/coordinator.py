"""One-outstanding-request-per-source fetch coordination.

Every fetch runs as its own asyncio task.  Issuing a request for a source
that already has one in flight cancels the older request's token first; the
older fetch may still finish, but its completion is reported as stale and
must be ignored by the caller.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from timeline_aggregator.cancellation import CancellationToken, CancellationTokenSource
from timeline_aggregator.core.metrics import TimelineMetrics
from timeline_aggregator.core.telemetry import fetch_span
from timeline_aggregator.models import TimelineOptions, TimelinePage
from timeline_aggregator.resources import Resource

logger = logging.getLogger(__name__)

FetchPage = Callable[
    [str, Resource, TimelineOptions, CancellationToken], Awaitable[TimelinePage | None]
]


class RequestStatus(enum.StrEnum):
    """How a request ended, from the caller's point of view."""

    COMPLETED = "completed"
    FAILED = "failed"
    STALE = "stale"


@dataclass(frozen=True)
class RequestOutcome:
    status: RequestStatus
    page: TimelinePage | None = None


@dataclass(eq=False)
class TimelineRequest:
    """A fetch in flight for one source."""

    source: str
    resource: Resource
    options: TimelineOptions
    token_source: CancellationTokenSource
    result: asyncio.Task[TimelinePage | None]

    @property
    def cancelled(self) -> bool:
        return self.token_source.token.is_cancellation_requested


class RequestCoordinator:
    """Tracks the single in-flight request of each source.

    *current_resource* is consulted when a fetch finishes, so a result that
    arrives after the focus moved elsewhere is reported as stale.
    """

    def __init__(
        self,
        fetch_page: FetchPage,
        *,
        current_resource: Callable[[], Resource | None],
        metrics: TimelineMetrics,
        view_name: str = "timeline",
    ) -> None:
        self._fetch_page = fetch_page
        self._current_resource = current_resource
        self._metrics = metrics
        self._view_name = view_name
        self._pending: dict[str, TimelineRequest] = {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def has_pending(self, source: str | None = None) -> bool:
        if source is None:
            return bool(self._pending)
        return source in self._pending

    def issue(self, source: str, resource: Resource, options: TimelineOptions) -> TimelineRequest:
        """Start a fetch for *source*, superseding any request already in flight."""
        if self.cancel(source):
            logger.debug("Superseded in-flight request for source %r", source)

        token_source = CancellationTokenSource()
        task = asyncio.create_task(
            self._fetch(source, resource, options, token_source.token),
            name=f"timeline-fetch-{source}",
        )
        request = TimelineRequest(
            source=source,
            resource=resource,
            options=options,
            token_source=token_source,
            result=task,
        )
        self._pending[source] = request
        self._metrics.request_issued(source)
        logger.debug(
            "Issued request: source=%s, resource=%s, cursor=%r, limit=%s, before=%s",
            source,
            resource,
            options.cursor,
            options.limit,
            options.before,
        )
        return request

    def cancel(self, source: str) -> bool:
        """Cancel the request in flight for *source*; returns whether there was one."""
        request = self._pending.pop(source, None)
        if request is None:
            return False
        request.token_source.cancel()
        self._metrics.request_finished()
        return True

    def cancel_all(self) -> None:
        for source in list(self._pending):
            self.cancel(source)

    async def complete(self, request: TimelineRequest) -> RequestOutcome:
        """Wait for *request* and classify its result.

        The result is STALE when the request was cancelled or the resource in
        focus is no longer the one it was issued for, even if the fetch itself
        succeeded.  A fetch that raised is FAILED; it is not fatal.
        """
        failed = False
        page: TimelinePage | None = None
        try:
            page = await request.result
        except Exception:
            failed = True
            if not request.cancelled:
                logger.warning(
                    "Timeline source %r failed for %s",
                    request.source,
                    request.resource,
                    exc_info=True,
                )
        finally:
            self._release(request)

        if request.cancelled or request.resource != self._current_resource():
            self._metrics.request_stale()
            logger.debug("Discarding stale result from source %r", request.source)
            return RequestOutcome(RequestStatus.STALE)

        if failed:
            self._metrics.request_failed(request.source)
            return RequestOutcome(RequestStatus.FAILED)

        return RequestOutcome(RequestStatus.COMPLETED, page)

    async def _fetch(
        self,
        source: str,
        resource: Resource,
        options: TimelineOptions,
        token: CancellationToken,
    ) -> TimelinePage | None:
        started = time.monotonic()
        try:
            with fetch_span(source, resource, view_name=self._view_name):
                return await self._fetch_page(source, resource, options, token)
        finally:
            self._metrics.record_fetch_latency((time.monotonic() - started) * 1000)

    def _release(self, request: TimelineRequest) -> None:
        # A newer request may already occupy the slot; leave it alone.
        if self._pending.get(request.source) is request:
            del self._pending[request.source]
            self._metrics.request_finished()
