"""In-memory timeline service backed by fixed item lists.

Serves each (resource, source) list newest-first with integer offset
cursors encoded as strings: ``before`` points at the first older item not yet
returned, ``after`` at the newest item of the page.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any

from timeline_aggregator.cancellation import CancellationToken
from timeline_aggregator.items import sort_key
from timeline_aggregator.models import (
    Command,
    PageCursors,
    PagingInfo,
    ProvidersChangeEvent,
    TimelineChangeEvent,
    TimelineItem,
    TimelineOptions,
    TimelinePage,
)
from timeline_aggregator.resources import Resource
from timeline_aggregator.service import Emitter, Subscription

logger = logging.getLogger(__name__)


class StaticTimelineService:
    """A ``TimelineService`` over ``{resource: {source: [items]}}``.

    A source with no list for the requested resource answers None ("no
    timeline").  *delay_s* holds each fetch back; a fetch whose token is
    cancelled during the delay returns None without slicing.
    """

    def __init__(
        self,
        items_by_resource: Mapping[str, Mapping[str, Sequence[TimelineItem]]],
        *,
        sources: Iterable[str] | None = None,
        delay_s: float = 0,
    ) -> None:
        self._items: dict[str, dict[str, list[TimelineItem]]] = {}
        for uri, by_source in items_by_resource.items():
            key = str(Resource.parse(uri))
            self._items[key] = {
                source: sorted(items, key=sort_key) for source, items in by_source.items()
            }

        if sources is None:
            sources = dict.fromkeys(s for by_source in self._items.values() for s in by_source)
        self._sources: list[str] = list(sources)
        self.delay_s = delay_s
        self.fetch_log: list[tuple[str, str, TimelineOptions]] = []

        self._providers_changed: Emitter[ProvidersChangeEvent] = Emitter()
        self._timeline_changed: Emitter[TimelineChangeEvent] = Emitter()
        self._reset: Emitter[None] = Emitter()

    @classmethod
    def from_fixture(cls, data: Mapping[str, Any], *, delay_s: float = 0) -> StaticTimelineService:
        """Build a service from decoded fixture JSON.

        Each item is a mapping with at least ``timestamp`` and ``label``;
        ``handle`` defaults to ``<source>|<id or position>``.
        """
        if not isinstance(data, Mapping):
            raise ValueError("Fixture must be an object keyed by resource URI")

        items_by_resource: dict[str, dict[str, list[TimelineItem]]] = {}
        for uri, by_source in data.items():
            if not isinstance(by_source, Mapping):
                raise ValueError(f"Fixture entry for {uri!r} must be an object keyed by source")
            items_by_resource[uri] = {
                source: [_item_from_dict(source, index, raw) for index, raw in enumerate(raw_items)]
                for source, raw_items in by_source.items()
            }
        return cls(items_by_resource, delay_s=delay_s)

    # -- TimelineService -------------------------------------------------------

    def get_sources(self) -> Sequence[str]:
        return tuple(self._sources)

    async def fetch_page(
        self,
        source: str,
        resource: Resource,
        options: TimelineOptions,
        token: CancellationToken,
    ) -> TimelinePage | None:
        self.fetch_log.append((source, str(resource), options))
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if token.is_cancellation_requested:
            return None

        items = self._items.get(str(resource), {}).get(source)
        if items is None:
            return None

        total = len(items)
        limit = total if options.limit is None else options.limit
        if options.cursor is None or options.before:
            start = 0 if options.cursor is None else int(options.cursor)
            end = min(start + limit, total)
            more = end < total
        else:
            # Newer than the cursor: offsets below it.
            end = int(options.cursor)
            start = max(end - limit, 0)
            more = start > 0

        logger.debug(
            "Static fetch: source=%s, resource=%s, slice=[%d:%d]", source, resource, start, end
        )
        return TimelinePage(
            source=source,
            items=items[start:end],
            paging=PagingInfo(cursors=PageCursors(before=str(end), after=str(start)), more=more),
        )

    def on_did_change_providers(
        self, listener: Callable[[ProvidersChangeEvent], None]
    ) -> Subscription:
        return self._providers_changed.subscribe(listener)

    def on_did_change_timeline(
        self, listener: Callable[[TimelineChangeEvent], None]
    ) -> Subscription:
        return self._timeline_changed.subscribe(listener)

    def on_did_reset(self, listener: Callable[[None], None]) -> Subscription:
        return self._reset.subscribe(listener)

    # -- mutation --------------------------------------------------------------

    def set_items(self, resource: str, source: str, items: Sequence[TimelineItem]) -> None:
        self._items.setdefault(str(Resource.parse(resource)), {})[source] = sorted(
            items, key=sort_key
        )

    def add_source(self, source: str) -> None:
        if source in self._sources:
            return
        self._sources.append(source)
        self._providers_changed.fire(ProvidersChangeEvent(added=(source,)))

    def remove_source(self, source: str) -> None:
        if source not in self._sources:
            return
        self._sources.remove(source)
        self._providers_changed.fire(ProvidersChangeEvent(removed=(source,)))

    def fire_timeline_changed(self, event: TimelineChangeEvent) -> None:
        self._timeline_changed.fire(event)

    def fire_reset(self) -> None:
        self._reset.fire(None)


class StaticResourceTracker:
    """An ``ActiveResourceTracker`` whose focus is set by hand."""

    def __init__(self, resource: Resource | str | None = None) -> None:
        self._resource = Resource.parse(resource) if isinstance(resource, str) else resource
        self._changed: Emitter[Resource | None] = Emitter()

    @property
    def active_resource(self) -> Resource | None:
        return self._resource

    def on_did_change_active_resource(
        self, listener: Callable[[Resource | None], None]
    ) -> Subscription:
        return self._changed.subscribe(listener)

    def set_active(self, resource: Resource | str | None) -> None:
        self._resource = Resource.parse(resource) if isinstance(resource, str) else resource
        self._changed.fire(self._resource)


def _item_from_dict(source: str, index: int, raw: Mapping[str, Any]) -> TimelineItem:
    try:
        timestamp = int(raw["timestamp"])
        label = str(raw["label"])
    except (KeyError, TypeError, ValueError) as exc:
        raise ValueError(f"Item {index} of source {source!r} needs timestamp and label") from exc

    item_id = raw.get("id")
    command = raw.get("command")
    if isinstance(command, Mapping):
        command = Command(
            id=str(command["id"]),
            title=str(command.get("title", "")),
            arguments=tuple(command.get("arguments", ())),
        )
    elif command is not None:
        command = Command(id=str(command))

    return TimelineItem(
        handle=str(raw.get("handle") or f"{source}|{item_id if item_id is not None else index}"),
        source=raw.get("source", source),
        timestamp=timestamp,
        label=label,
        id=None if item_id is None else str(item_id),
        description=raw.get("description"),
        detail=raw.get("detail"),
        context_value=raw.get("context_value"),
        command=command,
    )
