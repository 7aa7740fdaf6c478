"""Timeline data model — items, pages, cursors, and change events."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from timeline_aggregator.resources import Resource

LOAD_MORE_HANDLE = "timeline-command:loadMore"
LOAD_MORE_LABEL = "Load more"


@dataclass(frozen=True)
class Command:
    """A command attached to a timeline item, run when the item is activated."""

    id: str
    title: str = ""
    arguments: tuple[Any, ...] = ()


@dataclass(frozen=True)
class TimelineItem:
    """One event reported by one source.

    ``handle`` identifies the item within the merged list; ``id`` is an
    optional logical identity used to drop duplicates across pages.
    """

    handle: str
    source: str | None
    timestamp: int
    label: str
    id: str | None = None
    icon: str | None = None
    icon_dark: str | None = None
    theme_icon: str | None = None
    description: str | None = None
    detail: str | None = None
    context_value: str | None = None
    command: Command | None = None


@dataclass
class LoadMoreItem:
    """Synthetic "Load more" entry kept at the tail of the visible list.

    ``busy`` is set while the load it triggered is still in flight; a busy
    sentinel ignores further activation.
    """

    handle: str = LOAD_MORE_HANDLE
    label: str = LOAD_MORE_LABEL
    timestamp: int = 0
    busy: bool = False
    source: None = None
    id: None = None


TimelineEntry = TimelineItem | LoadMoreItem


@dataclass(frozen=True)
class PageCursors:
    """Opaque bounds of one fetched page.

    ``before`` continues towards older items, ``after`` towards newer ones.
    """

    before: Any = None
    after: Any = None


@dataclass(frozen=True)
class PagingInfo:
    cursors: PageCursors
    more: bool | None = None


@dataclass(frozen=True)
class TimelinePage:
    """One fetch result from a source."""

    source: str
    items: list[TimelineItem] = field(default_factory=list)
    paging: PagingInfo | None = None


@dataclass(frozen=True)
class TimelineOptions:
    """Per-request fetch options.

    ``limit`` of None asks the source for everything it has.
    """

    cursor: Any = None
    limit: int | None = None
    before: bool = False


@dataclass
class Cursors:
    """Pagination state accumulated for one source."""

    start_cursors: PageCursors | None = None
    end_cursors: PageCursors | None = None
    more: bool = False


# ---------------------------------------------------------------------------
# Change events delivered by the source-provider and host collaborators
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProvidersChangeEvent:
    added: tuple[str, ...] = ()
    removed: tuple[str, ...] = ()


@dataclass(frozen=True)
class TimelineChangeEvent:
    """A source reports that the timeline of *resource* changed.

    ``resource`` of None means "whatever is being shown"; ``source_id``
    scopes the reload to one source; ``reset`` discards paging state.
    """

    resource: Resource | None = None
    source_id: str | None = None
    reset: bool = False


@dataclass(frozen=True)
class ConfigurationChangeEvent:
    """Configuration update; ``excluded_sources`` is None when unaffected."""

    excluded_sources: frozenset[str] | None = None
