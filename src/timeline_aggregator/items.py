"""Merged, sorted, de-duplicated timeline item collection."""

from __future__ import annotations

import functools
import re
import unicodedata
from collections.abc import Iterable

from timeline_aggregator.config import DEFAULT_SUBSEQUENT_PAGE_SIZE
from timeline_aggregator.models import LoadMoreItem, TimelineEntry, TimelineItem

_DIGIT_RUN = re.compile(r"(\d+)", re.ASCII)


def _fold(text: str) -> str:
    # Case and accents are ignored: "É" compares equal to "e".
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).casefold()


def _natural_key(name: str) -> list[int | str]:
    # re.split with a capturing group puts digit runs at odd indices.
    parts = _DIGIT_RUN.split(name)
    return [int(part) if i % 2 else _fold(part) for i, part in enumerate(parts)]


def compare_items(a: TimelineItem, b: TimelineItem) -> int:
    """Order newest first; ties go to the source name in reverse natural order.

    Items without a source sort after items with one.
    """
    if a.timestamp != b.timestamp:
        return -1 if a.timestamp > b.timestamp else 1
    if a.source is None:
        return 0 if b.source is None else 1
    if b.source is None:
        return -1
    ka, kb = _natural_key(a.source), _natural_key(b.source)
    return (kb > ka) - (kb < ka)


sort_key = functools.cmp_to_key(compare_items)


class ItemStore:
    """Holds the merged item list plus the optional "Load more" sentinel.

    Duplicate detection on older-direction merges only looks at the first
    ``dedup_window`` entries of the list, i.e. the most recent page.  A
    duplicate sitting further back is kept.  That keeps a merge proportional
    to one page instead of the whole list.

    Handles stay unique: an incoming item whose handle is already present
    replaces the existing entry.
    """

    def __init__(self, dedup_window: int = DEFAULT_SUBSEQUENT_PAGE_SIZE) -> None:
        self._dedup_window = dedup_window
        self._items: list[TimelineItem] = []
        self._handles: set[str] = set()
        self._load_more: LoadMoreItem | None = None

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items)

    @property
    def is_empty(self) -> bool:
        return not self._items

    @property
    def load_more(self) -> LoadMoreItem | None:
        return self._load_more

    def sorted_view(self) -> tuple[TimelineEntry, ...]:
        """Read-only snapshot for the presentation layer, sentinel last."""
        if self._load_more is None:
            return tuple(self._items)
        return (*self._items, self._load_more)

    def sources(self) -> set[str]:
        return {item.source for item in self._items if item.source is not None}

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def merge(self, items: Iterable[TimelineItem], *, before: bool) -> bool:
        """Add a continuation page; returns False when there was nothing to add.

        Older-direction pages go in front of the list, newer-direction pages
        at the back, then everything is re-sorted.
        """
        incoming = self._claim_handles(items)
        if not incoming:
            return False

        if before:
            ids = {item.id for item in incoming if item.id is not None}
            timestamps = {item.timestamp for item in incoming if item.id is None}

            window = min(self._dedup_window, len(self._items))
            kept: list[TimelineItem] = []
            for existing in self._items[:window]:
                if (existing.id is not None and existing.id in ids) or (
                    existing.id is None and existing.timestamp in timestamps
                ):
                    self._handles.discard(existing.handle)
                    continue
                kept.append(existing)
            self._items[:window] = kept

            self._items[0:0] = incoming
        else:
            self._items.extend(incoming)

        self._handles.update(item.handle for item in incoming)
        self._sort()
        return True

    def replace(self, source: str, items: Iterable[TimelineItem]) -> bool:
        """Swap every item of *source* for *items*; returns whether the list changed."""
        incoming = self._claim_handles(items)
        if not incoming:
            return self.remove_source(source)

        survivors = [item for item in self._items if item.source != source]
        self._items = survivors + incoming
        self._handles = {item.handle for item in self._items}
        self._sort()
        return True

    def remove_source(self, source: str) -> bool:
        """Drop every item of *source*; relative order of the rest is unchanged."""
        if not any(item.source == source for item in self._items):
            return False
        self._items = [item for item in self._items if item.source != source]
        self._handles = {item.handle for item in self._items}
        return True

    def clear(self) -> None:
        self._items = []
        self._handles = set()
        self._load_more = None

    # ------------------------------------------------------------------
    # Load-more sentinel
    # ------------------------------------------------------------------

    def show_load_more(self) -> LoadMoreItem:
        """Ensure the sentinel is present and idle."""
        if self._load_more is None:
            self._load_more = LoadMoreItem()
        self._load_more.busy = False
        return self._load_more

    def mark_load_more_busy(self) -> bool:
        """Flag the sentinel as loading; returns False if there is none."""
        if self._load_more is None:
            return False
        self._load_more.busy = True
        return True

    def hide_load_more(self) -> bool:
        had = self._load_more is not None
        self._load_more = None
        return had

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _claim_handles(self, items: Iterable[TimelineItem]) -> list[TimelineItem]:
        """De-duplicate *items* by handle and evict existing entries they replace."""
        incoming: dict[str, TimelineItem] = {}
        for item in items:
            incoming.setdefault(item.handle, item)
        if incoming and not self._handles.isdisjoint(incoming):
            self._items = [item for item in self._items if item.handle not in incoming]
            self._handles.difference_update(incoming)
        return list(incoming.values())

    def _sort(self) -> None:
        self._items.sort(key=sort_key)
