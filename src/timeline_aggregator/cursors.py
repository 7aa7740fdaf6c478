"""Per-source pagination cursor bookkeeping."""

from __future__ import annotations

from timeline_aggregator.models import Cursors, PagingInfo


class CursorStore:
    """Tracks the oldest and newest page bounds fetched from each source.

    An entry only exists for sources that returned at least one page with
    paging information.  ``start_cursors`` moves back as older pages arrive;
    ``end_cursors`` moves forward as newer pages arrive.
    """

    def __init__(self) -> None:
        self._cursors: dict[str, Cursors] = {}

    def get(self, source: str) -> Cursors | None:
        return self._cursors.get(source)

    def record_page(self, source: str, paging: PagingInfo, *, before: bool) -> Cursors:
        """Fold one page's paging info into the source's cursor state."""
        cursors = self._cursors.get(source)
        if cursors is None:
            cursors = Cursors(start_cursors=paging.cursors, more=bool(paging.more))
            self._cursors[source] = cursors
            return cursors

        if before:
            if cursors.end_cursors is None:
                cursors.end_cursors = cursors.start_cursors
            cursors.start_cursors = paging.cursors
        else:
            if cursors.start_cursors is None:
                cursors.start_cursors = paging.cursors
            cursors.end_cursors = paging.cursors

        # A continuing fetch that does not say otherwise is assumed to have more.
        cursors.more = True if paging.more is None else paging.more
        return cursors

    def clear(self, source: str) -> None:
        self._cursors.pop(source, None)

    def clear_all(self) -> None:
        self._cursors.clear()

    def any_more(self) -> bool:
        return any(c.more for c in self._cursors.values())

    def __contains__(self, source: object) -> bool:
        return source in self._cursors

    def __len__(self) -> int:
        return len(self._cursors)
