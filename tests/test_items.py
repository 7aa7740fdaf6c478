"""Tests for the merged item store: ordering, replacement and de-duplication."""

from __future__ import annotations

import pytest

from timeline_aggregator.items import ItemStore, compare_items, sort_key
from timeline_aggregator.models import LoadMoreItem

pytestmark = pytest.mark.unit


def _timestamps(store: ItemStore) -> list[int]:
    return [item.timestamp for item in store]


class TestOrdering:
    def test_newest_first(self, item_factory):
        items = [item_factory("git", ts) for ts in (5, 30, 10)]
        assert [i.timestamp for i in sorted(items, key=sort_key)] == [30, 10, 5]

    def test_tie_sorts_source_in_reverse_natural_order(self, item_factory):
        items = [
            item_factory("source2", 100),
            item_factory("Source10", 100),
            item_factory("source1", 100),
        ]
        ordered = sorted(items, key=sort_key)
        assert [i.source for i in ordered] == ["Source10", "source2", "source1"]

    def test_tie_ignores_accents_and_case(self, item_factory):
        accented, upper, plain = (item_factory(s, 100) for s in ("é", "Z", "e"))
        assert compare_items(accented, plain) == 0
        ordered = sorted([accented, upper, plain], key=sort_key)
        assert [i.source for i in ordered] == ["Z", "é", "e"]

    def test_tie_puts_sourceless_items_last(self, item_factory):
        a = item_factory(None, 100, handle="none")
        b = item_factory("git", 100)
        assert compare_items(a, b) == 1
        assert compare_items(b, a) == -1
        assert compare_items(a, item_factory(None, 100, handle="other")) == 0


class TestReplace:
    def test_replace_swaps_only_that_source(self, item_factory):
        store = ItemStore()
        store.replace("git", [item_factory("git", 10), item_factory("git", 30)])
        store.replace("local", [item_factory("local", 20)])

        changed = store.replace("git", [item_factory("git", 40)])

        assert changed is True
        assert [(i.source, i.timestamp) for i in store] == [("git", 40), ("local", 20)]

    def test_replace_with_empty_removes_source(self, item_factory):
        store = ItemStore()
        store.replace("git", [item_factory("git", 10)])

        assert store.replace("git", []) is True
        assert store.is_empty
        assert store.replace("git", []) is False

    def test_remove_source_keeps_order_of_rest(self, item_factory):
        store = ItemStore()
        store.replace("a", [item_factory("a", 30), item_factory("a", 10)])
        store.replace("b", [item_factory("b", 20)])

        assert store.remove_source("b") is True
        assert _timestamps(store) == [30, 10]
        assert store.remove_source("b") is False
        assert store.sources() == {"a"}


class TestMerge:
    def test_empty_merge_is_no_change(self):
        store = ItemStore()
        assert store.merge([], before=True) is False

    def test_older_page_drops_duplicate_ids_in_window(self, item_factory):
        store = ItemStore()
        store.replace("git", [item_factory("git", 30, id="c1"), item_factory("git", 20, id="c2")])

        changed = store.merge(
            [
                item_factory("git", 19, id="c2", handle="git|c2-again"),
                item_factory("git", 10, id="c3"),
            ],
            before=True,
        )

        assert changed is True
        assert [(i.id, i.timestamp) for i in store] == [("c1", 30), ("c2", 19), ("c3", 10)]

    def test_older_page_drops_id_less_items_by_timestamp(self, item_factory):
        store = ItemStore()
        store.replace(
            "git",
            [item_factory("git", 30, handle="old-30"), item_factory("git", 20, handle="old-20")],
        )

        store.merge([item_factory("git", 20, handle="new-20")], before=True)

        assert [i.handle for i in store] == ["old-30", "new-20"]

    def test_id_items_do_not_collide_on_timestamp(self, item_factory):
        store = ItemStore()
        store.replace("git", [item_factory("git", 20, id="a")])

        store.merge([item_factory("git", 20, id="b")], before=True)

        assert sorted(i.id for i in store) == ["a", "b"]

    def test_dedup_only_scans_window(self, item_factory):
        store = ItemStore(dedup_window=2)
        store.replace(
            "git",
            [item_factory("git", ts, id=f"c{ts}") for ts in (50, 40, 30)],
        )

        # c30 sits outside the two-entry window and survives.
        store.merge(
            [
                item_factory("git", 29, id="c30", handle="dup30"),
                item_factory("git", 49, id="c50", handle="dup50"),
            ],
            before=True,
        )

        ids = [i.id for i in store]
        assert ids.count("c50") == 1
        assert ids.count("c30") == 2

    def test_newer_page_appends_without_dedup(self, item_factory):
        store = ItemStore()
        store.replace("git", [item_factory("git", 10, id="a", handle="h1")])

        store.merge([item_factory("git", 10, id="a", handle="h2")], before=False)

        assert [i.handle for i in store] == ["h1", "h2"]

    def test_handles_stay_unique(self, item_factory):
        store = ItemStore()
        store.replace("git", [item_factory("git", 10, handle="same")])

        store.merge(
            [item_factory("git", 50, handle="same"), item_factory("git", 60, handle="same")],
            before=False,
        )

        assert [(i.handle, i.timestamp) for i in store] == [("same", 50)]

    def test_merge_keeps_order(self, item_factory):
        store = ItemStore()
        store.replace("a", [item_factory("a", 100), item_factory("a", 50)])
        store.merge([item_factory("b", 75), item_factory("b", 25)], before=True)
        assert _timestamps(store) == [100, 75, 50, 25]


class TestLoadMoreSentinel:
    def test_sentinel_is_always_last(self, item_factory):
        store = ItemStore()
        store.replace("git", [item_factory("git", 10)])
        store.show_load_more()
        store.merge([item_factory("git", 5)], before=True)

        view = store.sorted_view()
        assert isinstance(view[-1], LoadMoreItem)
        assert [e.timestamp for e in view[:-1]] == [10, 5]

    def test_busy_flag_lifecycle(self):
        store = ItemStore()
        assert store.mark_load_more_busy() is False

        sentinel = store.show_load_more()
        assert store.mark_load_more_busy() is True
        assert sentinel.busy is True

        assert store.show_load_more() is sentinel
        assert sentinel.busy is False

        assert store.hide_load_more() is True
        assert store.load_more is None
        assert store.hide_load_more() is False

    def test_clear_drops_sentinel(self, item_factory):
        store = ItemStore()
        store.replace("git", [item_factory("git", 10)])
        store.show_load_more()
        store.clear()
        assert store.sorted_view() == ()
