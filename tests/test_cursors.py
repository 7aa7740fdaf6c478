"""Tests for per-source cursor bookkeeping."""

from __future__ import annotations

import pytest

from timeline_aggregator.cursors import CursorStore
from timeline_aggregator.models import PageCursors, PagingInfo

pytestmark = pytest.mark.unit


def _paging(before: str, after: str, more: bool | None) -> PagingInfo:
    return PagingInfo(cursors=PageCursors(before=before, after=after), more=more)


class TestRecordPage:
    def test_first_page_sets_start_only(self):
        store = CursorStore()
        cursors = store.record_page("git", _paging("20", "0", True), before=False)

        assert cursors.start_cursors == PageCursors("20", "0")
        assert cursors.end_cursors is None
        assert cursors.more is True

    def test_first_page_without_more_means_no_more(self):
        store = CursorStore()
        cursors = store.record_page("git", _paging("5", "0", None), before=False)
        assert cursors.more is False

    def test_older_page_moves_start_and_backfills_end(self):
        store = CursorStore()
        store.record_page("git", _paging("20", "0", True), before=False)
        cursors = store.record_page("git", _paging("25", "20", False), before=True)

        assert cursors.start_cursors == PageCursors("25", "20")
        assert cursors.end_cursors == PageCursors("20", "0")
        assert cursors.more is False

    def test_end_is_backfilled_only_once(self):
        store = CursorStore()
        store.record_page("git", _paging("20", "0", True), before=False)
        store.record_page("git", _paging("40", "20", True), before=True)
        cursors = store.record_page("git", _paging("60", "40", True), before=True)

        assert cursors.start_cursors == PageCursors("60", "40")
        assert cursors.end_cursors == PageCursors("20", "0")

    def test_newer_page_moves_end(self):
        store = CursorStore()
        store.record_page("git", _paging("20", "10", True), before=False)
        cursors = store.record_page("git", _paging("10", "5", True), before=False)

        assert cursors.start_cursors == PageCursors("20", "10")
        assert cursors.end_cursors == PageCursors("10", "5")

    def test_later_page_defaults_more_to_true(self):
        store = CursorStore()
        store.record_page("git", _paging("20", "0", False), before=False)
        cursors = store.record_page("git", _paging("40", "20", None), before=True)
        assert cursors.more is True

    def test_sources_are_independent(self):
        store = CursorStore()
        store.record_page("git", _paging("20", "0", True), before=False)
        store.record_page("local", _paging("3", "0", False), before=False)

        assert store.get("git").more is True
        assert store.get("local").more is False
        assert len(store) == 2


class TestClear:
    def test_clear_one_source(self):
        store = CursorStore()
        store.record_page("git", _paging("20", "0", True), before=False)
        store.record_page("local", _paging("3", "0", False), before=False)

        store.clear("git")
        store.clear("never-seen")

        assert "git" not in store
        assert "local" in store

    def test_clear_all(self):
        store = CursorStore()
        store.record_page("git", _paging("20", "0", True), before=False)
        store.clear_all()
        assert len(store) == 0
        assert store.get("git") is None

    def test_any_more(self):
        store = CursorStore()
        assert store.any_more() is False
        store.record_page("local", _paging("3", "0", False), before=False)
        assert store.any_more() is False
        store.record_page("git", _paging("20", "0", True), before=False)
        assert store.any_more() is True
