"""Tests for the in-memory timeline service and resource tracker."""

from __future__ import annotations

import pytest

from timeline_aggregator.cancellation import CancellationTokenSource
from timeline_aggregator.models import (
    PageCursors,
    ProvidersChangeEvent,
    TimelineChangeEvent,
    TimelineOptions,
)
from timeline_aggregator.providers import StaticResourceTracker, StaticTimelineService
from timeline_aggregator.resources import Resource

pytestmark = pytest.mark.unit

URI = "file:///repo/a.py"
RESOURCE = Resource.parse(URI)


@pytest.fixture
def service(items_factory) -> StaticTimelineService:
    return StaticTimelineService({URI: {"git": items_factory("git", 25)}})


async def _fetch(service, options, source="git", resource=RESOURCE):
    return await service.fetch_page(source, resource, options, CancellationTokenSource().token)


class TestFetchPage:
    async def test_first_page(self, service):
        page = await _fetch(service, TimelineOptions(limit=20))

        assert [item.id for item in page.items] == [f"git-{n}" for n in range(20)]
        assert page.paging.cursors == PageCursors(before="20", after="0")
        assert page.paging.more is True

    async def test_older_page(self, service):
        page = await _fetch(service, TimelineOptions(cursor="20", limit=40, before=True))

        assert [item.id for item in page.items] == [f"git-{n}" for n in range(20, 25)]
        assert page.paging.cursors == PageCursors(before="25", after="20")
        assert page.paging.more is False

    async def test_newer_page(self, service):
        page = await _fetch(service, TimelineOptions(cursor="10", limit=4, before=False))

        assert [item.id for item in page.items] == ["git-6", "git-7", "git-8", "git-9"]
        assert page.paging.more is True

    async def test_no_limit_returns_everything(self, service):
        page = await _fetch(service, TimelineOptions())
        assert len(page.items) == 25
        assert page.paging.more is False

    async def test_unknown_source_or_resource_has_no_timeline(self, service):
        assert await _fetch(service, TimelineOptions(), source="other") is None
        other = Resource.parse("file:///b")
        assert await _fetch(service, TimelineOptions(), resource=other) is None

    async def test_cancelled_token_returns_none(self, service):
        source = CancellationTokenSource()
        source.cancel()
        assert await service.fetch_page("git", RESOURCE, TimelineOptions(), source.token) is None

    async def test_items_are_served_newest_first(self, item_factory):
        service = StaticTimelineService(
            {URI: {"git": [item_factory("git", ts) for ts in (1, 3, 2)]}}
        )
        page = await _fetch(service, TimelineOptions())
        assert [item.timestamp for item in page.items] == [3, 2, 1]

    async def test_fetch_log(self, service):
        await _fetch(service, TimelineOptions(limit=5))
        assert service.fetch_log == [("git", URI, TimelineOptions(limit=5))]


class TestFixture:
    def test_from_fixture(self):
        service = StaticTimelineService.from_fixture(
            {
                URI: {
                    "git": [
                        {"id": "c1", "timestamp": 10, "label": "Initial commit"},
                        {"timestamp": 5, "label": "Draft", "command": "open.diff"},
                    ],
                    "local": [],
                }
            }
        )
        assert service.get_sources() == ("git", "local")

    def test_fixture_handles_and_commands(self):
        service = StaticTimelineService.from_fixture(
            {
                URI: {
                    "git": [
                        {
                            "timestamp": 5,
                            "label": "Draft",
                            "command": {"id": "open", "arguments": [1]},
                        }
                    ]
                }
            }
        )
        item = service._items[URI]["git"][0]
        assert item.handle == "git|0"
        assert item.command.id == "open"
        assert item.command.arguments == (1,)

    @pytest.mark.parametrize(
        "data",
        [
            [],
            {URI: []},
            {URI: {"git": [{"label": "no timestamp"}]}},
        ],
    )
    def test_invalid_fixture(self, data):
        with pytest.raises(ValueError):
            StaticTimelineService.from_fixture(data)


class TestEvents:
    def test_add_and_remove_source(self, service):
        events: list[ProvidersChangeEvent] = []
        service.on_did_change_providers(events.append)

        service.add_source("local")
        service.add_source("local")
        service.remove_source("git")

        assert service.get_sources() == ("local",)
        assert events == [
            ProvidersChangeEvent(added=("local",)),
            ProvidersChangeEvent(removed=("git",)),
        ]

    def test_timeline_and_reset_events(self, service):
        changes: list[TimelineChangeEvent] = []
        resets: list[None] = []
        subscription = service.on_did_change_timeline(changes.append)
        service.on_did_reset(resets.append)

        service.fire_timeline_changed(TimelineChangeEvent(source_id="git"))
        subscription.dispose()
        service.fire_timeline_changed(TimelineChangeEvent(source_id="git"))
        service.fire_reset()

        assert changes == [TimelineChangeEvent(source_id="git")]
        assert resets == [None]

    def test_tracker(self):
        tracker = StaticResourceTracker(URI)
        seen: list[Resource | None] = []
        tracker.on_did_change_active_resource(seen.append)

        tracker.set_active("file:///repo/b.py")
        tracker.set_active(None)

        assert seen == [Resource.parse("file:///repo/b.py"), None]
        assert tracker.active_resource is None
