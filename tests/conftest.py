"""Shared fixtures for the timeline aggregator test suite."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

import pytest

from timeline_aggregator.config import AggregatorConfig, RefreshConfig
from timeline_aggregator.models import LoadMoreItem, TimelineEntry, TimelineItem


class RecordingView:
    """A ``TimelineView`` that remembers every push."""

    def __init__(self) -> None:
        self.pushes: list[tuple[TimelineEntry, ...]] = []
        self.messages: list[str | None] = []

    def set_items(self, items: Sequence[TimelineEntry]) -> None:
        self.pushes.append(tuple(items))

    def set_message(self, message: str | None) -> None:
        self.messages.append(message)

    @property
    def items(self) -> tuple[TimelineEntry, ...]:
        return self.pushes[-1] if self.pushes else ()

    @property
    def message(self) -> str | None:
        return self.messages[-1] if self.messages else None

    @property
    def timeline_items(self) -> list[TimelineItem]:
        return [entry for entry in self.items if not isinstance(entry, LoadMoreItem)]

    @property
    def load_more(self) -> LoadMoreItem | None:
        if self.items and isinstance(self.items[-1], LoadMoreItem):
            return self.items[-1]
        return None


class RecordingCommandRunner:
    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    async def execute(self, command_id: str, *args: Any) -> None:
        self.calls.append((command_id, args))


def make_item(
    source: str | None,
    timestamp: int,
    *,
    handle: str | None = None,
    id: str | None = None,  # noqa: A002
    label: str | None = None,
) -> TimelineItem:
    return TimelineItem(
        handle=handle or f"{source}|{id if id is not None else timestamp}",
        source=source,
        timestamp=timestamp,
        label=label or f"{source} @ {timestamp}",
        id=id,
    )


def make_items(
    source: str, count: int, *, newest: int = 1_000, step: int = 10
) -> list[TimelineItem]:
    """*count* items of *source*, newest first, ids ``<source>-<n>``."""
    return [make_item(source, newest - n * step, id=f"{source}-{n}") for n in range(count)]


@pytest.fixture
def view() -> RecordingView:
    return RecordingView()


@pytest.fixture
def command_runner() -> RecordingCommandRunner:
    return RecordingCommandRunner()


@pytest.fixture
def item_factory() -> Callable[..., TimelineItem]:
    return make_item


@pytest.fixture
def items_factory() -> Callable[..., list[TimelineItem]]:
    return make_items


@pytest.fixture
def fast_config() -> AggregatorConfig:
    """Default config with timers short enough for tests."""
    return AggregatorConfig(
        refresh=RefreshConfig(debounce_s=0.02, loading_message_delay_s=5.0),
    )

