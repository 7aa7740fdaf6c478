"""CLI for the timeline aggregator: inspect config and render fixtures."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
import time
from collections.abc import Sequence
from pathlib import Path

import click

from timeline_aggregator.config import AggregatorConfig, ConfigError, load_config
from timeline_aggregator.controller import AggregationController
from timeline_aggregator.core.logging import configure_logging
from timeline_aggregator.core.metrics import init_metrics
from timeline_aggregator.core.telemetry import init_telemetry
from timeline_aggregator.models import LoadMoreItem, TimelineEntry
from timeline_aggregator.providers import StaticResourceTracker, StaticTimelineService

logger = logging.getLogger(__name__)

_MINUTE = 60
_HOUR = 60 * _MINUTE
_DAY = 24 * _HOUR
_UNITS = (
    (365 * _DAY, "yr"),
    (30 * _DAY, "mo"),
    (7 * _DAY, "wk"),
    (_DAY, "day"),
    (_HOUR, "hr"),
    (_MINUTE, "min"),
)


def format_relative(timestamp_ms: int, now_ms: int | None = None) -> str:
    """Render *timestamp_ms* relative to *now_ms*, e.g. ``"3 hrs ago"``."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    seconds = (now_ms - timestamp_ms) // 1000
    if seconds < 0:
        return "in the future"
    for size, unit in _UNITS:
        if seconds >= size:
            count = seconds // size
            return f"{count} {unit}{'s' if count != 1 else ''} ago"
    return "now"


class _CollectingView:
    """Keeps the last list and message pushed by the controller."""

    def __init__(self) -> None:
        self.items: tuple[TimelineEntry, ...] = ()
        self.message: str | None = None

    def set_items(self, items: Sequence[TimelineEntry]) -> None:
        self.items = tuple(items)

    def set_message(self, message: str | None) -> None:
        self.message = message


@click.group()
@click.version_option(version="0.1.0")
def cli() -> None:
    """Merge paged per-source timelines into one view."""


@cli.command("check-config")
@click.option(
    "--config",
    "config_dir",
    required=True,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Directory containing timeline.toml",
)
def check_config(config_dir: Path) -> None:
    """Load timeline.toml and print the effective configuration."""
    try:
        config = load_config(config_dir)
    except ConfigError as exc:
        click.echo(f"Invalid config: {exc}")
        sys.exit(1)

    click.echo(f"name:                     {config.name}")
    click.echo(f"excluded_sources:         {', '.join(sorted(config.excluded_sources)) or '-'}")
    click.echo(f"initial_page_size:        {config.paging.initial_page_size}")
    click.echo(f"subsequent_page_size:     {config.paging.subsequent_page_size}")
    click.echo(f"debounce_ms:              {round(config.refresh.debounce_s * 1000)}")
    click.echo(
        f"loading_message_delay_ms: {round(config.refresh.loading_message_delay_s * 1000)}"
    )
    click.echo(f"unsupported_schemes:      {', '.join(config.resources.unsupported_schemes)}")
    click.echo(f"path_equivalent_schemes:  {', '.join(config.resources.path_equivalent_schemes)}")
    click.echo(f"log_level:                {config.logging.level}")
    click.echo(f"log_format:               {config.logging.format}")


@cli.command()
@click.option(
    "--fixture",
    "fixture_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='JSON file shaped {"<resource>": {"<source>": [items...]}}',
)
@click.option("--resource", required=True, help="Resource URI to show the timeline for")
@click.option(
    "--config",
    "config_dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Directory containing timeline.toml",
)
@click.option(
    "--load-more",
    "load_more",
    default=0,
    type=click.IntRange(min=0),
    help="Number of times to press 'Load more'",
)
@click.option("--json", "as_json", is_flag=True, help="Print the list as JSON")
def show(
    fixture_path: Path,
    resource: str,
    config_dir: Path | None,
    load_more: int,
    as_json: bool,
) -> None:
    """Aggregate a fixture's timelines for RESOURCE and print the merged list."""
    try:
        config = load_config(config_dir) if config_dir is not None else AggregatorConfig()
    except ConfigError as exc:
        click.echo(f"Invalid config: {exc}")
        sys.exit(1)

    configure_logging(
        level=config.logging.level,
        fmt=config.logging.format,
        log_root=Path(config.logging.log_root) if config.logging.log_root else None,
        view_name=config.name,
    )

    try:
        service = StaticTimelineService.from_fixture(json.loads(fixture_path.read_text()))
    except (json.JSONDecodeError, ValueError) as exc:
        click.echo(f"Invalid fixture {fixture_path}: {exc}")
        sys.exit(1)

    entries, message = asyncio.run(_aggregate(service, resource, config, load_more))

    if as_json:
        click.echo(json.dumps(_to_json(entries, message), indent=2))
        return

    if message:
        click.echo(message)
    now_ms = int(time.time() * 1000)
    for entry in entries:
        if isinstance(entry, LoadMoreItem):
            click.echo(f"  ... {entry.label}")
            continue
        when = format_relative(entry.timestamp, now_ms)
        line = f"{when:<14} {entry.source or '-':<12} {entry.label}"
        if entry.description:
            line += f"  ({entry.description})"
        click.echo(line)


async def _aggregate(
    service: StaticTimelineService,
    resource: str,
    config: AggregatorConfig,
    load_more: int,
) -> tuple[tuple[TimelineEntry, ...], str | None]:
    init_metrics(f"timeline-aggregator-{config.name}")
    init_telemetry(f"timeline-aggregator-{config.name}")

    view = _CollectingView()
    controller = AggregationController(
        service,
        view,
        resource_tracker=StaticResourceTracker(resource),
        config=config,
    )
    controller.set_visible(True)
    try:
        await controller.settled()
        for _ in range(load_more):
            if not controller.load_more():
                logger.info("Nothing more to load")
                break
            await controller.settled()
    finally:
        controller.dispose()
    return view.items, view.message


def _to_json(entries: Sequence[TimelineEntry], message: str | None) -> dict:
    return {
        "message": message,
        "items": [
            {
                "handle": entry.handle,
                "source": entry.source,
                "timestamp": entry.timestamp,
                "label": entry.label,
                "id": entry.id,
                "description": getattr(entry, "description", None),
            }
            for entry in entries
            if not isinstance(entry, LoadMoreItem)
        ],
        "more": any(isinstance(entry, LoadMoreItem) for entry in entries),
    }
