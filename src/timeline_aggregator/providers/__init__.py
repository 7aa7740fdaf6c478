"""Timeline sources that live in-process."""

from timeline_aggregator.providers.static import StaticResourceTracker, StaticTimelineService

__all__ = ["StaticResourceTracker", "StaticTimelineService"]
