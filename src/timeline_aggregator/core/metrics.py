"""OpenTelemetry metrics instruments for timeline aggregation.

Instruments are created lazily from the global MeterProvider, so callers do
not need to pass a Meter instance around.

Initialization
--------------
Call ``init_metrics(service_name)`` once at startup.  When
OTEL_EXPORTER_OTLP_ENDPOINT is not set, the SDK falls back to a no-op
MeterProvider and all recordings are silent no-ops.

Instruments
-----------
  timeline.requests.issued_total       Counter  (label: source)
      Fetch requests issued to sources.

  timeline.requests.pending            UpDownCounter (gauge semantics)
      Requests currently outstanding.

  timeline.requests.stale_total        Counter
      Completions discarded because they were cancelled or superseded.

  timeline.requests.failed_total       Counter  (label: source)
      Fetches that raised.

  timeline.requests.latency_ms         Histogram
      Fetch duration in milliseconds.

  timeline.refresh_total               Counter  (label: mode=immediate|debounced)
      Pushes of the item list to the presentation layer.

All instruments carry a ``view`` label.
"""

from __future__ import annotations

import logging
import os

from opentelemetry import metrics

logger = logging.getLogger(__name__)

_METER_NAME = "timeline_aggregator"


def init_metrics(service_name: str) -> metrics.Meter:
    """Initialize OpenTelemetry metrics.

    When OTEL_EXPORTER_OTLP_ENDPOINT is set, configures a real MeterProvider
    with a periodic OTLP gRPC exporter.  Otherwise, the global no-op
    MeterProvider is used and all recordings are silent.
    """
    endpoint = os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT")

    if not endpoint:
        logger.info("OTEL_EXPORTER_OTLP_ENDPOINT not set, using no-op meter")
        return metrics.get_meter(_METER_NAME)

    # Import SDK/exporter only when needed to avoid hard dependency at import time
    from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
    from opentelemetry.sdk.metrics import MeterProvider
    from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
    from opentelemetry.sdk.resources import Resource

    resource = Resource.create({"service.name": service_name})
    exporter = OTLPMetricExporter(endpoint=endpoint)
    reader = PeriodicExportingMetricReader(exporter, export_interval_millis=15_000)
    provider = MeterProvider(resource=resource, metric_readers=[reader])

    metrics.set_meter_provider(provider)
    logger.info("Metrics initialized: service=%s, endpoint=%s", service_name, endpoint)

    return metrics.get_meter(_METER_NAME)


def get_meter() -> metrics.Meter:
    """Return a Meter from the current global provider."""
    return metrics.get_meter(_METER_NAME)


class TimelineMetrics:
    """Convenience wrapper that caches the aggregation instruments per view.

    Safe to construct before ``init_metrics`` is called; recordings are
    no-ops until a real provider is installed.
    """

    def __init__(self, view_name: str) -> None:
        self._attrs = {"view": view_name}
        self.__issued: metrics.Counter | None = None
        self.__pending: metrics.UpDownCounter | None = None
        self.__stale: metrics.Counter | None = None
        self.__failed: metrics.Counter | None = None
        self.__latency: metrics.Histogram | None = None
        self.__refresh: metrics.Counter | None = None

    # -- instrument accessors (lazy init) ------------------------------------

    @property
    def _issued(self) -> metrics.Counter:
        if self.__issued is None:
            self.__issued = get_meter().create_counter(
                name="timeline.requests.issued_total",
                description="Fetch requests issued to timeline sources",
                unit="requests",
            )
        return self.__issued

    @property
    def _pending(self) -> metrics.UpDownCounter:
        if self.__pending is None:
            self.__pending = get_meter().create_up_down_counter(
                name="timeline.requests.pending",
                description="Fetch requests currently outstanding",
                unit="requests",
            )
        return self.__pending

    @property
    def _stale(self) -> metrics.Counter:
        if self.__stale is None:
            self.__stale = get_meter().create_counter(
                name="timeline.requests.stale_total",
                description="Completions discarded after cancellation or resource change",
                unit="requests",
            )
        return self.__stale

    @property
    def _failed(self) -> metrics.Counter:
        if self.__failed is None:
            self.__failed = get_meter().create_counter(
                name="timeline.requests.failed_total",
                description="Source fetches that raised",
                unit="requests",
            )
        return self.__failed

    @property
    def _latency(self) -> metrics.Histogram:
        if self.__latency is None:
            self.__latency = get_meter().create_histogram(
                name="timeline.requests.latency_ms",
                description="Source fetch duration in milliseconds",
                unit="ms",
            )
        return self.__latency

    @property
    def _refresh(self) -> metrics.Counter:
        if self.__refresh is None:
            self.__refresh = get_meter().create_counter(
                name="timeline.refresh_total",
                description="Item list pushes to the presentation layer",
                unit="refreshes",
            )
        return self.__refresh

    # -- recording helpers ----------------------------------------------------

    def request_issued(self, source: str) -> None:
        self._issued.add(1, {**self._attrs, "source": source})
        self._pending.add(1, self._attrs)

    def request_finished(self) -> None:
        self._pending.add(-1, self._attrs)

    def request_stale(self) -> None:
        self._stale.add(1, self._attrs)

    def request_failed(self, source: str) -> None:
        self._failed.add(1, {**self._attrs, "source": source})

    def record_fetch_latency(self, latency_ms: float) -> None:
        self._latency.record(latency_ms, self._attrs)

    def refreshed(self, *, debounced: bool) -> None:
        self._refresh.add(1, {**self._attrs, "mode": "debounced" if debounced else "immediate"})
