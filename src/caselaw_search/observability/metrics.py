"""Prometheus metrics for search golden signals, mirrored into OpenTelemetry meters."""

from __future__ import annotations

from contextlib import contextmanager
import threading
import time
from typing import TYPE_CHECKING, Any

from opentelemetry import metrics as otel_metrics
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricReader
from opentelemetry.sdk.resources import Resource
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest


if TYPE_CHECKING:
    from collections.abc import Generator


_meter_holder: dict[str, Any] = {"meter": None, "provider": None}


def init_metrics(
    service_name: str = "caselaw-search",
    resource_attributes: dict[str, str] | None = None,
    metric_readers: list[MetricReader] | None = None,
) -> MeterProvider:
    """Initialize OpenTelemetry metrics."""
    provider = _meter_holder.get("provider")
    if isinstance(provider, MeterProvider):
        return provider

    attributes = {"service.name": service_name}
    if resource_attributes:
        attributes.update(resource_attributes)
    resource = Resource.create(attributes)
    provider = MeterProvider(resource=resource, metric_readers=metric_readers or [])
    otel_metrics.set_meter_provider(provider)
    _meter_holder["provider"] = provider
    _meter_holder["meter"] = otel_metrics.get_meter(__name__)
    return provider


def _get_meter():
    meter = _meter_holder.get("meter")
    if meter is None:
        init_metrics()
        meter = _meter_holder.get("meter")
    return meter


def _label_key(labels: dict[str, str]) -> tuple[tuple[str, str], ...]:
    return tuple(sorted(labels.items()))


class _BoundMetric:
    def __init__(self, wrapper: MetricBridge, labels: dict[str, str]) -> None:
        self._wrapper = wrapper
        self._labels = labels

    def inc(self, amount: float = 1.0) -> None:
        self._wrapper.inc(self._labels, amount)

    def observe(self, value: float) -> None:
        self._wrapper.observe(self._labels, value)

    def set(self, value: float) -> None:
        self._wrapper.set(self._labels, value)


class MetricBridge:
    """Bridge Prometheus metrics to OTel instruments."""

    def __init__(
        self,
        prom_metric: Counter | Histogram | Gauge,
        *,
        otel_name: str,
        otel_description: str,
        otel_kind: str,
    ) -> None:
        self._prom_metric = prom_metric
        self._otel_name = otel_name
        self._otel_description = otel_description
        self._otel_kind = otel_kind
        self._otel_instrument = None
        self._last_values: dict[tuple[tuple[str, str], ...], float] = {}
        self._lock = threading.Lock()

    @property
    def prometheus(self) -> Counter | Histogram | Gauge:
        return self._prom_metric

    def labels(self, **labels: str) -> _BoundMetric:
        return _BoundMetric(self, labels)

    def _ensure_otel_instrument(self):
        with self._lock:
            if self._otel_instrument is None:
                self._otel_instrument = self._create_otel_instrument()
            return self._otel_instrument

    def _create_otel_instrument(self):
        meter = _get_meter()
        if self._otel_kind == "counter":
            return meter.create_counter(self._otel_name, description=self._otel_description)
        if self._otel_kind == "histogram":
            return meter.create_histogram(self._otel_name, description=self._otel_description)
        if self._otel_kind == "gauge":
            return meter.create_up_down_counter(self._otel_name, description=self._otel_description)
        raise ValueError(f"Unknown metric kind: {self._otel_kind}")

    def inc(self, labels: dict[str, str], amount: float) -> None:
        self._prom_metric.labels(**labels).inc(amount)
        otel = self._ensure_otel_instrument()
        otel.add(amount, labels)

    def observe(self, labels: dict[str, str], value: float) -> None:
        self._prom_metric.labels(**labels).observe(value)
        otel = self._ensure_otel_instrument()
        otel.record(value, labels)

    def set(self, labels: dict[str, str], value: float) -> None:
        otel = self._ensure_otel_instrument()
        key = _label_key(labels)
        # The OTel side is an up-down counter fed with deltas; updates must not interleave.
        with self._lock:
            self._prom_metric.labels(**labels).set(value)
            delta = value - self._last_values.get(key, 0.0)
            if delta:
                otel.add(delta, labels)
            self._last_values[key] = value


_SEARCH_LATENCY_PROM = Histogram(
    "caselaw_search_latency_seconds",
    "Search query latency",
    ["plan"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

_SEARCH_COUNT_PROM = Counter(
    "caselaw_search_queries_total",
    "Total search queries",
    ["mode", "status"],
)

_QUERY_ERRORS_PROM = Counter(
    "caselaw_search_query_errors_total",
    "Search queries answered with an error",
    ["code"],
)

_INDEX_DOC_COUNT_PROM = Gauge(
    "caselaw_search_index_documents",
    "Documents in the published snapshot",
    ["index"],
)

_INGEST_COUNT_PROM = Counter(
    "caselaw_search_ingested_documents_total",
    "Documents processed by ingestion",
    ["outcome"],
)

SEARCH_LATENCY = MetricBridge(
    _SEARCH_LATENCY_PROM,
    otel_name="caselaw_search_latency_seconds",
    otel_description="Search query latency",
    otel_kind="histogram",
)

SEARCH_COUNT = MetricBridge(
    _SEARCH_COUNT_PROM,
    otel_name="caselaw_search_queries_total",
    otel_description="Total search queries",
    otel_kind="counter",
)

QUERY_ERRORS = MetricBridge(
    _QUERY_ERRORS_PROM,
    otel_name="caselaw_search_query_errors_total",
    otel_description="Search queries answered with an error",
    otel_kind="counter",
)

INDEX_DOC_COUNT = MetricBridge(
    _INDEX_DOC_COUNT_PROM,
    otel_name="caselaw_search_index_documents",
    otel_description="Documents in the published snapshot",
    otel_kind="gauge",
)

INGEST_COUNT = MetricBridge(
    _INGEST_COUNT_PROM,
    otel_name="caselaw_search_ingested_documents_total",
    otel_description="Documents processed by ingestion",
    otel_kind="counter",
)


class LatencyTimer:
    """Running timer whose labels may be completed before the block exits."""

    def __init__(self, labels: dict[str, str]) -> None:
        self.labels = labels
        self._start = time.perf_counter()

    @property
    def elapsed(self) -> float:
        return time.perf_counter() - self._start


@contextmanager
def track_latency(histogram: MetricBridge, **labels: str) -> Generator[LatencyTimer, None, None]:
    """Observe the duration of the block in ``histogram``, even when it raises."""
    timer = LatencyTimer(dict(labels))
    try:
        yield timer
    finally:
        histogram.labels(**timer.labels).observe(timer.elapsed)


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest()


def get_metrics_content_type() -> str:
    """Get content type for metrics endpoint."""
    return CONTENT_TYPE_LATEST
