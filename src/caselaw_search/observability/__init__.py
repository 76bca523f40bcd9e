"""Observability module for OpenTelemetry-aligned tracing, metrics, and logging."""

from caselaw_search.observability.context import get_request_context
from caselaw_search.observability.logging import JsonFormatter, configure_logging
from caselaw_search.observability.metrics import (
    INDEX_DOC_COUNT,
    INGEST_COUNT,
    QUERY_ERRORS,
    SEARCH_COUNT,
    SEARCH_LATENCY,
    get_metrics,
    get_metrics_content_type,
    init_metrics,
    track_latency,
)
from caselaw_search.observability.tracing import (
    RequestTracingMiddleware,
    annotate_request,
    create_span,
    init_tracing,
)


__all__ = [
    "INDEX_DOC_COUNT",
    "INGEST_COUNT",
    "QUERY_ERRORS",
    "SEARCH_COUNT",
    "SEARCH_LATENCY",
    "JsonFormatter",
    "RequestTracingMiddleware",
    "annotate_request",
    "configure_logging",
    "create_span",
    "get_metrics",
    "get_metrics_content_type",
    "get_request_context",
    "init_metrics",
    "init_tracing",
    "track_latency",
]
