"""OpenTelemetry spans for search requests, queries and ingestion."""

from __future__ import annotations

from contextlib import contextmanager
import logging
from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.trace import SpanKind, Status, StatusCode
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator
from starlette.datastructures import Headers, MutableHeaders

from caselaw_search.observability.context import bind_request_context, bind_span_id


if TYPE_CHECKING:
    from collections.abc import Generator

    from opentelemetry.context import Context
    from opentelemetry.trace import Span
    from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger(__name__)

TRACE_ID_HEADER = "x-trace-id"

_tracer_holder: dict[str, Any] = {"tracer": None, "provider": None}
_propagator = TraceContextTextMapPropagator()


def init_tracing(
    service_name: str = "caselaw-search",
    resource_attributes: dict[str, str] | None = None,
) -> TracerProvider:
    """Install the tracer provider once; later calls return the installed one."""
    provider = _tracer_holder.get("provider")
    if isinstance(provider, TracerProvider):
        return provider

    resource = Resource.create({"service.name": service_name, **(resource_attributes or {})})
    provider = TracerProvider(resource=resource)
    trace.set_tracer_provider(provider)
    _tracer_holder["provider"] = provider
    _tracer_holder["tracer"] = trace.get_tracer("caselaw_search")
    logger.info("Tracing initialized for service: %s", service_name)
    return provider


def _tracer() -> trace.Tracer:
    if _tracer_holder["tracer"] is None:
        init_tracing()
    return _tracer_holder["tracer"]


@contextmanager
def create_span(
    name: str,
    kind: SpanKind = SpanKind.INTERNAL,
    attributes: dict[str, Any] | None = None,
    context: Context | None = None,
) -> Generator[Span, None, None]:
    """Open a span and point log correlation at it.

    An exception escaping the block marks the span as failed before it is
    re-raised.
    """
    with _tracer().start_as_current_span(
        name, context=context, kind=kind, attributes=attributes, record_exception=False, set_status_on_exception=False
    ) as span:
        bind_span_id(format(span.get_span_context().span_id, "016x"))
        try:
            yield span
        except Exception as exc:
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            span.record_exception(exc)
            raise


def annotate_request(**attributes: Any) -> None:
    """Attach search outcome attributes (plan, result count) to the active request span."""
    span = trace.get_current_span()
    if span.is_recording():
        span.set_attributes({f"search.{key}": value for key, value in attributes.items()})


class RequestTracingMiddleware:
    """ASGI middleware wrapping every HTTP request in a server span.

    A W3C ``traceparent`` header makes the span a child of the caller's trace.
    Log correlation uses the ``x-trace-id`` header when the caller sends one
    and the span's trace id otherwise; either way the id is echoed back in the
    ``x-trace-id`` response header.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        method = scope.get("method", "")
        route = scope.get("path", "")
        status_code = 500

        with create_span(
            f"{method} {route}",
            kind=SpanKind.SERVER,
            attributes={"http.request.method": method, "url.path": route},
            context=_propagator.extract(carrier=dict(headers)),
        ) as span:
            trace_id = headers.get(TRACE_ID_HEADER) or format(span.get_span_context().trace_id, "032x")
            bind_request_context(trace_id, format(span.get_span_context().span_id, "016x"), route=route, method=method)

            async def send_with_trace_id(message: Message) -> None:
                nonlocal status_code
                if message["type"] == "http.response.start":
                    status_code = message["status"]
                    MutableHeaders(scope=message).append(TRACE_ID_HEADER, trace_id)
                await send(message)

            await self.app(scope, receive, send_with_trace_id)
            span.set_attribute("http.response.status_code", status_code)
            if status_code >= 500:
                span.set_status(Status(StatusCode.ERROR, f"HTTP {status_code}"))
