"""Request-scoped correlation fields shared by log records and spans.

A request binds its trace id, the current span id and the route it serves;
everything logged while that request runs (including work handed to
``asyncio.to_thread``, which copies the context) carries the same fields.
"""

from __future__ import annotations

from contextvars import ContextVar
from typing import Any

from opentelemetry.sdk.trace.id_generator import RandomIdGenerator


_ids = RandomIdGenerator()
_request_context: ContextVar[dict[str, Any] | None] = ContextVar("caselaw_request_context", default=None)


def new_trace_id() -> str:
    return format(_ids.generate_trace_id(), "032x")


def new_span_id() -> str:
    return format(_ids.generate_span_id(), "016x")


def get_request_context() -> dict[str, Any]:
    """Correlation fields of the current request.

    Outside a request (startup, background ingestion) a fresh trace id is
    bound so log lines from the same task still group together.
    """
    ctx = _request_context.get()
    if not ctx or not ctx.get("trace_id"):
        ctx = {"trace_id": new_trace_id(), "span_id": new_span_id()}
        _request_context.set(ctx)
    return ctx


def bind_request_context(trace_id: str, span_id: str, **fields: Any) -> None:
    _request_context.set({"trace_id": trace_id, "span_id": span_id, **fields})


def bind_span_id(span_id: str) -> None:
    """Point log correlation at a newly opened span, keeping the trace id."""
    ctx = dict(_request_context.get() or get_request_context())
    ctx["span_id"] = span_id
    _request_context.set(ctx)
