"""ASGI application exposing search, ingestion and facets over HTTP.

Routes:
    GET  /health     snapshot generation and document count
    GET  /metrics    Prometheus exposition
    GET  /search     ?q=&case_sensitive=&regex=&whole_word=&jurisdiction=&case_type=&max_results=&timeout_ms=
    POST /documents  JSON array of documents (ingestion)
    GET  /facets     ?jurisdiction=&case_type=&jurisdiction_name=&case_type_name=

``timeout_ms=0`` runs the query without a deadline; omitting it applies the
configured default.

Usage:
    python -m caselaw_search.app
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
import logging
from typing import TYPE_CHECKING, Any

from starlette.applications import Starlette
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from caselaw_search.config import Settings
from caselaw_search.domain.search import Query
from caselaw_search.errors import SnapshotFormatError
from caselaw_search.observability import (
    RequestTracingMiddleware,
    annotate_request,
    configure_logging,
    get_metrics,
    get_metrics_content_type,
    init_metrics,
    init_tracing,
)
from caselaw_search.service_layer.search_service import SearchService
from caselaw_search.search.snapshot import SnapshotHandle


if TYPE_CHECKING:
    from starlette.requests import Request


logger = logging.getLogger(__name__)

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"", "0", "false", "no", "off"})


class _BadRequest(ValueError):
    pass


def _error_payload(code: str, message: str) -> dict[str, Any]:
    return {"error": {"code": code, "message": message}}


def _parse_bool(request: Request, name: str) -> bool:
    raw = request.query_params.get(name, "").strip().lower()
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    raise _BadRequest(f"{name} must be a boolean, got {raw!r}")


def _parse_int(request: Request, name: str) -> int | None:
    raw = request.query_params.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        value = int(raw)
    except ValueError:
        raise _BadRequest(f"{name} must be an integer, got {raw!r}") from None
    if value < 0:
        raise _BadRequest(f"{name} must not be negative")
    return value


def _parse_filter(request: Request, name: str) -> frozenset[str] | None:
    values = request.query_params.getlist(name)
    return frozenset(values) if values else None


def _search_status(code: str | None) -> int:
    if code is None or code in {"timeout", "cancelled"}:
        return 200
    if code == "query_error":
        return 400
    return 500


def _build_health_endpoint(service: SearchService):
    async def health_check(_: Request) -> JSONResponse:
        snapshot = service.handle.current()
        return JSONResponse(
            {
                "status": "healthy",
                "generation": snapshot.generation,
                "documents": snapshot.document_count,
            }
        )

    return health_check


def _build_metrics_endpoint():
    async def metrics_endpoint(_: Request) -> Response:
        return Response(content=get_metrics(), media_type=get_metrics_content_type())

    return metrics_endpoint


def _build_search_endpoint(service: SearchService):
    async def search_endpoint(request: Request) -> JSONResponse:
        try:
            query = Query(
                text=request.query_params.get("q", ""),
                case_sensitive=_parse_bool(request, "case_sensitive"),
                regex=_parse_bool(request, "regex"),
                whole_word=_parse_bool(request, "whole_word"),
                jurisdiction_filter=_parse_filter(request, "jurisdiction"),
                case_type_filter=_parse_filter(request, "case_type"),
                max_results=_parse_int(request, "max_results"),
            )
            timeout_ms = _parse_int(request, "timeout_ms")
        except _BadRequest as exc:
            return JSONResponse(_error_payload("query_error", str(exc)), status_code=400)

        timeout = timeout_ms / 1000.0 if timeout_ms is not None else None
        response = await asyncio.to_thread(service.search, query, timeout=timeout)
        annotate_request(plan=response.plan.value, total_matches=response.total_matches, results=len(response.results))

        payload: dict[str, Any] = {
            "results": [result.to_ui_dict() for result in response.results],
            "elapsed_millis": round(response.elapsed_millis, 3),
            "total_matches": response.total_matches,
            "plan": response.plan.value,
            "partial": response.partial,
            "generation": response.generation,
        }
        code = response.error.code if response.error else None
        if response.error is not None:
            payload["error"] = response.error.model_dump()
        return JSONResponse(payload, status_code=_search_status(code))

    return search_endpoint


def _build_documents_endpoint(service: SearchService):
    async def documents_endpoint(request: Request) -> JSONResponse:
        try:
            body = await request.json()
        except ValueError:
            return JSONResponse(_error_payload("ingest_error", "request body must be JSON"), status_code=400)
        if isinstance(body, dict):
            body = [body]
        if not isinstance(body, list):
            return JSONResponse(
                _error_payload("ingest_error", "request body must be a JSON array of documents"),
                status_code=400,
            )
        report = await asyncio.to_thread(service.ingest_batch, body)
        annotate_request(ingested=report.ingested, rejected=len(report.errors))
        return JSONResponse(report.to_dict())

    return documents_endpoint


def _build_facets_endpoint(service: SearchService):
    async def facets_endpoint(request: Request) -> JSONResponse:
        facets = service.facets(
            _parse_filter(request, "jurisdiction"),
            _parse_filter(request, "case_type"),
            jurisdiction_name=request.query_params.get("jurisdiction_name"),
            case_type_name=request.query_params.get("case_type_name"),
        )
        return JSONResponse({"facets": facets, "generation": service.handle.generation})

    return facets_endpoint


def _build_lifespan(service: SearchService):
    @asynccontextmanager
    async def lifespan(_: Starlette):
        path = service.settings.snapshot_path
        if path is not None and path.exists():
            try:
                await asyncio.to_thread(service.load_snapshot, path)
            except SnapshotFormatError as exc:
                logger.error("Ignoring unreadable snapshot %s: %s", path, exc)
        yield
        logger.info("Search server shutting down at generation %d", service.handle.generation)

    return lifespan


def create_app(settings: Settings | None = None, service: SearchService | None = None) -> Starlette:
    """Build the Starlette application around one ``SearchService``."""
    settings = settings or (service.settings if service is not None else Settings())
    if service is None:
        service = SearchService(SnapshotHandle(strict_invariants=settings.strict_invariants), settings)

    init_metrics(service_name="caselaw-search")
    init_tracing(service_name="caselaw-search")

    routes = [
        Route("/health", endpoint=_build_health_endpoint(service), methods=["GET"]),
        Route("/metrics", endpoint=_build_metrics_endpoint(), methods=["GET"]),
        Route("/search", endpoint=_build_search_endpoint(service), methods=["GET"]),
        Route("/documents", endpoint=_build_documents_endpoint(service), methods=["POST"]),
        Route("/facets", endpoint=_build_facets_endpoint(service), methods=["GET"]),
    ]
    app = Starlette(
        debug=settings.log_level.lower() == "debug",
        routes=routes,
        lifespan=_build_lifespan(service),
    )
    app.state.search_service = service
    app.add_middleware(RequestTracingMiddleware)
    return app


def main() -> None:
    """Run the search server with uvicorn."""
    import uvicorn

    settings = Settings()
    configure_logging(level=settings.log_level, json_output=settings.json_logs)

    app = create_app(settings)
    logger.info("Starting caselaw search on %s:%d", settings.host, settings.port)
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        log_config=None,  # Don't let uvicorn override our logging config
    )


if __name__ == "__main__":
    main()
