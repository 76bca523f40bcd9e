"""Service layer: orchestration between the HTTP surface and the search engine."""

from caselaw_search.service_layer.search_service import SearchService


__all__ = ["SearchService"]
