"""Domain layer - documents, queries and results with no infrastructure dependencies."""

from caselaw_search.domain.model import Document, DocumentInput
from caselaw_search.domain.search import (
    Query,
    QueryPlanKind,
    SearchErrorInfo,
    SearchResponse,
    SearchResult,
    Snippet,
)


__all__ = [
    "Document",
    "DocumentInput",
    "Query",
    "QueryPlanKind",
    "SearchErrorInfo",
    "SearchResponse",
    "SearchResult",
    "Snippet",
]
