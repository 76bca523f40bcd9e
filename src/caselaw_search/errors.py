"""Error taxonomy for the search engine.

Ingestion errors are recovered per document, query errors are surfaced to the
caller as structured responses, and timeouts/cancellations carry whatever
partial results were ranked before the execution stopped.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from caselaw_search.domain.search import SearchResult


class CaseSearchError(Exception):
    """Base class for all engine errors."""

    code = "internal_error"


class IngestError(CaseSearchError, ValueError):
    """Raised for duplicate document ids or malformed ingestion input."""

    code = "ingest_error"


class DocumentNotFoundError(CaseSearchError, KeyError):
    """Raised when a document id is not present in the store."""

    code = "not_found"

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "document not found"


class QueryError(CaseSearchError, ValueError):
    """Raised for malformed regular expressions or invalid filter values."""

    code = "query_error"


class _PartialResultError(CaseSearchError):
    def __init__(self, message: str, partial_results: list[SearchResult] | None = None, **details: Any) -> None:
        super().__init__(message)
        self.partial_results: list[SearchResult] = list(partial_results or [])
        self.details = details


class QueryTimeoutError(_PartialResultError, TimeoutError):
    """Raised when a query exceeds its deadline."""

    code = "timeout"


class QueryCancelledError(_PartialResultError):
    """Raised when the caller cancels a running query."""

    code = "cancelled"


class IndexInvariantError(CaseSearchError):
    """Raised when posting-list ordering or snapshot consistency is broken."""

    code = "internal_error"


class SnapshotFormatError(CaseSearchError, ValueError):
    """Raised when a persisted snapshot cannot be decoded."""

    code = "snapshot_format"
