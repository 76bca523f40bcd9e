"""Search service orchestration layer.

Binds a ``SnapshotHandle`` to runtime ``Settings`` and exposes the query and
ingestion interfaces used by the HTTP app. Every engine error raised while
answering a query is converted into ``SearchResponse.error`` so callers get a
structured response instead of an exception.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable, Mapping
import logging
from pathlib import Path
import threading
from typing import Any

from caselaw_search.config import Settings
from caselaw_search.domain.model import DocumentInput
from caselaw_search.domain.search import Query, QueryPlanKind, SearchErrorInfo, SearchResponse
from caselaw_search.errors import (
    IndexInvariantError,
    QueryCancelledError,
    QueryError,
    QueryTimeoutError,
)
from caselaw_search.observability.metrics import (
    INDEX_DOC_COUNT,
    INGEST_COUNT,
    QUERY_ERRORS,
    SEARCH_COUNT,
    SEARCH_LATENCY,
    LatencyTimer,
    track_latency,
)
from caselaw_search.observability.tracing import create_span
from caselaw_search.search.executor import Deadline, ExecutionOptions, QueryExecution
from caselaw_search.search.persistence import load_snapshot, save_snapshot
from caselaw_search.search.snapshot import IndexSnapshot, IngestReport, SnapshotHandle


logger = logging.getLogger(__name__)


class SearchService:
    """High-level search and ingestion facade over one snapshot handle.

    Safe for concurrent callers: each query reads the handle once and works on
    that immutable snapshot until it returns.
    """

    def __init__(self, handle: SnapshotHandle | None = None, settings: Settings | None = None, *, name: str = "default"):
        self.settings = settings or Settings()
        self.handle = handle or SnapshotHandle(strict_invariants=self.settings.strict_invariants)
        self.name = name

    def _options(self, query: Query) -> ExecutionOptions:
        return ExecutionOptions(
            max_results=self.settings.resolve_max_results(query.max_results),
            max_snippets_per_document=self.settings.max_snippets_per_document,
            max_snippet_results=self.settings.max_snippet_results,
            prefix_min_chars=self.settings.regex_prefix_min_chars,
        )

    def search(
        self,
        query: Query,
        *,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> SearchResponse:
        """Execute ``query`` against the current snapshot.

        Args:
            query: Query text, mode flags and metadata filters
            timeout: Deadline in seconds; None falls back to ``default_timeout_ms``
                and 0 runs without a deadline
            cancel_event: Set by the caller to abandon the query early

        Returns:
            SearchResponse; ``error`` is populated for malformed queries,
            timeouts, cancellations and internal failures
        """
        snapshot = self.handle.current()
        execution = QueryExecution(
            query,
            snapshot,
            self._options(query),
            Deadline(self.settings.resolve_timeout(timeout), cancel_event),
        )
        mode = "regex" if query.regex else "literal"

        attributes = {
            "search.mode": mode,
            "search.case_sensitive": query.case_sensitive,
            "search.whole_word": query.whole_word,
            "search.generation": snapshot.generation,
        }
        with track_latency(SEARCH_LATENCY, plan=QueryPlanKind.EMPTY.value) as timer, create_span(
            "search.query", attributes=attributes
        ) as span:
            try:
                outcome = execution.run()
            except QueryError as exc:
                return self._error_response(execution, snapshot, timer, exc, mode)
            except (QueryTimeoutError, QueryCancelledError) as exc:
                logger.warning(
                    "Query %s after scanning %s candidates: %s",
                    exc.code,
                    exc.details.get("scanned"),
                    exc,
                    extra={"generation": snapshot.generation},
                )
                return self._error_response(execution, snapshot, timer, exc, mode, partial_results=exc.partial_results)
            except IndexInvariantError as exc:
                if self.settings.strict_invariants:
                    raise AssertionError(f"index invariant violated: {exc}") from exc
                logger.error("Index invariant violated while searching: %s", exc, exc_info=True)
                return self._error_response(execution, snapshot, timer, exc, mode)

            timer.labels["plan"] = outcome.plan.value
            elapsed = timer.elapsed
            SEARCH_COUNT.labels(mode=mode, status="ok").inc()
            span.set_attribute("search.plan", outcome.plan.value)
            span.set_attribute("search.total_matches", outcome.total_matches)
            logger.debug(
                "Search completed: %d/%d results in %.2fms (scanned=%d)",
                len(outcome.results),
                outcome.total_matches,
                elapsed * 1000,
                outcome.candidates_scanned,
                extra={"plan": outcome.plan.value, "generation": snapshot.generation},
            )
            return SearchResponse(
                results=outcome.results,
                elapsed_millis=elapsed * 1000,
                total_matches=outcome.total_matches,
                plan=outcome.plan,
                generation=snapshot.generation,
            )

    def _error_response(
        self,
        execution: QueryExecution,
        snapshot: IndexSnapshot,
        timer: LatencyTimer,
        exc: Exception,
        mode: str,
        partial_results: list | None = None,
    ) -> SearchResponse:
        code = getattr(exc, "code", "internal_error")
        plan = execution.plan.kind if execution.plan is not None else QueryPlanKind.EMPTY
        timer.labels["plan"] = plan.value
        SEARCH_COUNT.labels(mode=mode, status=code).inc()
        QUERY_ERRORS.labels(code=code).inc()
        results = list(partial_results or [])
        return SearchResponse(
            results=results,
            elapsed_millis=timer.elapsed * 1000,
            total_matches=len(results),
            plan=plan,
            partial=partial_results is not None,
            generation=snapshot.generation,
            error=SearchErrorInfo(code=code, message=str(exc)),
        )

    def search_text(
        self,
        text: str,
        case_sensitive: bool = False,
        regex: bool = False,
        jurisdiction_filter: Collection[str] | str | None = None,
        case_type_filter: Collection[str] | str | None = None,
        max_results: int | None = None,
        timeout: float | None = None,
        whole_word: bool = False,
    ) -> SearchResponse:
        """Convenience wrapper building a ``Query`` from plain arguments."""
        query = Query(
            text=text,
            case_sensitive=case_sensitive,
            regex=regex,
            whole_word=whole_word,
            jurisdiction_filter=jurisdiction_filter,
            case_type_filter=case_type_filter,
            max_results=max_results,
        )
        return self.search(query, timeout=timeout)

    def ingest_batch(self, documents: Iterable[DocumentInput | Mapping[str, Any]]) -> IngestReport:
        """Ingest a batch and publish a new snapshot; persists it when configured."""
        with create_span("search.ingest") as span:
            report = self.handle.ingest_batch(documents)
            span.set_attribute("ingest.ingested", report.ingested)
            span.set_attribute("ingest.generation", report.generation)

        INGEST_COUNT.labels(outcome="ingested").inc(report.ingested)
        INGEST_COUNT.labels(outcome="skipped").inc(report.skipped)
        INGEST_COUNT.labels(outcome="rejected").inc(len(report.errors))
        self._record_document_count()

        if self.settings.snapshot_path is not None and report.ingested:
            self.save_snapshot(self.settings.snapshot_path)
        return report

    def facets(
        self,
        jurisdiction_filter: Collection[str] | str | None = None,
        case_type_filter: Collection[str] | str | None = None,
        *,
        jurisdiction_name: str | None = None,
        case_type_name: str | None = None,
    ) -> dict[str, dict[str, int]]:
        """Document counts per jurisdiction and case type for the current snapshot.

        The ``*_name`` arguments narrow each facet list to values containing
        that text, for type-ahead filtering.
        """
        if isinstance(jurisdiction_filter, str):
            jurisdiction_filter = {jurisdiction_filter}
        if isinstance(case_type_filter, str):
            case_type_filter = {case_type_filter}
        return self.handle.current().documents.facet_counts(
            jurisdiction_filter,
            case_type_filter,
            jurisdiction_name=jurisdiction_name,
            case_type_name=case_type_name,
        )

    def snapshot_info(self) -> dict[str, Any]:
        return {"name": self.name, **self.handle.current().info()}

    def save_snapshot(self, path: Path | None = None) -> Path:
        target = path or self.settings.snapshot_path
        if target is None:
            raise ValueError("No snapshot path configured")
        with create_span("search.snapshot.save", attributes={"snapshot.path": str(target)}):
            return save_snapshot(self.handle.current(), Path(target))

    def load_snapshot(self, path: Path | None = None) -> IndexSnapshot:
        """Restore a persisted snapshot and publish it as the current one."""
        target = path or self.settings.snapshot_path
        if target is None:
            raise ValueError("No snapshot path configured")
        with create_span("search.snapshot.load", attributes={"snapshot.path": str(target)}):
            snapshot = self.handle.publish(load_snapshot(Path(target)))
        self._record_document_count()
        return snapshot

    def _record_document_count(self) -> None:
        INDEX_DOC_COUNT.labels(index=self.name).set(self.handle.current().document_count)
