"""Query execution: parse, plan, verify candidates, rank, attach snippets.

Each execution walks a fixed state machine::

    PARSED -> PLANNED -> EXECUTING -> RANKED -> DONE

and moves to FAILED from any non-terminal state when an error escapes.
Between candidate documents the executor checks the caller's deadline and
cancellation event; when either fires, the hits gathered so far are ranked
and attached to the raised error as partial results.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
import re
import threading
import time

from caselaw_search.domain.model import Document
from caselaw_search.domain.search import Query, QueryPlanKind, SearchResult
from caselaw_search.errors import IndexInvariantError, QueryCancelledError, QueryTimeoutError
from caselaw_search.search.planner import QueryPlan, parse_query, plan_query
from caselaw_search.search.snapshot import IndexSnapshot
from caselaw_search.search.snippet import extract_snippets


logger = logging.getLogger(__name__)


class QueryState(str, Enum):
    PARSED = "parsed"
    PLANNED = "planned"
    EXECUTING = "executing"
    RANKED = "ranked"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in {QueryState.DONE, QueryState.FAILED}


_TRANSITIONS: dict[QueryState | None, frozenset[QueryState]] = {
    None: frozenset({QueryState.PARSED, QueryState.FAILED}),
    QueryState.PARSED: frozenset({QueryState.PLANNED, QueryState.FAILED}),
    QueryState.PLANNED: frozenset({QueryState.EXECUTING, QueryState.FAILED}),
    QueryState.EXECUTING: frozenset({QueryState.RANKED, QueryState.FAILED}),
    QueryState.RANKED: frozenset({QueryState.DONE, QueryState.FAILED}),
}


@dataclass(frozen=True)
class ExecutionOptions:
    """Limits applied while executing one query."""

    max_results: int = 20
    max_snippets_per_document: int = 3
    max_snippet_results: int = 5
    prefix_min_chars: int = 3


@dataclass(frozen=True)
class Hit:
    """A verified match: document id, match count and match offsets."""

    doc_id: int
    match_count: int
    offsets: tuple[int, ...]


@dataclass(frozen=True)
class ExecutionOutcome:
    results: list[SearchResult]
    total_matches: int
    plan: QueryPlanKind
    candidates_scanned: int


class Deadline:
    """Deadline and cancellation checks shared by one execution."""

    def __init__(self, timeout: float | None = None, cancel_event: threading.Event | None = None) -> None:
        self.timeout = timeout
        self.expires_at = None if timeout is None else time.monotonic() + max(0.0, timeout)
        self.cancel_event = cancel_event

    def expired(self) -> bool:
        return self.expires_at is not None and time.monotonic() >= self.expires_at

    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()


def count_matches(matcher: re.Pattern[str], text: str, *, by_line: bool, line_offsets: tuple[int, ...]) -> list[int]:
    """Return start offsets of non-empty matches of ``matcher`` in ``text``.

    Literal plans search the whole text; regex plans apply the matcher to
    each raw line so anchors and ``.`` behave per line.
    """

    if not by_line:
        return [match.start() for match in matcher.finditer(text) if match.end() > match.start()]
    offsets: list[int] = []
    total = len(line_offsets)
    for index, start in enumerate(line_offsets):
        end = line_offsets[index + 1] - 1 if index + 1 < total else len(text)
        line = text[start:end]
        if line.endswith("\r"):
            line = line[:-1]
        offsets.extend(start + match.start() for match in matcher.finditer(line) if match.end() > match.start())
    return offsets


def rank_hits(hits: list[Hit]) -> list[Hit]:
    """Match count descending, ties broken by ascending document id."""
    return sorted(hits, key=lambda hit: (-hit.match_count, hit.doc_id))


class QueryExecution:
    """Executes one query against one snapshot."""

    def __init__(
        self,
        query: Query,
        snapshot: IndexSnapshot,
        options: ExecutionOptions | None = None,
        deadline: Deadline | None = None,
    ) -> None:
        self.query = query
        self.snapshot = snapshot
        self.options = options or ExecutionOptions()
        self.deadline = deadline or Deadline()
        self.state: QueryState | None = None
        self.plan: QueryPlan | None = None
        self._hits: list[Hit] = []
        self._scanned = 0

    def _advance(self, state: QueryState) -> None:
        allowed = _TRANSITIONS.get(self.state, frozenset())
        if state not in allowed:
            raise IndexInvariantError(f"illegal query state transition {self.state} -> {state}")
        self.state = state

    def run(self) -> ExecutionOutcome:
        try:
            parsed = parse_query(self.query)
            self._advance(QueryState.PARSED)

            self.plan = plan_query(parsed, self.snapshot, prefix_min_chars=self.options.prefix_min_chars)
            self._advance(QueryState.PLANNED)
            logger.debug(
                "Planned %s query over %d candidates (driving token=%s)",
                self.plan.kind.value,
                len(self.plan.candidate_ids),
                self.plan.driving_token,
            )

            self._advance(QueryState.EXECUTING)
            self._execute(self.plan)

            ranked = rank_hits(self._hits)
            self._advance(QueryState.RANKED)

            results = self._materialize(ranked)
            self._advance(QueryState.DONE)
        except (QueryTimeoutError, QueryCancelledError):
            raise
        except Exception:
            if self.state is None or not self.state.is_terminal:
                self.state = QueryState.FAILED
            raise
        return ExecutionOutcome(
            results=results,
            total_matches=len(ranked),
            plan=self.plan.kind,
            candidates_scanned=self._scanned,
        )

    def _check_deadline(self) -> None:
        if self.deadline.cancelled():
            self.state = QueryState.FAILED
            raise QueryCancelledError(
                "Query cancelled by caller",
                partial_results=self._materialize(rank_hits(self._hits)),
                scanned=self._scanned,
            )
        if self.deadline.expired():
            self.state = QueryState.FAILED
            raise QueryTimeoutError(
                f"Query exceeded its {self.deadline.timeout:.3f}s deadline",
                partial_results=self._materialize(rank_hits(self._hits)),
                scanned=self._scanned,
            )

    def _execute(self, plan: QueryPlan) -> None:
        if plan.kind is QueryPlanKind.EMPTY or plan.matcher is None:
            return
        documents = self.snapshot.documents
        for doc_id in plan.candidate_ids:
            self._check_deadline()
            document = documents.get(doc_id)
            offsets = count_matches(
                plan.matcher,
                document.text,
                by_line=plan.line_scan,
                line_offsets=document.line_offsets,
            )
            self._scanned += 1
            if offsets:
                self._hits.append(Hit(doc_id=doc_id, match_count=len(offsets), offsets=tuple(offsets)))

    def _materialize(self, ranked: list[Hit]) -> list[SearchResult]:
        limit = self.options.max_results
        documents = self.snapshot.documents
        results: list[SearchResult] = []
        for position, hit in enumerate(ranked[:limit]):
            document: Document = documents.get(hit.doc_id)
            snippets = []
            if position < self.options.max_snippet_results:
                snippets = extract_snippets(document, hit.offsets, self.options.max_snippets_per_document)
            results.append(
                SearchResult(
                    document_id=document.id,
                    jurisdiction=document.jurisdiction,
                    path=document.path,
                    case_type=document.case_type,
                    match_count=hit.match_count,
                    snippets=snippets,
                )
            )
        return results


def execute_query(
    query: Query,
    snapshot: IndexSnapshot,
    options: ExecutionOptions | None = None,
    *,
    timeout: float | None = None,
    cancel_event: threading.Event | None = None,
) -> ExecutionOutcome:
    """Run ``query`` against ``snapshot`` and return ranked results."""
    return QueryExecution(query, snapshot, options, Deadline(timeout, cancel_event)).run()
