"""Query parsing and planning.

Two tiers of plans exist and the slow one is explicit:

* ``literal`` - the query is tokenized like a document; each query token is
  expanded to the vocabulary terms containing it (or looked up exactly for
  whole-word queries), and the resulting posting lists are intersected
  rarest-first. Only the surviving candidates are verified against raw text.
* ``regex`` - no index acceleration; every document passing the filters is
  scanned line by line. When the pattern starts with a literal of at least
  ``prefix_min_chars`` characters the plan becomes ``regex-prefix`` and the
  literal narrows the candidates through the index first.

``literal-scan`` covers literal queries without any word characters (a lone
``§`` for example), which cannot use the index.
"""

from __future__ import annotations

from collections.abc import Collection
from dataclasses import dataclass
from enum import Enum
import re

from caselaw_search.domain.search import Query, QueryPlanKind
from caselaw_search.errors import QueryError
from caselaw_search.search.analyzers import compile_literal, compile_matcher, literal_prefix, normalize
from caselaw_search.search.postings import PostingList, intersect_all
from caselaw_search.search.snapshot import IndexSnapshot


class QueryMode(str, Enum):
    LITERAL = "literal"
    REGEX = "regex"


@dataclass(frozen=True)
class ParsedQuery:
    """A validated query with its execution mode decided."""

    text: str
    mode: QueryMode
    case_sensitive: bool
    whole_word: bool
    jurisdictions: frozenset[str] | None
    case_types: frozenset[str] | None

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()


@dataclass(frozen=True)
class TermStat:
    """Per-token expansion used to order intersections."""

    token: str
    document_frequency: int


@dataclass(frozen=True)
class QueryPlan:
    """Execution plan for one query against one snapshot.

    ``candidate_ids`` is ascending and already restricted by the metadata
    filters; every candidate still needs verification against raw text.
    """

    kind: QueryPlanKind
    matcher: re.Pattern[str] | None
    candidate_ids: tuple[int, ...]
    term_stats: tuple[TermStat, ...] = ()
    driving_token: str | None = None

    @property
    def line_scan(self) -> bool:
        return self.kind in {QueryPlanKind.REGEX, QueryPlanKind.REGEX_PREFIX}


def _validate_filter(name: str, values: Collection[str] | None) -> frozenset[str] | None:
    if values is None:
        return None
    cleaned: set[str] = set()
    for value in values:
        if not isinstance(value, str) or not value.strip():
            raise QueryError(f"Invalid {name} filter value: {value!r}")
        cleaned.add(value.strip())
    return frozenset(cleaned)


def parse_query(query: Query) -> ParsedQuery:
    """Validate filters and decide literal vs regex mode.

    An empty query is valid and later yields an empty plan.
    """

    return ParsedQuery(
        text=query.text,
        mode=QueryMode.REGEX if query.regex else QueryMode.LITERAL,
        case_sensitive=query.case_sensitive,
        whole_word=query.whole_word,
        jurisdictions=_validate_filter("jurisdiction", query.jurisdiction_filter),
        case_types=_validate_filter("case type", query.case_type_filter),
    )


def _allowed_ids(parsed: ParsedQuery, snapshot: IndexSnapshot) -> frozenset[int] | None:
    if parsed.jurisdictions is None and parsed.case_types is None:
        return None
    return snapshot.documents.filter_ids(parsed.jurisdictions, parsed.case_types)


def _index_candidates(
    tokens: list[str], snapshot: IndexSnapshot, *, whole_words: bool = False
) -> tuple[PostingList, tuple[TermStat, ...]]:
    """Resolve every token to a posting list and intersect them smallest first."""
    index = snapshot.index
    resolve = index.lookup if whole_words else index.lookup_substring
    postings = {token: resolve(token) for token in dict.fromkeys(tokens)}
    stats = sorted(
        (TermStat(token, len(matches)) for token, matches in postings.items()),
        key=lambda stat: (stat.document_frequency, stat.token),
    )
    return intersect_all(postings.values()), tuple(stats)


def _compile(parsed: ParsedQuery) -> re.Pattern[str]:
    if parsed.mode is QueryMode.REGEX:
        return compile_matcher(parsed.text, parsed.case_sensitive, parsed.whole_word)
    return compile_literal(parsed.text, parsed.case_sensitive, parsed.whole_word)


def _restrict(ids: tuple[int, ...], allowed: frozenset[int] | None) -> tuple[int, ...]:
    if allowed is None:
        return ids
    return tuple(doc_id for doc_id in ids if doc_id in allowed)


def _scan_all(snapshot: IndexSnapshot, allowed: frozenset[int] | None) -> tuple[int, ...]:
    if allowed is None:
        return tuple(snapshot.documents.ids())
    return tuple(sorted(allowed))


def plan_query(parsed: ParsedQuery, snapshot: IndexSnapshot, *, prefix_min_chars: int = 3) -> QueryPlan:
    """Build the execution plan for ``parsed`` against ``snapshot``."""

    if parsed.is_empty:
        return QueryPlan(kind=QueryPlanKind.EMPTY, matcher=None, candidate_ids=())

    allowed = _allowed_ids(parsed, snapshot)
    if allowed is not None and not allowed:
        kind = QueryPlanKind.REGEX if parsed.mode is QueryMode.REGEX else QueryPlanKind.LITERAL
        return QueryPlan(kind=kind, matcher=_compile(parsed), candidate_ids=())

    matcher = _compile(parsed)
    if parsed.mode is QueryMode.REGEX:
        prefix = literal_prefix(parsed.text)
        prefix_tokens = [token.text for token in normalize(prefix)] if len(prefix) >= prefix_min_chars else []
        if not prefix_tokens:
            return QueryPlan(kind=QueryPlanKind.REGEX, matcher=matcher, candidate_ids=_scan_all(snapshot, allowed))
        postings, stats = _index_candidates(prefix_tokens, snapshot)
        return QueryPlan(
            kind=QueryPlanKind.REGEX_PREFIX,
            matcher=matcher,
            candidate_ids=_restrict(postings.doc_ids, allowed),
            term_stats=stats,
            driving_token=stats[0].token if stats else None,
        )

    tokens = [token.text for token in normalize(parsed.text)]
    if not tokens:
        return QueryPlan(kind=QueryPlanKind.LITERAL_SCAN, matcher=matcher, candidate_ids=_scan_all(snapshot, allowed))
    postings, stats = _index_candidates(tokens, snapshot, whole_words=parsed.whole_word)
    return QueryPlan(
        kind=QueryPlanKind.LITERAL,
        matcher=matcher,
        candidate_ids=_restrict(postings.doc_ids, allowed),
        term_stats=stats,
        driving_token=stats[0].token if stats else None,
    )
