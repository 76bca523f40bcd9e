"""Domain models for search functionality.

Value objects are immutable (frozen=True) so a response handed to one caller
can never be altered by another caller sharing the same snapshot.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class QueryPlanKind(str, Enum):
    """How a query was executed."""

    EMPTY = "empty"
    LITERAL = "literal"
    LITERAL_SCAN = "literal-scan"
    REGEX = "regex"
    REGEX_PREFIX = "regex-prefix"


class Query(BaseModel):
    """Value object representing a user query and its filters."""

    model_config = ConfigDict(frozen=True)

    text: str = ""
    case_sensitive: bool = False
    regex: bool = False
    whole_word: bool = False
    jurisdiction_filter: frozenset[str] | None = None
    case_type_filter: frozenset[str] | None = None
    max_results: int | None = Field(default=None, ge=0)

    @field_validator("jurisdiction_filter", "case_type_filter", mode="before")
    @classmethod
    def _coerce_filter(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, str):
            return frozenset({value})
        return frozenset(value)

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()


class Snippet(BaseModel):
    """A matching line with its 1-based line number."""

    model_config = ConfigDict(frozen=True)

    line: int = Field(ge=1)
    text: str


class SearchResult(BaseModel):
    """Value object for a single ranked document."""

    model_config = ConfigDict(frozen=True)

    document_id: int
    jurisdiction: str
    path: str
    case_type: str = ""
    match_count: int = Field(ge=0)
    snippets: list[Snippet] = Field(default_factory=list)

    def to_ui_dict(self) -> dict[str, Any]:
        """Shape consumed by the search UI: jurisdiction, path, matches, content lines."""
        return {
            "jurisdiction": self.jurisdiction,
            "path": self.path,
            "matches": self.match_count,
            "content": [{"line": snippet.line, "text": snippet.text} for snippet in self.snippets],
        }


class SearchErrorInfo(BaseModel):
    """Structured, user-visible error attached to a response."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str


class SearchResponse(BaseModel):
    """Value object for a complete search response."""

    model_config = ConfigDict(frozen=True)

    results: list[SearchResult] = Field(default_factory=list)
    elapsed_millis: float = 0.0
    total_matches: int = 0
    plan: QueryPlanKind = QueryPlanKind.EMPTY
    partial: bool = False
    generation: int = 0
    error: SearchErrorInfo | None = None

    @property
    def ok(self) -> bool:
        return self.error is None
