"""Tokenizer and normalizer for case text.

Mirrors a composable tokenizer/filter design: a ``RegexTokenizer`` yields
word tokens with their line and character offset, filters transform the
token text (case folding), and ``AnalyzerPipeline`` chains them. Literal
queries are tokenized with the same pipeline as documents so that query
terms and indexed terms are comparable.

Regex queries bypass tokenization entirely. ``compile_matcher`` builds the
matcher that is run over raw lines and ``literal_prefix`` extracts the
leading literal of a pattern so the executor can still narrow candidates
through the index.
"""

from __future__ import annotations

from bisect import bisect_right
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
import re
from typing import Protocol

from caselaw_search.errors import QueryError


_WORD_PATTERN = r"\w+"
_REGEX_META = frozenset("\\.^$*+?{}[]|()")
_QUANTIFIERS = frozenset("*?{")

# re.IGNORECASE matches both of these against "i"; str.casefold() maps
# neither to it.
_REGEX_CASE_VARIANTS = str.maketrans({"\u0130": "i", "\u0131": "i"})


@dataclass(frozen=True, slots=True)
class Token:
    """A normalized token and where it occurred in the original text."""

    text: str
    position: int
    line: int
    offset: int
    end: int

    def copy_with(self, *, text: str) -> Token:
        return Token(text=text, position=self.position, line=self.line, offset=self.offset, end=self.end)


class Analyzer(Protocol):
    """Protocol implemented by analyzers."""

    def __call__(self, text: str) -> list[Token]:  # pragma: no cover - interface definition
        ...


class TokenFilter(Protocol):
    """Protocol implemented by token filters."""

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:  # pragma: no cover - interface definition
        ...


def fold_case(text: str) -> str:
    """Casefold ``text`` so that index terms cover every re.IGNORECASE match."""
    return text.translate(_REGEX_CASE_VARIANTS).casefold()


def compute_line_offsets(text: str) -> tuple[int, ...]:
    """Return the character offset at which every line of ``text`` starts.

    The first line always starts at 0, so an empty text still has one line.
    """

    offsets = [0]
    find = text.find
    position = find("\n")
    while position != -1:
        offsets.append(position + 1)
        position = find("\n", position + 1)
    return tuple(offsets)


def line_for_offset(line_offsets: Sequence[int], offset: int) -> int:
    """Resolve a character offset to its 1-based line number."""
    return max(1, bisect_right(line_offsets, offset))


class RegexTokenizer:
    """Regex-based tokenizer that yields word tokens with line information."""

    def __init__(self, pattern: str = _WORD_PATTERN, flags: int = re.UNICODE) -> None:
        self.pattern = re.compile(pattern, flags)

    def __call__(self, text: str, line_offsets: Sequence[int] | None = None) -> Iterator[Token]:
        offsets = line_offsets if line_offsets is not None else compute_line_offsets(text)
        line_index = 0
        last_line = len(offsets) - 1
        for position, match in enumerate(self.pattern.finditer(text)):
            start = match.start()
            # Tokens arrive in offset order, so the line cursor only moves forward.
            while line_index < last_line and offsets[line_index + 1] <= start:
                line_index += 1
            yield Token(
                text=match.group(0),
                position=position,
                line=line_index + 1,
                offset=start,
                end=match.end(),
            )


class CaseFoldFilter:
    """Filter that casefolds token text."""

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            folded = fold_case(token.text)
            yield token if folded == token.text else token.copy_with(text=folded)


class AnalyzerPipeline:
    """Compose a tokenizer with a sequence of filters."""

    def __init__(self, tokenizer: RegexTokenizer, filters: Sequence[TokenFilter] | None = None) -> None:
        self.tokenizer = tokenizer
        self.filters = list(filters or [])

    def __call__(self, text: str, line_offsets: Sequence[int] | None = None) -> list[Token]:
        stream: Iterable[Token] = self.tokenizer(text, line_offsets)
        for token_filter in self.filters:
            stream = token_filter(stream)
        return list(stream)


_DEFAULT_ANALYZER = AnalyzerPipeline(RegexTokenizer(), [CaseFoldFilter()])
_EXACT_ANALYZER = AnalyzerPipeline(RegexTokenizer())


def normalize(text: str, case_sensitive: bool = False, line_offsets: Sequence[int] | None = None) -> list[Token]:
    """Convert raw text into a normalized token stream.

    Case-insensitive mode casefolds every token; case-sensitive mode passes
    token text through untouched. Offsets always refer to the original text.
    """

    if not text:
        return []
    analyzer = _EXACT_ANALYZER if case_sensitive else _DEFAULT_ANALYZER
    return analyzer(text, line_offsets)


def _whole_word(pattern: str) -> str:
    # Lookarounds instead of \b so edges that are not word characters still work.
    return rf"(?<!\w)(?:{pattern})(?!\w)"


def compile_matcher(pattern: str, case_sensitive: bool = False, whole_word: bool = False) -> re.Pattern[str]:
    """Compile a user regex for line scanning, raising ``QueryError`` if malformed."""

    flags = re.UNICODE | re.MULTILINE
    if not case_sensitive:
        flags |= re.IGNORECASE
    try:
        compiled = re.compile(pattern, flags)
        if whole_word:
            # Compiled alone first so a stray ")" cannot close the wrapper group.
            compiled = re.compile(_whole_word(pattern), flags)
    except re.error as exc:
        raise QueryError(f"Invalid regular expression {pattern!r}: {exc}") from exc
    return compiled


def compile_literal(text: str, case_sensitive: bool = False, whole_word: bool = False) -> re.Pattern[str]:
    """Compile a literal matcher with the same case rules as regex mode.

    Without ``whole_word`` the literal matches anywhere, including inside
    longer words.
    """
    flags = re.UNICODE
    if not case_sensitive:
        flags |= re.IGNORECASE
    pattern = re.escape(text)
    return re.compile(_whole_word(pattern) if whole_word else pattern, flags)


def literal_prefix(pattern: str) -> str:
    """Return the literal characters every match of ``pattern`` must start with.

    The extraction is conservative: patterns using alternation yield no
    prefix, escapes end the prefix, and a quantifier following a character
    removes that character (``colou?r`` -> ``colo``).
    """

    if "|" in pattern:
        return ""
    body = pattern[1:] if pattern.startswith("^") else pattern
    prefix: list[str] = []
    for char in body:
        if char in _REGEX_META:
            if char in _QUANTIFIERS and prefix:
                prefix.pop()
            break
        prefix.append(char)
    return "".join(prefix)
