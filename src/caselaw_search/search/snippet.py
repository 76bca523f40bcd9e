"""Line snippets for search results.

Every match offset is resolved to its enclosing line by binary search over
the document's line-start offsets. Matches sharing a line collapse into one
snippet, and the full original-case line is returned so callers can show the
match in context with its line number.
"""

from __future__ import annotations

from bisect import bisect_right
from collections.abc import Iterable, Sequence

from caselaw_search.domain.model import Document
from caselaw_search.domain.search import Snippet


def resolve_lines(line_offsets: Sequence[int], offsets: Iterable[int]) -> list[int]:
    """Map character offsets to distinct 1-based line numbers, ascending."""
    lines = {max(1, bisect_right(line_offsets, offset)) for offset in offsets}
    return sorted(lines)


def extract_snippets(
    document: Document,
    offsets: Iterable[int],
    max_snippets: int | None = None,
    *,
    text: str | None = None,
) -> list[Snippet]:
    """Return ``(line, text)`` snippets for the given match offsets.

    Args:
        document: The document the offsets refer to.
        offsets: Character offsets of matches in the original text.
        max_snippets: Keep only the first N lines (None keeps all).
        text: Already-decompressed document text, to avoid a second decode.

    Returns:
        Snippets in ascending line order, one per line.
    """

    if max_snippets is not None and max_snippets <= 0:
        return []
    lines = resolve_lines(document.line_offsets, offsets)
    if max_snippets is not None:
        lines = lines[:max_snippets]
    if not lines:
        return []
    source = document.text if text is None else text
    return [Snippet(line=line, text=document.line_text(line, source)) for line in lines]


def highlight_line(text: str, spans: Sequence[tuple[int, int]], style: str = "plain") -> str:
    """Wrap ``(start, end)`` spans of a line in highlight markers.

    Args:
        text: The line text.
        spans: Match spans relative to the line; overlapping spans are merged.
        style: "plain" for [[term]] or "html" for <mark>term</mark>.
    """

    if not text or not spans:
        return text
    merged: list[list[int]] = []
    for start, end in sorted(spans):
        start = max(0, start)
        end = min(len(text), end)
        if start >= end:
            continue
        if merged and start <= merged[-1][1]:
            merged[-1][1] = max(merged[-1][1], end)
        else:
            merged.append([start, end])

    open_mark, close_mark = ("<mark>", "</mark>") if style == "html" else ("[[", "]]")
    result = text
    for start, end in reversed(merged):
        result = result[:start] + open_mark + result[start:end] + close_mark + result[end:]
    return result
