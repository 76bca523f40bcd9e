"""Posting lists and their merge operations.

A ``PostingList`` is immutable: ingestion produces new lists and readers
holding an older snapshot keep seeing the lists they started with.

Invariants (checked by ``check_invariants``):

* document ids strictly increasing across the list;
* occurrence offsets strictly increasing within one posting.

Both properties let ``intersect`` run as a linear merge-join.
"""

from __future__ import annotations

from array import array
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
import heapq
from typing import Any

from caselaw_search.errors import IndexInvariantError


def _offsets(values: Iterable[int]) -> array:
    return array("I", values)


@dataclass(frozen=True, slots=True)
class Posting:
    """Occurrences of one term inside one document.

    Frequency is derived from the number of offsets.
    """

    doc_id: int
    offsets: array

    @property
    def frequency(self) -> int:
        return len(self.offsets)

    def to_dict(self) -> dict[str, Any]:
        return {"d": self.doc_id, "p": list(self.offsets)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Posting:
        return cls(doc_id=int(data["d"]), offsets=_offsets(int(pos) for pos in data.get("p", [])))


class PostingList:
    """Ordered-by-document sequence of postings for a single term."""

    __slots__ = ("_doc_ids", "_postings")

    def __init__(self, postings: Sequence[Posting] = ()) -> None:
        self._postings: tuple[Posting, ...] = tuple(postings)
        self._doc_ids = array("q", (posting.doc_id for posting in self._postings))

    @classmethod
    def empty(cls) -> PostingList:
        return _EMPTY

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[int, Iterable[int]]]) -> PostingList:
        """Build a list from ``(doc_id, offsets)`` pairs, enforcing the ordering invariants."""
        postings = PostingList([Posting(doc_id, _offsets(offsets)) for doc_id, offsets in pairs])
        postings.check_invariants()
        return postings

    def __len__(self) -> int:
        return len(self._postings)

    def __iter__(self) -> Iterator[Posting]:
        return iter(self._postings)

    def __bool__(self) -> bool:
        return bool(self._postings)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PostingList):
            return NotImplemented
        return self._postings == other._postings

    def __repr__(self) -> str:
        return f"PostingList(docs={list(self._doc_ids)!r})"

    @property
    def doc_ids(self) -> tuple[int, ...]:
        return tuple(self._doc_ids)

    @property
    def total_frequency(self) -> int:
        return sum(posting.frequency for posting in self._postings)

    def get(self, doc_id: int) -> Posting | None:
        """Return the posting for ``doc_id`` using binary search."""
        lo, hi = 0, len(self._doc_ids)
        while lo < hi:
            mid = (lo + hi) // 2
            if self._doc_ids[mid] < doc_id:
                lo = mid + 1
            else:
                hi = mid
        if lo < len(self._doc_ids) and self._doc_ids[lo] == doc_id:
            return self._postings[lo]
        return None

    def extended(self, additions: Sequence[Posting]) -> PostingList:
        """Return a new list with ``additions`` merged in document order.

        ``additions`` must be sorted by document id and must not repeat an id
        already present. Appending ids beyond the current tail (the common
        ingestion case) is a plain concatenation.
        """

        if not additions:
            return self
        if not self._postings or additions[0].doc_id > self._postings[-1].doc_id:
            merged = PostingList(self._postings + tuple(additions))
        else:
            merged = PostingList(list(heapq.merge(self._postings, additions, key=lambda posting: posting.doc_id)))
        merged.check_invariants()
        return merged

    def check_invariants(self) -> None:
        """Raise ``IndexInvariantError`` if the ordering invariants are broken."""
        previous_doc = None
        for posting in self._postings:
            if previous_doc is not None and posting.doc_id <= previous_doc:
                raise IndexInvariantError(
                    f"posting list not strictly increasing: doc {posting.doc_id} after {previous_doc}"
                )
            previous_doc = posting.doc_id
            offsets = posting.offsets
            for index in range(1, len(offsets)):
                if offsets[index] <= offsets[index - 1]:
                    raise IndexInvariantError(
                        f"offsets not strictly increasing in doc {posting.doc_id}: "
                        f"{offsets[index]} after {offsets[index - 1]}"
                    )

    def to_list(self) -> list[dict[str, Any]]:
        return [posting.to_dict() for posting in self._postings]

    @classmethod
    def from_list(cls, data: Iterable[Mapping[str, Any]]) -> PostingList:
        postings = PostingList([Posting.from_dict(item) for item in data])
        postings.check_invariants()
        return postings


_EMPTY = PostingList()


def _merge_offsets(left: array, right: array) -> array:
    if not left:
        return right
    if not right:
        return left
    merged = _offsets(sorted(set(left).union(right)))
    return merged


def intersect(left: PostingList, right: PostingList) -> PostingList:
    """Merge-join two posting lists on document id in O(|A| + |B|).

    Offsets of documents present in both lists are merged so callers can
    still resolve every occurrence to a line.
    """

    if not left or not right:
        return PostingList.empty()
    result: list[Posting] = []
    left_items = list(left)
    right_items = list(right)
    i = j = 0
    while i < len(left_items) and j < len(right_items):
        a = left_items[i]
        b = right_items[j]
        if a.doc_id == b.doc_id:
            result.append(Posting(a.doc_id, _merge_offsets(a.offsets, b.offsets)))
            i += 1
            j += 1
        elif a.doc_id < b.doc_id:
            i += 1
        else:
            j += 1
    return PostingList(result)


def intersect_all(lists: Iterable[PostingList]) -> PostingList:
    """AND several posting lists, smallest first to keep each merge cheap."""
    ordered = sorted(lists, key=len)
    if not ordered:
        return PostingList.empty()
    result = ordered[0]
    for postings in ordered[1:]:
        if not result:
            break
        result = intersect(result, postings)
    return result


def union(lists: Iterable[PostingList]) -> PostingList:
    """OR several posting lists, merging offsets of shared documents."""
    materialized = [postings for postings in lists if postings]
    if not materialized:
        return PostingList.empty()
    if len(materialized) == 1:
        return materialized[0]
    merged: list[Posting] = []
    for posting in heapq.merge(*materialized, key=lambda item: item.doc_id):
        if merged and merged[-1].doc_id == posting.doc_id:
            merged[-1] = Posting(posting.doc_id, _merge_offsets(merged[-1].offsets, posting.offsets))
        else:
            merged.append(posting)
    return PostingList(merged)
