"""Inverted index: normalized term -> posting list.

The index is built by one ingestion path and then shared read-only by every
query running against the snapshot that owns it. ``copy()`` is shallow:
posting lists and trigram buckets are immutable, so a rebuilt index replaces
only the entries a batch touches.

Substring queries are served through a trigram map over the vocabulary:
``terms_containing("equal")`` intersects the buckets of ``equ``, ``qua`` and
``ual`` and then confirms containment, so ``unequal`` and ``equality`` are
found without scanning every term.
"""

from __future__ import annotations

from array import array
from collections import defaultdict
from collections.abc import Iterable, Iterator, Mapping
import logging
from typing import Any

from caselaw_search.domain.model import Document
from caselaw_search.errors import IndexInvariantError, IngestError
from caselaw_search.search.analyzers import normalize
from caselaw_search.search.postings import Posting, PostingList, union


logger = logging.getLogger(__name__)

GRAM = 3


def trigrams(term: str) -> set[str]:
    """Distinct character trigrams of ``term`` (empty for short terms)."""
    return {term[i : i + GRAM] for i in range(len(term) - GRAM + 1)}


def tokenize_document(document: Document) -> dict[str, list[int]]:
    """Group a document's occurrence offsets by normalized term."""
    occurrences: dict[str, list[int]] = defaultdict(list)
    for token in normalize(document.text, case_sensitive=False, line_offsets=document.line_offsets):
        occurrences[token.text].append(token.offset)
    return occurrences


class InvertedIndex:
    """Term dictionary with posting lists and a vocabulary trigram map."""

    def __init__(self) -> None:
        self._terms: dict[str, PostingList] = {}
        self._trigrams: dict[str, frozenset[str]] = {}
        self._doc_ids: set[int] = set()

    # ---- ingestion ----

    def ingest(self, document: Document) -> None:
        """Index one document.

        Raises ``IngestError`` if the id was already indexed. A document with
        empty text is a no-op.
        """
        self.ingest_many([document])

    def ingest_many(self, documents: Iterable[Document]) -> int:
        """Index a batch, merging each touched posting list once.

        Returns the number of documents indexed (documents with empty text
        are skipped).
        """

        pending: dict[str, list[Posting]] = defaultdict(list)
        batch_ids: set[int] = set()
        for document in sorted(documents, key=lambda doc: doc.id):
            if document.id in self._doc_ids or document.id in batch_ids:
                raise IngestError(f"document id {document.id} already indexed")
            occurrences = tokenize_document(document)
            if not occurrences:
                continue
            batch_ids.add(document.id)
            for term, offsets in occurrences.items():
                pending[term].append(Posting(document.id, array("I", offsets)))

        new_terms: list[str] = []
        for term, additions in pending.items():
            existing = self._terms.get(term)
            if existing is None:
                new_terms.append(term)
                self._terms[term] = PostingList(additions)
            else:
                self._terms[term] = existing.extended(additions)
        self._index_vocabulary(new_terms)
        self._doc_ids.update(batch_ids)
        return len(batch_ids)

    def _index_vocabulary(self, terms: Iterable[str]) -> None:
        grouped: dict[str, set[str]] = defaultdict(set)
        for term in terms:
            for gram in trigrams(term):
                grouped[gram].add(term)
        for gram, members in grouped.items():
            self._trigrams[gram] = self._trigrams.get(gram, frozenset()) | members

    # ---- lookup ----

    def __contains__(self, term: object) -> bool:
        return term in self._terms

    def __len__(self) -> int:
        return len(self._terms)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._terms))

    @property
    def document_count(self) -> int:
        return len(self._doc_ids)

    def has_document(self, doc_id: int) -> bool:
        return doc_id in self._doc_ids

    def lookup(self, term: str) -> PostingList:
        """Posting list for ``term`` (already normalized), empty when absent."""
        return self._terms.get(term, PostingList.empty())

    def terms_containing(self, fragment: str) -> list[str]:
        """Vocabulary terms that contain ``fragment`` as a substring, sorted."""
        if not fragment:
            return []
        if len(fragment) < GRAM:
            return sorted(term for term in self._terms if fragment in term)
        buckets = [self._trigrams.get(gram) for gram in trigrams(fragment)]
        if any(bucket is None for bucket in buckets):
            return []
        buckets.sort(key=len)
        candidates = set(buckets[0])
        for bucket in buckets[1:]:
            candidates &= bucket
            if not candidates:
                return []
        return sorted(term for term in candidates if fragment in term)

    def lookup_substring(self, fragment: str) -> PostingList:
        """Union of the posting lists of every term containing ``fragment``."""
        return union(self._terms[term] for term in self.terms_containing(fragment))

    # ---- maintenance ----

    def copy(self) -> InvertedIndex:
        clone = InvertedIndex()
        clone._terms = dict(self._terms)
        clone._trigrams = dict(self._trigrams)
        clone._doc_ids = set(self._doc_ids)
        return clone

    def check_invariants(self, known_ids: Iterable[int] | None = None) -> None:
        """Verify posting order and, optionally, that every id is known."""
        known = set(known_ids) if known_ids is not None else None
        for term, postings in self._terms.items():
            postings.check_invariants()
            if known is not None:
                missing = [doc_id for doc_id in postings.doc_ids if doc_id not in known]
                if missing:
                    raise IndexInvariantError(f"term {term!r} references unknown documents {missing[:5]}")

    def stats(self) -> dict[str, int]:
        return {
            "terms": len(self._terms),
            "documents": len(self._doc_ids),
            "trigrams": len(self._trigrams),
            "postings": sum(len(postings) for postings in self._terms.values()),
        }

    # ---- persistence ----

    def to_dict(self) -> dict[str, Any]:
        return {term: self._terms[term].to_list() for term in sorted(self._terms)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> InvertedIndex:
        index = cls()
        for term, postings in data.items():
            posting_list = PostingList.from_list(postings)
            index._terms[term] = posting_list
            index._doc_ids.update(posting_list.doc_ids)
        index._index_vocabulary(index._terms)
        logger.debug("Restored inverted index with %d terms", len(index._terms))
        return index
