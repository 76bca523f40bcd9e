"""Document store: id -> document, plus metadata filtering.

Filtering goes through the ``MetadataFilter`` interface. ``ScanMetadataFilter``
is a linear scan over the (small) metadata; a secondary-index implementation
can be passed to ``DocumentStore`` without changing any caller.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import Counter
from collections.abc import Collection, Iterator, Mapping

from caselaw_search.domain.model import Document
from caselaw_search.errors import DocumentNotFoundError, IngestError
from caselaw_search.search.analyzers import fold_case


class MetadataFilter(ABC):
    """Resolves jurisdiction/case-type filters to a set of document ids."""

    @abstractmethod
    def filter_ids(
        self,
        documents: Mapping[int, Document],
        jurisdictions: Collection[str] | None = None,
        case_types: Collection[str] | None = None,
    ) -> frozenset[int]:  # pragma: no cover - interface definition
        ...


class ScanMetadataFilter(MetadataFilter):
    """Linear scan over document metadata."""

    def filter_ids(
        self,
        documents: Mapping[int, Document],
        jurisdictions: Collection[str] | None = None,
        case_types: Collection[str] | None = None,
    ) -> frozenset[int]:
        if jurisdictions is None and case_types is None:
            return frozenset(documents)
        return frozenset(
            doc_id
            for doc_id, document in documents.items()
            if (jurisdictions is None or document.jurisdiction in jurisdictions)
            and (case_types is None or document.case_type in case_types)
        )


def _ranked_facet(counts: Counter[str], name: str | None) -> dict[str, int]:
    needle = fold_case(name.strip()) if name else ""
    items = [(value, count) for value, count in counts.items() if needle in fold_case(value)]
    return dict(sorted(items, key=lambda item: (-item[1], item[0])))


class DocumentStore:
    """Maps document ids to immutable documents.

    A store belongs to exactly one snapshot. ``copy()`` returns a new store
    sharing the (immutable) documents so a rebuilt snapshot can add to it
    without disturbing readers of the previous one.
    """

    def __init__(self, metadata_filter: MetadataFilter | None = None) -> None:
        self._documents: dict[int, Document] = {}
        self._filter = metadata_filter or ScanMetadataFilter()

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self._documents

    def __len__(self) -> int:
        return len(self._documents)

    def __iter__(self) -> Iterator[Document]:
        for doc_id in sorted(self._documents):
            yield self._documents[doc_id]

    def put(self, document: Document) -> None:
        if document.id in self._documents:
            raise IngestError(f"document id {document.id} already present")
        self._documents[document.id] = document

    def get(self, doc_id: int) -> Document:
        try:
            return self._documents[doc_id]
        except KeyError:
            raise DocumentNotFoundError(f"document {doc_id} not found") from None

    def ids(self) -> list[int]:
        """All document ids in ascending order."""
        return sorted(self._documents)

    def max_id(self) -> int:
        return max(self._documents, default=-1)

    def filter_ids(
        self,
        jurisdictions: Collection[str] | None = None,
        case_types: Collection[str] | None = None,
    ) -> frozenset[int]:
        """Return ids whose metadata matches every supplied filter."""
        return self._filter.filter_ids(self._documents, jurisdictions, case_types)

    def facet_counts(
        self,
        jurisdictions: Collection[str] | None = None,
        case_types: Collection[str] | None = None,
        *,
        jurisdiction_name: str | None = None,
        case_type_name: str | None = None,
    ) -> dict[str, dict[str, int]]:
        """Document counts per jurisdiction and per case type.

        Each facet is restricted by the *other* facet's filter, matching how a
        sidebar shows counts for the alternatives of the current selection.
        ``jurisdiction_name`` and ``case_type_name`` keep only the facet values
        containing that text, ignoring case.
        """

        by_jurisdiction: Counter[str] = Counter()
        by_case_type: Counter[str] = Counter()
        for document in self._documents.values():
            if case_types is None or document.case_type in case_types:
                by_jurisdiction[document.jurisdiction] += 1
            if jurisdictions is None or document.jurisdiction in jurisdictions:
                by_case_type[document.case_type] += 1
        return {
            "jurisdiction": _ranked_facet(by_jurisdiction, jurisdiction_name),
            "case_type": _ranked_facet(by_case_type, case_type_name),
        }

    def copy(self) -> DocumentStore:
        clone = DocumentStore(self._filter)
        clone._documents = dict(self._documents)
        return clone
