"""Immutable index snapshots and the handle that publishes them.

Readers call ``SnapshotHandle.current()`` once per query and keep that
reference for the whole execution. Ingestion is serialized by a writer lock;
it copies the current snapshot's maps (shallow, posting lists are shared),
adds the batch and publishes the result with a single reference assignment,
so in-flight queries never observe a half-built index.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import threading
from typing import Any

from pydantic import ValidationError

from caselaw_search.domain.model import Document, DocumentInput
from caselaw_search.errors import IndexInvariantError, IngestError
from caselaw_search.search.document_store import DocumentStore, MetadataFilter
from caselaw_search.search.inverted_index import InvertedIndex


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndexSnapshot:
    """Point-in-time view of documents and index, safe for concurrent reads."""

    documents: DocumentStore
    index: InvertedIndex
    generation: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def empty(cls, metadata_filter: MetadataFilter | None = None) -> IndexSnapshot:
        return cls(documents=DocumentStore(metadata_filter), index=InvertedIndex())

    @property
    def document_count(self) -> int:
        return len(self.documents)

    def info(self) -> dict[str, Any]:
        return {
            "generation": self.generation,
            "created_at": self.created_at.isoformat(),
            "documents": len(self.documents),
            **{f"index_{key}": value for key, value in self.index.stats().items()},
        }


@dataclass(frozen=True)
class IngestReport:
    """Outcome of one ``ingest_batch`` call."""

    ingested: int
    skipped: int
    errors: tuple[str, ...]
    generation: int
    document_ids: tuple[int, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "ingested": self.ingested,
            "skipped": self.skipped,
            "errors": list(self.errors),
            "generation": self.generation,
            "document_ids": list(self.document_ids),
        }


def verify_snapshot(snapshot: IndexSnapshot, *, strict: bool = False) -> None:
    """Check posting order and document references for a whole snapshot.

    In strict mode a violation is a fatal assertion; otherwise it surfaces as
    ``IndexInvariantError`` for the caller to report.
    """

    try:
        snapshot.index.check_invariants(snapshot.documents.ids())
    except IndexInvariantError as exc:
        if strict:
            raise AssertionError(f"index invariant violated: {exc}") from exc
        raise


def _coerce_input(item: DocumentInput | Mapping[str, Any]) -> DocumentInput:
    if isinstance(item, DocumentInput):
        return item
    if not isinstance(item, Mapping):
        raise IngestError(f"document must be a mapping, got {type(item).__name__}")
    try:
        return DocumentInput.from_mapping(item)
    except ValidationError as exc:
        fields = ", ".join(".".join(str(part) for part in error["loc"]) for error in exc.errors())
        raise IngestError(f"malformed document ({fields or 'invalid input'})") from exc
    except TypeError as exc:
        raise IngestError(f"malformed document: {exc}") from exc


class SnapshotHandle:
    """Holds the current snapshot and serializes rebuilds."""

    def __init__(
        self,
        snapshot: IndexSnapshot | None = None,
        *,
        strict_invariants: bool = False,
    ) -> None:
        self._current = snapshot or IndexSnapshot.empty()
        self._write_lock = threading.Lock()
        self.strict_invariants = strict_invariants

    def current(self) -> IndexSnapshot:
        return self._current

    @property
    def generation(self) -> int:
        return self._current.generation

    def publish(self, snapshot: IndexSnapshot) -> IndexSnapshot:
        """Replace the current snapshot (used when restoring from disk)."""
        with self._write_lock:
            if self.strict_invariants:
                verify_snapshot(snapshot, strict=True)
            published = IndexSnapshot(
                documents=snapshot.documents,
                index=snapshot.index,
                generation=max(snapshot.generation, self._current.generation + 1),
            )
            self._current = published
        logger.info("Published snapshot generation %d (%d documents)", published.generation, len(published.documents))
        return published

    def ingest_batch(self, items: Iterable[DocumentInput | Mapping[str, Any]]) -> IngestReport:
        """Add a batch of documents and publish a new snapshot.

        Malformed documents and duplicate ids are logged and skipped; the rest
        of the batch is still ingested. Documents with empty text are a no-op.
        """

        with self._write_lock:
            base = self._current
            documents = base.documents.copy()
            index = base.index.copy()
            next_id = documents.max_id() + 1

            accepted: list[Document] = []
            errors: list[str] = []
            skipped = 0
            for position, item in enumerate(items):
                try:
                    payload = _coerce_input(item)
                    doc_id = payload.id if payload.id is not None else next_id
                    if doc_id in documents:
                        raise IngestError(f"document id {doc_id} already present")
                    if not payload.text.strip():
                        skipped += 1
                        logger.debug("Skipping document %s with empty text", payload.path)
                        continue
                    document = Document.create(
                        doc_id,
                        jurisdiction=payload.jurisdiction,
                        path=payload.path,
                        case_type=payload.case_type,
                        text=payload.text,
                    )
                    documents.put(document)
                except IngestError as exc:
                    logger.warning("Rejected document #%d in batch: %s", position, exc)
                    errors.append(f"#{position}: {exc}")
                    continue
                accepted.append(document)
                next_id = max(next_id, doc_id + 1)

            index.ingest_many(accepted)
            snapshot = IndexSnapshot(documents=documents, index=index, generation=base.generation + 1)
            if self.strict_invariants:
                verify_snapshot(snapshot, strict=True)
            self._current = snapshot

        logger.info(
            "Ingested %d documents (skipped=%d, rejected=%d) -> generation %d",
            len(accepted),
            skipped,
            len(errors),
            snapshot.generation,
        )
        return IngestReport(
            ingested=len(accepted),
            skipped=skipped,
            errors=tuple(errors),
            generation=snapshot.generation,
            document_ids=tuple(document.id for document in accepted),
        )
