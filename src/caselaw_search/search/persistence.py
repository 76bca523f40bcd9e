"""Versioned binary snapshot files for warm restarts.

Layout::

    b"CLSX" | u8 tag length | tag (ASCII, e.g. b"v1") | zlib(orjson(payload))

The payload holds document metadata and text plus every posting list, so a
restored snapshot answers queries without re-tokenizing the corpus. Readers
reject unknown tags; a future layout only needs a new tag and decoder.
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from pathlib import Path
from typing import Any
import zlib

import orjson

from caselaw_search.domain.model import Document
from caselaw_search.errors import IndexInvariantError, IngestError, SnapshotFormatError
from caselaw_search.search.document_store import DocumentStore
from caselaw_search.search.inverted_index import InvertedIndex
from caselaw_search.search.snapshot import IndexSnapshot, verify_snapshot


logger = logging.getLogger(__name__)

MAGIC = b"CLSX"
FORMAT_TAG = "v1"
SUPPORTED_TAGS = frozenset({FORMAT_TAG})


def encode_snapshot(snapshot: IndexSnapshot) -> bytes:
    """Serialize ``snapshot`` into the tagged binary layout."""
    payload: dict[str, Any] = {
        "generation": snapshot.generation,
        "created_at": snapshot.created_at.isoformat(),
        "documents": [
            {**document.metadata(), "text": document.text} for document in snapshot.documents
        ],
        "postings": snapshot.index.to_dict(),
    }
    tag = FORMAT_TAG.encode("ascii")
    return MAGIC + bytes([len(tag)]) + tag + zlib.compress(orjson.dumps(payload))


def _split_header(data: bytes) -> tuple[str, bytes]:
    if len(data) < len(MAGIC) + 1 or not data.startswith(MAGIC):
        raise SnapshotFormatError("not a snapshot file (bad magic)")
    tag_length = data[len(MAGIC)]
    tag_start = len(MAGIC) + 1
    tag_bytes = data[tag_start : tag_start + tag_length]
    if len(tag_bytes) != tag_length:
        raise SnapshotFormatError("truncated snapshot header")
    try:
        tag = tag_bytes.decode("ascii")
    except UnicodeDecodeError as exc:
        raise SnapshotFormatError("snapshot format tag is not ASCII") from exc
    return tag, data[tag_start + tag_length :]


def _decode_v1(body: bytes) -> IndexSnapshot:
    try:
        payload = orjson.loads(zlib.decompress(body))
    except (zlib.error, orjson.JSONDecodeError) as exc:
        raise SnapshotFormatError(f"corrupt snapshot payload: {exc}") from exc

    documents = DocumentStore()
    try:
        for item in payload["documents"]:
            documents.put(
                Document.create(
                    int(item["id"]),
                    jurisdiction=item["jurisdiction"],
                    path=item["path"],
                    case_type=item.get("case_type", ""),
                    text=item.get("text", ""),
                )
            )
        index = InvertedIndex.from_dict(payload["postings"])
        created_at = datetime.fromisoformat(payload["created_at"]) if payload.get("created_at") else None
        snapshot = IndexSnapshot(
            documents=documents,
            index=index,
            generation=int(payload.get("generation", 0)),
            created_at=created_at or datetime.now(timezone.utc),
        )
        verify_snapshot(snapshot)
    except (KeyError, TypeError, ValueError, IngestError, IndexInvariantError) as exc:
        raise SnapshotFormatError(f"invalid snapshot contents: {exc}") from exc
    return snapshot


_DECODERS = {"v1": _decode_v1}


def decode_snapshot(data: bytes) -> IndexSnapshot:
    """Parse bytes produced by ``encode_snapshot``."""
    tag, body = _split_header(data)
    if tag not in SUPPORTED_TAGS:
        raise SnapshotFormatError(f"unsupported snapshot format {tag!r} (supported: {sorted(SUPPORTED_TAGS)})")
    return _DECODERS[tag](body)


def save_snapshot(snapshot: IndexSnapshot, path: Path) -> Path:
    """Write ``snapshot`` to ``path`` via a temporary file and atomic rename."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    tmp_path.write_bytes(encode_snapshot(snapshot))
    tmp_path.replace(path)
    logger.info("Saved snapshot generation %d to %s", snapshot.generation, path)
    return path


def load_snapshot(path: Path) -> IndexSnapshot:
    """Read a snapshot file written by ``save_snapshot``."""
    path = Path(path)
    snapshot = decode_snapshot(path.read_bytes())
    logger.info("Loaded snapshot generation %d from %s (%d documents)", snapshot.generation, path, len(snapshot.documents))
    return snapshot
