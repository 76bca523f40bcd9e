"""Domain model - case documents and ingestion input.

``DocumentInput`` is the value object handed in by the external loading
collaborator and is validated with Pydantic. ``Document`` is the immutable
stored form: metadata, a zlib-compressed copy of the original text and the
line-start offsets used to resolve matches to line numbers.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
import zlib

from pydantic import Field
from pydantic.dataclasses import dataclass as pydantic_dataclass

from caselaw_search.errors import IngestError
from caselaw_search.search.analyzers import compute_line_offsets, line_for_offset


_COMPRESSION_LEVEL = 6

# Posting lists store document ids as signed 64-bit integers.
MAX_DOCUMENT_ID = 2**63 - 1


def _encode_utf8(doc_id: int, name: str, value: str) -> bytes:
    try:
        return value.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise IngestError(f"document {doc_id}: {name} is not valid UTF-8 ({exc.reason} at {exc.start})") from exc


@pydantic_dataclass(frozen=True)
class DocumentInput:
    """A raw document as supplied to ``ingest_batch``.

    ``id`` is optional; the ingestion path assigns the next free id when it
    is omitted.
    """

    jurisdiction: str = Field(min_length=1)
    path: str = Field(min_length=1)
    case_type: str = ""
    text: str = ""
    id: int | None = Field(default=None, ge=0, le=MAX_DOCUMENT_ID)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> DocumentInput:
        """Accept both ``case_type`` and the UI's ``caseType`` spelling."""
        payload = dict(data)
        if "caseType" in payload and "case_type" not in payload:
            payload["case_type"] = payload.pop("caseType")
        return cls(**{key: payload[key] for key in ("jurisdiction", "path", "case_type", "text", "id") if key in payload})


@dataclass(frozen=True, slots=True)
class Document:
    """Immutable stored document."""

    id: int
    jurisdiction: str
    path: str
    case_type: str
    raw_text: bytes
    line_offsets: tuple[int, ...]

    @classmethod
    def create(
        cls,
        doc_id: int,
        *,
        jurisdiction: str,
        path: str,
        case_type: str = "",
        text: str = "",
    ) -> Document:
        """Validate metadata, compress text and compute line offsets."""
        if not 0 <= doc_id <= MAX_DOCUMENT_ID:
            raise IngestError(f"document id must be between 0 and {MAX_DOCUMENT_ID}, got {doc_id}")
        jurisdiction = (jurisdiction or "").strip()
        path = (path or "").strip()
        if not jurisdiction:
            raise IngestError(f"document {doc_id}: jurisdiction must not be blank")
        if not path:
            raise IngestError(f"document {doc_id}: path must not be blank")
        if not isinstance(text, str):
            raise IngestError(f"document {doc_id}: text must be a string, got {type(text).__name__}")
        case_type = (case_type or "").strip()
        for name, value in (("jurisdiction", jurisdiction), ("path", path), ("case_type", case_type)):
            _encode_utf8(doc_id, name, value)
        return cls(
            id=doc_id,
            jurisdiction=jurisdiction,
            path=path,
            case_type=case_type,
            raw_text=zlib.compress(_encode_utf8(doc_id, "text", text), _COMPRESSION_LEVEL),
            line_offsets=compute_line_offsets(text),
        )

    @property
    def text(self) -> str:
        """Decompress and return the original text."""
        return zlib.decompress(self.raw_text).decode("utf-8")

    @property
    def line_count(self) -> int:
        return len(self.line_offsets)

    def line_of(self, offset: int) -> int:
        """Return the 1-based line containing character ``offset``."""
        return line_for_offset(self.line_offsets, offset)

    def line_text(self, line: int, text: str | None = None) -> str:
        """Return line ``line`` (1-based) without its line terminator."""
        if line < 1 or line > len(self.line_offsets):
            raise IndexError(f"line {line} out of range for document {self.id}")
        source = self.text if text is None else text
        start = self.line_offsets[line - 1]
        end = self.line_offsets[line] - 1 if line < len(self.line_offsets) else len(source)
        return source[start:end].rstrip("\r")

    def metadata(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "jurisdiction": self.jurisdiction,
            "path": self.path,
            "case_type": self.case_type,
        }
