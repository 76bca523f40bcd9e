"""Unit tests for snapshot files."""

import zlib

import orjson
import pytest

from caselaw_search.domain.search import Query
from caselaw_search.errors import SnapshotFormatError
from caselaw_search.search.executor import execute_query
from caselaw_search.search.persistence import (
    MAGIC,
    decode_snapshot,
    encode_snapshot,
    load_snapshot,
    save_snapshot,
)


QUERIES = [
    Query(text="equal"),
    Query(text="Adequacy", case_sensitive=True),
    Query(text="pro.+", regex=True),
    Query(text="e", jurisdiction_filter={"European Union"}),
]


@pytest.mark.unit
def test_round_trip_yields_identical_results(handle, tmp_path):
    path = tmp_path / "snapshots" / "index.clsx"
    original = handle.current()

    save_snapshot(original, path)
    restored = load_snapshot(path)

    assert restored.generation == original.generation
    assert restored.document_count == original.document_count
    for query in QUERIES:
        assert execute_query(query, restored).results == execute_query(query, original).results


@pytest.mark.unit
def test_save_leaves_no_temporary_file(handle, tmp_path):
    path = tmp_path / "index.clsx"

    save_snapshot(handle.current(), path)

    assert path.exists()
    assert not (tmp_path / "index.clsx.tmp").exists()


@pytest.mark.unit
def test_encoded_header(handle):
    data = encode_snapshot(handle.current())

    assert data.startswith(MAGIC)
    assert data[len(MAGIC)] == 2
    assert data[len(MAGIC) + 1 : len(MAGIC) + 3] == b"v1"


@pytest.mark.unit
def test_bad_magic_rejected():
    with pytest.raises(SnapshotFormatError, match="bad magic"):
        decode_snapshot(b"NOPE\x02v1")


@pytest.mark.unit
def test_unknown_format_tag_rejected(handle):
    body = encode_snapshot(handle.current())[len(MAGIC) + 3 :]

    with pytest.raises(SnapshotFormatError, match="unsupported snapshot format"):
        decode_snapshot(MAGIC + b"\x02v9" + body)


@pytest.mark.unit
def test_truncated_header_rejected():
    with pytest.raises(SnapshotFormatError, match="truncated"):
        decode_snapshot(MAGIC + b"\x05v1")


@pytest.mark.unit
def test_corrupt_payload_rejected():
    with pytest.raises(SnapshotFormatError, match="corrupt"):
        decode_snapshot(MAGIC + b"\x02v1" + b"not zlib data")


@pytest.mark.unit
def test_inconsistent_payload_rejected():
    payload = {
        "generation": 1,
        "created_at": None,
        "documents": [],
        "postings": {"ghost": [{"d": 4, "p": [0]}]},
    }

    with pytest.raises(SnapshotFormatError, match="invalid snapshot contents"):
        decode_snapshot(MAGIC + b"\x02v1" + zlib.compress(orjson.dumps(payload)))
