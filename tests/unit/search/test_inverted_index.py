"""Unit tests for the inverted index."""

import pytest

from caselaw_search.domain.model import Document
from caselaw_search.errors import IndexInvariantError, IngestError
from caselaw_search.search.analyzers import normalize
from caselaw_search.search.inverted_index import InvertedIndex, trigrams


def _document(doc_id, text, jurisdiction="United States"):
    return Document.create(doc_id, jurisdiction=jurisdiction, path=f"case-{doc_id}", text=text)


@pytest.fixture
def index():
    idx = InvertedIndex()
    idx.ingest_many(
        [
            _document(1, "separate educational facilities are inherently unequal"),
            _document(2, "Adequacy of protection provided by Safe Harbor principles"),
            _document(3, "Equal protection under the law\nequality before courts"),
        ]
    )
    return idx


@pytest.mark.unit
class TestIngest:
    def test_every_token_has_a_posting_for_its_document(self, index):
        texts = {
            1: "separate educational facilities are inherently unequal",
            2: "Adequacy of protection provided by Safe Harbor principles",
            3: "Equal protection under the law\nequality before courts",
        }
        for doc_id, text in texts.items():
            for token in normalize(text):
                posting = index.lookup(token.text).get(doc_id)
                assert posting is not None, token.text
                assert token.offset in posting.offsets

    def test_offsets_recorded_per_occurrence(self):
        idx = InvertedIndex()
        idx.ingest(_document(4, "Court held. The court ruled. COURT"))

        assert list(idx.lookup("court").get(4).offsets) == [0, 16, 29]

    def test_duplicate_id_raises(self, index):
        with pytest.raises(IngestError, match="already indexed"):
            index.ingest(_document(2, "another text"))

    def test_duplicate_id_within_batch_raises(self):
        idx = InvertedIndex()

        with pytest.raises(IngestError):
            idx.ingest_many([_document(7, "one"), _document(7, "two")])

    def test_empty_document_is_a_noop(self):
        idx = InvertedIndex()

        assert idx.ingest_many([_document(1, "")]) == 0
        assert len(idx) == 0
        assert idx.document_count == 0
        assert not idx.has_document(1)

    def test_out_of_order_ingest_keeps_lists_sorted(self):
        idx = InvertedIndex()
        idx.ingest(_document(10, "appeal dismissed"))
        idx.ingest(_document(3, "appeal allowed"))

        assert idx.lookup("appeal").doc_ids == (3, 10)
        idx.check_invariants([3, 10])

    def test_posting_lists_stay_sorted(self, index):
        index.check_invariants([1, 2, 3])

    def test_unknown_document_reference_detected(self, index):
        with pytest.raises(IndexInvariantError, match="unknown documents"):
            index.check_invariants([1, 2])


@pytest.mark.unit
class TestLookup:
    def test_missing_term_returns_empty(self, index):
        assert not index.lookup("habeas")

    def test_terms_containing_fragment(self, index):
        assert index.terms_containing("equal") == ["equal", "equality", "unequal"]

    def test_terms_containing_short_fragment_scans_vocabulary(self, index):
        assert index.terms_containing("of") == ["of"]

    def test_terms_containing_unknown_fragment(self, index):
        assert index.terms_containing("xyz") == []
        assert index.terms_containing("") == []

    def test_lookup_substring_unions_documents(self, index):
        assert index.lookup_substring("equal").doc_ids == (1, 3)

    def test_copy_is_independent(self, index):
        clone = index.copy()
        clone.ingest(_document(9, "novel doctrine"))

        assert "novel" in clone
        assert "novel" not in index
        assert index.document_count == 3

    def test_stats(self, index):
        stats = index.stats()

        assert stats["documents"] == 3
        assert stats["terms"] == len(index)


@pytest.mark.unit
def test_dict_round_trip_restores_substring_lookup(index):
    restored = InvertedIndex.from_dict(index.to_dict())

    assert list(restored) == list(index)
    assert restored.lookup("protection") == index.lookup("protection")
    assert restored.terms_containing("equal") == index.terms_containing("equal")


@pytest.mark.unit
def test_trigrams():
    assert trigrams("court") == {"cou", "our", "urt"}
    assert trigrams("of") == set()
