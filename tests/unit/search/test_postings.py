"""Unit tests for posting lists and merge operations."""

from array import array

import pytest

from caselaw_search.errors import IndexInvariantError
from caselaw_search.search.postings import Posting, PostingList, intersect, intersect_all, union


def _postings(*pairs):
    return PostingList.from_pairs(pairs)


@pytest.mark.unit
class TestPostingList:
    def test_from_pairs_rejects_unsorted_documents(self):
        with pytest.raises(IndexInvariantError, match="strictly increasing"):
            _postings((3, [0]), (1, [0]))

    def test_from_pairs_rejects_duplicate_documents(self):
        with pytest.raises(IndexInvariantError):
            _postings((1, [0]), (1, [4]))

    def test_from_pairs_rejects_unsorted_offsets(self):
        with pytest.raises(IndexInvariantError, match="offsets"):
            _postings((1, [8, 2]))

    def test_get_uses_document_id(self):
        postings = _postings((1, [0]), (5, [3, 9]), (9, [1]))

        assert postings.get(5).offsets == array("I", [3, 9])
        assert postings.get(4) is None
        assert postings.get(10) is None

    def test_frequency_counts(self):
        postings = _postings((1, [0, 4]), (2, [7]))

        assert postings.total_frequency == 3
        assert [posting.frequency for posting in postings] == [2, 1]

    def test_extended_appends_in_order(self):
        base = _postings((1, [0]), (2, [0]))

        extended = base.extended([Posting(3, array("I", [5]))])

        assert extended.doc_ids == (1, 2, 3)
        assert base.doc_ids == (1, 2)

    def test_extended_merges_lower_ids(self):
        base = _postings((2, [0]), (6, [0]))

        extended = base.extended([Posting(1, array("I", [1])), Posting(4, array("I", [2]))])

        assert extended.doc_ids == (1, 2, 4, 6)

    def test_extended_rejects_existing_id(self):
        base = _postings((2, [0]))

        with pytest.raises(IndexInvariantError):
            base.extended([Posting(2, array("I", [9]))])

    def test_dict_round_trip(self):
        postings = _postings((1, [0, 5]), (3, [2]))

        assert PostingList.from_list(postings.to_list()) == postings
        assert postings.to_list()[0] == {"d": 1, "p": [0, 5]}


@pytest.mark.unit
class TestMerge:
    def test_intersect_keeps_shared_documents(self):
        left = _postings((1, [0]), (3, [4]), (5, [1]))
        right = _postings((2, [0]), (3, [9]), (5, [0]))

        result = intersect(left, right)

        assert result.doc_ids == (3, 5)
        assert list(result.get(3).offsets) == [4, 9]
        assert list(result.get(5).offsets) == [0, 1]
        result.check_invariants()

    def test_intersect_with_empty(self):
        assert not intersect(_postings((1, [0])), PostingList.empty())

    def test_intersect_all_orders_by_size(self):
        lists = [
            _postings(*[(doc_id, [0]) for doc_id in range(50)]),
            _postings((7, [3]), (40, [1])),
            _postings(*[(doc_id, [2]) for doc_id in range(0, 50, 2)]),
        ]

        assert intersect_all(lists).doc_ids == (40,)

    def test_intersect_all_empty_input(self):
        assert not intersect_all([])

    def test_union_merges_offsets(self):
        result = union([_postings((1, [0]), (4, [2])), _postings((1, [6]), (2, [1]))])

        assert result.doc_ids == (1, 2, 4)
        assert list(result.get(1).offsets) == [0, 6]
        result.check_invariants()
