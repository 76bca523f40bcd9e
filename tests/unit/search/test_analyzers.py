"""Unit tests for the tokenizer, normalizer and matcher helpers."""

import pytest

from caselaw_search.errors import QueryError
from caselaw_search.search.analyzers import (
    RegexTokenizer,
    compile_literal,
    compile_matcher,
    compute_line_offsets,
    fold_case,
    line_for_offset,
    literal_prefix,
    normalize,
)


@pytest.mark.unit
class TestNormalize:
    def test_casefolds_and_keeps_original_offsets(self):
        tokens = normalize("Brown v. Board")

        assert [token.text for token in tokens] == ["brown", "v", "board"]
        assert [token.offset for token in tokens] == [0, 6, 9]
        assert [token.end for token in tokens] == [5, 7, 14]

    def test_case_sensitive_keeps_token_text(self):
        tokens = normalize("Safe Harbor", case_sensitive=True)

        assert [token.text for token in tokens] == ["Safe", "Harbor"]

    def test_empty_text_yields_no_tokens(self):
        assert normalize("") == []
        assert normalize("  ,;  ") == []

    def test_tokens_carry_line_numbers(self):
        tokens = normalize("first line\nsecond\n\nfourth")

        assert [(token.text, token.line) for token in tokens] == [
            ("first", 1),
            ("line", 1),
            ("second", 2),
            ("fourth", 4),
        ]

    def test_positions_are_sequential(self):
        tokens = normalize("a b c")

        assert [token.position for token in tokens] == [0, 1, 2]

    def test_unicode_words_are_tokens(self):
        tokens = normalize("Cour de cassation, arrêt n° 5")

        assert [token.text for token in tokens] == ["cour", "de", "cassation", "arrêt", "n", "5"]

    @pytest.mark.parametrize(("raw", "folded"), [("İstanbul", "istanbul"), ("ıslak", "islak"), ("Straße", "strasse")])
    def test_case_folding(self, raw, folded):
        assert fold_case(raw) == folded
        assert [token.text for token in normalize(raw)] == [folded]

    @pytest.mark.parametrize("raw", ["İstanbul", "ıstanbul", "ISTANBUL"])
    def test_folded_terms_cover_ignorecase_matches(self, raw):
        assert compile_matcher("istanbul").search(raw)
        assert "istanbul" in fold_case(raw)


@pytest.mark.unit
class TestLineOffsets:
    def test_line_starts(self):
        assert compute_line_offsets("ab\ncd\n") == (0, 3, 6)

    def test_empty_text_has_one_line(self):
        assert compute_line_offsets("") == (0,)

    @pytest.mark.parametrize(("offset", "line"), [(0, 1), (2, 1), (3, 2), (5, 2), (6, 3)])
    def test_line_for_offset(self, offset, line):
        assert line_for_offset((0, 3, 6), offset) == line


@pytest.mark.unit
def test_regex_tokenizer_custom_pattern():
    tokenizer = RegexTokenizer(r"[A-Z]\w*")

    assert [token.text for token in tokenizer("see Brown and Board")] == ["Brown", "Board"]



@pytest.mark.unit
class TestMatchers:
    def test_compile_matcher_case_insensitive_by_default(self):
        matcher = compile_matcher("adequacy")

        assert matcher.search("Adequacy of protection")

    def test_compile_matcher_case_sensitive(self):
        matcher = compile_matcher("adequacy", case_sensitive=True)

        assert matcher.search("Adequacy of protection") is None

    def test_malformed_regex_raises_query_error(self):
        with pytest.raises(QueryError, match="Invalid regular expression"):
            compile_matcher("(unclosed")

    def test_compile_literal_escapes_metacharacters(self):
        matcher = compile_literal("s. 3(1)")

        assert matcher.search("under s. 3(1) of the Act")
        assert matcher.search("under sX 3(1)") is None

    def test_compile_literal_whole_word(self):
        matcher = compile_literal("equal", whole_word=True)

        assert matcher.search("equal protection")
        assert matcher.search("(equal)")
        assert matcher.search("inherently unequal") is None
        assert matcher.search("equality") is None

    def test_compile_literal_whole_word_with_punctuation_edges(self):
        assert compile_literal("s. 3(1)", whole_word=True).search("under s. 3(1) of the Act")

    def test_compile_matcher_whole_word(self):
        matcher = compile_matcher("negligen(ce|t)", whole_word=True)

        assert matcher.search("gross negligence.")
        assert matcher.search("negligently") is None

    def test_whole_word_wrapper_cannot_be_escaped(self):
        with pytest.raises(QueryError):
            compile_matcher("a)|(b", whole_word=True)


@pytest.mark.unit
@pytest.mark.parametrize(
    ("pattern", "prefix"),
    [
        ("inherently\\s+unequal", "inherently"),
        ("^Safe Harbor.*", "Safe Harbor"),
        ("colou?r", "colo"),
        ("ab*c", "a"),
        ("negligen(ce|t)", "negligen"),
        ("plaintiff|defendant", ""),
        ("[Aa]dequacy", ""),
        ("", ""),
    ],
)
def test_literal_prefix(pattern, prefix):
    assert literal_prefix(pattern) == prefix
