"""
Unit tests for text processing: normalize_text and bigram_similarity.
"""

import pytest

from app.services.text_processing import bigram_similarity, normalize_text


class TestNormalizeText:
    """Tests for normalize_text()."""

    def test_empty_returns_empty(self) -> None:
        assert normalize_text("") == ""
        assert normalize_text("   ") == ""
        assert normalize_text("\n\n") == ""

    def test_lowercases_and_collapses_whitespace(self) -> None:
        assert normalize_text("  What  ARE\nyour   hours ") == "what are your hours"

    def test_nfkc_normalization(self) -> None:
        # Fullwidth letters fold to ASCII
        assert normalize_text("ＨＥＬＬＯ") == "hello"


class TestBigramSimilarity:
    """Tests for bigram_similarity()."""

    def test_identical_strings_score_one(self) -> None:
        assert bigram_similarity("what are your hours", "what are your hours") == 1.0

    def test_case_and_spacing_do_not_matter(self) -> None:
        assert bigram_similarity("What Are Your Hours", "whatareyourhours") == 1.0

    def test_disjoint_strings_score_zero(self) -> None:
        assert bigram_similarity("abc", "xyz") == 0.0

    def test_symmetric(self) -> None:
        a, b = "do you deliver", "do you deliver pizza"
        assert bigram_similarity(a, b) == bigram_similarity(b, a)

    def test_bounded(self) -> None:
        score = bigram_similarity("tell me a joke", "what are your hours")
        assert 0.0 <= score <= 1.0

    def test_trailing_punctuation_scores_high(self) -> None:
        # 15 shared bigrams out of 16 + 15
        assert bigram_similarity("What are your hours?", "what are your hours") == pytest.approx(30 / 31)

    def test_single_character_strings(self) -> None:
        assert bigram_similarity("a", "b") == 0.0
        assert bigram_similarity("a", "a") == 1.0

    def test_repeated_bigrams_counted_as_multiset(self) -> None:
        # "aaaa" has bigrams {aa: 3}; "aa" has {aa: 1}; overlap 1 -> 2 / (4 + 2 - 2)
        assert bigram_similarity("aaaa", "aa") == pytest.approx(0.5)
