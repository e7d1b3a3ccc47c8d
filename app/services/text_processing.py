"""
Text processing for knowledge matching: normalization and similarity.

Normalization removes case and unicode inconsistencies so that the same
question typed differently compares equal. Similarity is the Sørensen–Dice
coefficient over character bigrams, which tolerates small typos and
punctuation differences better than whole-word comparison.
"""

import unicodedata
from collections import Counter


def normalize_text(text: str) -> str:
    """
    NFKC-normalize, lowercase, and collapse runs of whitespace to one space.
    Returns "" for empty or whitespace-only input.
    """
    if not text or not text.strip():
        return ""
    text = unicodedata.normalize("NFKC", text).lower()
    return " ".join(text.split())


def _bigrams(text: str) -> Counter:
    return Counter(text[i : i + 2] for i in range(len(text) - 1))


def bigram_similarity(first: str, second: str) -> float:
    """
    Dice coefficient of character bigrams, whitespace ignored, case-insensitive.

    Symmetric and bounded to [0, 1]: identical strings score 1.0, strings with
    no bigram in common score 0.0.
    """
    a = "".join(normalize_text(first).split())
    b = "".join(normalize_text(second).split())
    if a == b:
        return 1.0
    if len(a) < 2 or len(b) < 2:
        return 0.0
    overlap = sum((_bigrams(a) & _bigrams(b)).values())
    return (2.0 * overlap) / (len(a) + len(b) - 2)
