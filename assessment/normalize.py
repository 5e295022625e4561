"""
Deterministic text normalization and fuzzy matching helpers.
"""

import re

import Levenshtein

# Common OCR confusions and typographic quote variants
_TRANSLATION = str.maketrans({
    "0": "o",
    "1": "l",
    "‘": "'",
    "’": "'",
    "`": "'",
    "“": '"',
    "”": '"',
})

_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """
    Normalize text for comparison.

    Lowercases, trims, maps 0->o and 1->l, straightens quotes and collapses
    whitespace runs to a single space.
    """
    lowered = text.lower().strip().translate(_TRANSLATION)
    return _WHITESPACE.sub(" ", lowered)


def levenshtein_distance(a: str, b: str) -> int:
    """Classic edit distance with unit cost insertions, deletions and substitutions."""
    return Levenshtein.distance(a, b)


def calculate_similarity(a: str, b: str) -> float:
    """
    Similarity between two strings in [0, 1] after normalization.

    1 when equal, 0 when either side is empty, otherwise
    1 - distance / longer length.
    """
    norm_a = normalize_text(a)
    norm_b = normalize_text(b)

    if norm_a == norm_b:
        return 1.0
    if not norm_a or not norm_b:
        return 0.0

    distance = levenshtein_distance(norm_a, norm_b)
    return 1.0 - distance / max(len(norm_a), len(norm_b))
