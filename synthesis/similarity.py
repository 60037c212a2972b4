"""Text similarity used to cluster stories and dedupe sentences."""

from __future__ import annotations

from typing import Set, Tuple

# High-signal terms; each one present in both texts adds a fixed bonus.
IMPORTANT_TERMS: Tuple[str, ...] = (
    "f1",
    "formula",
    "grand",
    "prix",
    "verstappen",
    "hamilton",
    "ferrari",
    "mercedes",
    "red bull",
    "mclaren",
)
IMPORTANT_TERM_BONUS = 0.1


def tokenize(text: str) -> Set[str]:
    return {token for token in text.lower().split() if len(token) > 2}


def similarity(text1: str, text2: str) -> float:
    """Jaccard overlap of word sets plus a shared-term bonus, capped at 1.0.

    The bonus is checked by substring on the raw lower-cased texts, so it can
    lift two loosely related F1 stories well above their Jaccard score.
    """
    words1 = tokenize(text1)
    words2 = tokenize(text2)
    if not words1 or not words2:
        return 0.0

    jaccard = len(words1 & words2) / len(words1 | words2)

    lowered1 = text1.lower()
    lowered2 = text2.lower()
    shared_terms = sum(1 for term in IMPORTANT_TERMS if term in lowered1 and term in lowered2)

    return min(1.0, jaccard + shared_terms * IMPORTANT_TERM_BONUS)
