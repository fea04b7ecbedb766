"""Lexical similarity measures for near-duplicate sentence rejection.

Two sentences are near-duplicates when their token-set Jaccard similarity
reaches JACCARD_THRESHOLD or their 3-gram overlap reaches NGRAM_THRESHOLD.
Thresholds are tunable policy, not hard limits.
"""

import re
from collections.abc import Iterable, Sequence

JACCARD_THRESHOLD = 0.8
NGRAM_THRESHOLD = 0.6
NGRAM_SIZE = 3

_APOSTROPHES = re.compile(r"['’‘`]")
_NON_WORD = re.compile(r"[^a-z0-9]+")


def normalize_text(text: str) -> str:
    """Lowercase, drop apostrophes, strip punctuation, collapse whitespace."""
    text = _APOSTROPHES.sub("", (text or "").lower())
    return _NON_WORD.sub(" ", text).strip()


def tokenize(text: str) -> list[str]:
    return normalize_text(text).split()


def jaccard(a: Sequence[str], b: Sequence[str]) -> float:
    sa, sb = set(a), set(b)
    union = len(sa | sb)
    if union == 0:
        return 0.0
    return len(sa & sb) / union


def ngrams(tokens: Sequence[str], n: int = NGRAM_SIZE) -> set[tuple[str, ...]]:
    return {tuple(tokens[i:i + n]) for i in range(len(tokens) - n + 1)}


def ngram_overlap(a: Sequence[str], b: Sequence[str], n: int = NGRAM_SIZE) -> float:
    """Shared n-grams over the smaller n-gram set (size floored at 1)."""
    ga, gb = ngrams(a, n), ngrams(b, n)
    min_size = min(len(ga), len(gb)) or 1
    return len(ga & gb) / min_size


def is_near_duplicate(
    tokens: Sequence[str],
    others: Iterable[Sequence[str]],
    jaccard_threshold: float = JACCARD_THRESHOLD,
    ngram_threshold: float = NGRAM_THRESHOLD,
) -> bool:
    for other in others:
        if jaccard(tokens, other) >= jaccard_threshold:
            return True
        if ngram_overlap(tokens, other) >= ngram_threshold:
            return True
    return False
