"""Sentence-type classification and per-lesson balance caps.

Precedence is fixed: negation > request > question > statement, so a
negated question is a negation and reproducible test expectations hold.
"""

from enum import Enum

from fluentbee.services.similarity import normalize_text


class SentenceType(str, Enum):
    STATEMENT = "statement"
    QUESTION = "question"
    REQUEST = "request"
    NEGATION = "negation"


# Apostrophes are stripped during normalization, so contractions appear
# as "dont", "cant", ...
NEGATION_TOKENS = frozenset({
    "not", "dont", "doesnt", "cant", "wont", "isnt", "arent",
    "didnt", "wasnt", "werent", "never",
})

# Share of a lesson, in tenths, each type may occupy: 4/3/2/1 for 10 items.
CATEGORY_SHARES = {
    SentenceType.STATEMENT: 4,
    SentenceType.QUESTION: 3,
    SentenceType.REQUEST: 2,
    SentenceType.NEGATION: 1,
}


def classify(sentence: str) -> SentenceType:
    norm = normalize_text(sentence)
    if NEGATION_TOKENS.intersection(norm.split()):
        return SentenceType.NEGATION
    if norm.startswith("please "):
        return SentenceType.REQUEST
    if (sentence or "").strip().endswith("?"):
        return SentenceType.QUESTION
    return SentenceType.STATEMENT


def category_caps(target_count: int) -> dict[SentenceType, int]:
    """Per-type caps for a lesson of ``target_count`` items.

    Scaled from the 10-item split by integer ceiling; every type keeps at
    least one slot and the caps always sum to at least ``target_count``.
    """
    return {
        kind: max(1, -(-target_count * share // 10))
        for kind, share in CATEGORY_SHARES.items()
    }
