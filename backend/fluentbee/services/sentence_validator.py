"""Deterministic structural validators for generated candidates.

Each check is a named predicate so policy changes stay local and the
names double as the issue labels reported back in ValidationResult.
"""

import re
from collections.abc import Sequence
from dataclasses import dataclass, field

# Word-count band for sentence drills (inclusive)
SENTENCE_WORD_BAND = (8, 14)
# Looser band used for word/phrase items
PHRASE_WORD_BAND = (1, 4)

TERMINAL_PUNCTUATION = (".", "!", "?")

_NON_ASCII = re.compile(r"[^\x00-\x7F]")
_WHITESPACE = re.compile(r"\s+")


def word_count_in_band(tokens: Sequence[str], band: tuple[int, int]) -> bool:
    low, high = band
    return low <= len(tokens) <= high


def starts_with_capital(text: str) -> bool:
    text = text.strip()
    return bool(text) and "A" <= text[0] <= "Z"


def ends_with_terminal_punctuation(text: str) -> bool:
    return text.strip().endswith(TERMINAL_PUNCTUATION)


def is_ascii(text: str) -> bool:
    return not _NON_ASCII.search(text)


def strip_non_ascii(text: str) -> str:
    """ASCII guard for display text: drop non-ASCII, re-collapse whitespace."""
    return _WHITESPACE.sub(" ", _NON_ASCII.sub("", text)).strip()


@dataclass
class ValidationResult:
    valid: bool
    issues: list[str] = field(default_factory=list)


def validate_candidate(
    text: str,
    tokens: Sequence[str],
    band: tuple[int, int] = SENTENCE_WORD_BAND,
    full_sentence: bool = True,
) -> ValidationResult:
    issues: list[str] = []
    if not word_count_in_band(tokens, band):
        issues.append("word_count_in_band")
    if full_sentence:
        if not starts_with_capital(text):
            issues.append("starts_with_capital")
        if not ends_with_terminal_punctuation(text):
            issues.append("ends_with_terminal_punctuation")
    return ValidationResult(valid=not issues, issues=issues)
