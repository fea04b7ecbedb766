"""Lesson generation pipeline.

Orchestrates LLM candidate generation with deterministic filtering.
The core loop: request candidates -> validate -> dedup -> balance ->
retry until the lesson is full or the attempt budget is spent.

Acceptance is strictly sequential (first accepted wins for near-duplicate
and first-token checks), so the same ordered candidates and the same
history always produce the same lesson.

Vocabulary lessons (generate_vocab_lesson) reuse the same acceptance
state with a 1-4 word band and skip terms the learner already knows.
"""

import logging
import math
import time
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field

from fluentbee.config import settings
from fluentbee.errors import GenerationExhausted, ParseFailure, UpstreamFailure, ValidationError
from fluentbee.services.fingerprint import lesson_fingerprint, sentence_fingerprint
from fluentbee.services.llm import Candidate, request_candidates, request_vocab
from fluentbee.services.sentence_classifier import SentenceType, category_caps, classify
from fluentbee.services.sentence_validator import (
    PHRASE_WORD_BAND,
    SENTENCE_WORD_BAND,
    is_ascii,
    strip_non_ascii,
    validate_candidate,
)
from fluentbee.services.similarity import is_near_duplicate, tokenize

logger = logging.getLogger(__name__)

LEVEL_TAGS = ("A0", "A1", "A2", "B1", "B2")

MAX_ATTEMPTS = 3
RELAXED_ATTEMPTS = 2
MAX_FETCH = 18
OVERFETCH_BUFFER = 8
RELAXED_BUFFER = 4
MAX_LESSON_ITEMS = 20
MAX_AVOID_SENTENCES = 30
MAX_AVOID_TOKENS = 50


def min_items(target_count: int) -> int:
    """Smallest lesson worth returning; anything shorter counts as exhausted."""
    return max(1, math.ceil(target_count / 2))


@dataclass
class LessonHistory:
    """What a learner has already seen, newest sentences first."""

    lesson_fingerprints: set[str] = field(default_factory=set)
    sentence_fingerprints: set[str] = field(default_factory=set)
    sentences: list[str] = field(default_factory=list)


def top_tokens(sentences: Iterable[str], limit: int = MAX_AVOID_TOKENS) -> list[str]:
    """Most frequent tokens across past sentences, for the discourage hint."""
    counts: Counter[str] = Counter()
    for s in sentences:
        counts.update(tokenize(s))
    return [tok for tok, _ in counts.most_common(limit)]


@dataclass
class GeneratedItem:
    term: str
    translation: str
    sentence_type: SentenceType | None
    fingerprint: str
    tokens: list[str]
    kind: str = "sentence"


@dataclass
class GeneratedLesson:
    title: str
    level_tag: str
    category: str
    items: list[GeneratedItem]
    fingerprint: str
    attempts: int
    is_fallback: bool = False
    degraded_reason: str | None = None
    rejections: dict[str, int] = field(default_factory=dict)


class CandidateSelector:
    """Sequential acceptance state for one lesson assembly."""

    def __init__(
        self,
        target_count: int,
        history: LessonHistory | None = None,
        word_band: tuple[int, int] = SENTENCE_WORD_BAND,
    ) -> None:
        history = history or LessonHistory()
        self.target_count = target_count
        self.word_band = word_band
        self.caps = category_caps(target_count)
        self.accepted: list[GeneratedItem] = []
        self.counts: Counter[SentenceType] = Counter()
        self.first_tokens: set[str] = set()
        self.seen_fingerprints: set[str] = set(history.sentence_fingerprints)
        self.history_tokens: list[list[str]] = [tokenize(s) for s in history.sentences]
        self.rejections: Counter[str] = Counter()

    @property
    def needed(self) -> int:
        return self.target_count - len(self.accepted)

    @property
    def full(self) -> bool:
        return self.needed <= 0

    def offer(self, candidate: Candidate, enforce_first_token: bool = True) -> str | None:
        """Try to accept a candidate. Returns the rejection reason, or None."""
        if self.full:
            return self._reject("lesson_full")
        text = candidate.en.strip()
        if not is_ascii(text):
            text = strip_non_ascii(text)
        if not text:
            return self._reject("blank")
        tokens = tokenize(text)

        validation = validate_candidate(text, tokens, self.word_band, full_sentence=True)
        if not validation.valid:
            return self._reject(validation.issues[0])

        fp = sentence_fingerprint(text)
        if fp in self.seen_fingerprints:
            return self._reject("exact_duplicate")

        if is_near_duplicate(tokens, (item.tokens for item in self.accepted)):
            return self._reject("near_duplicate")
        if is_near_duplicate(tokens, self.history_tokens):
            return self._reject("near_duplicate_history")

        if enforce_first_token and tokens[0] in self.first_tokens:
            return self._reject("repeated_first_word")

        kind = classify(text)
        if self.counts[kind] >= self.caps[kind]:
            return self._reject(f"{kind.value}_cap")

        self.accepted.append(GeneratedItem(
            term=text,
            translation=candidate.th.strip(),
            sentence_type=kind,
            fingerprint=fp,
            tokens=tokens,
        ))
        self.counts[kind] += 1
        self.first_tokens.add(tokens[0])
        self.seen_fingerprints.add(fp)
        return None

    def offer_all(self, candidates: Iterable[Candidate], enforce_first_token: bool = True) -> int:
        accepted = 0
        for candidate in candidates:
            if self.full:
                break
            if self.offer(candidate, enforce_first_token) is None:
                accepted += 1
        return accepted

    def _reject(self, reason: str) -> str:
        self.rejections[reason] += 1
        return reason


def lesson_title(category: str) -> str:
    return f"{category[:1].upper()}{category[1:]}: Sentences"


def _build_lesson(
    selector: CandidateSelector,
    level_tag: str,
    category: str,
    attempts: int,
    is_fallback: bool = False,
    title: str | None = None,
) -> GeneratedLesson:
    title = title or lesson_title(category)
    items = selector.accepted[:selector.target_count]
    return GeneratedLesson(
        title=title,
        level_tag=level_tag,
        category=category,
        items=items,
        fingerprint=lesson_fingerprint(title, [{"term": i.term} for i in items], level_tag, category),
        attempts=attempts,
        is_fallback=is_fallback,
        rejections=dict(selector.rejections),
    )


def _assemble(
    selector: CandidateSelector,
    level_tag: str,
    category: str,
    history: LessonHistory,
    avoid_terms: Sequence[str],
    deadline: float,
) -> int:
    """Run the strict pass, then the relaxed pass. Returns calls made."""
    calls = 0
    passes = (
        (MAX_ATTEMPTS, True),
        (RELAXED_ATTEMPTS, False),
    )
    for budget, strict in passes:
        attempts = 0
        while not selector.full and attempts < budget:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.warning("Lesson deadline reached after %d generator calls", calls)
                return calls

            needed = selector.needed
            if strict:
                count = min(MAX_FETCH, needed * 2 + OVERFETCH_BUFFER)
            else:
                count = needed + RELAXED_BUFFER
            avoid_sentences = [item.term for item in selector.accepted]
            avoid_sentences += history.sentences[:MAX_AVOID_SENTENCES]
            avoid_tokens = list(avoid_terms) + top_tokens(history.sentences)

            attempts += 1
            calls += 1
            try:
                candidates = request_candidates(
                    level_tag=level_tag,
                    category=category,
                    count=count,
                    avoid_sentences=avoid_sentences,
                    avoid_tokens=avoid_tokens[:MAX_AVOID_TOKENS],
                    word_band=selector.word_band,
                    timeout=min(settings.generator_timeout_s, remaining),
                    deadline=deadline,
                )
            except (UpstreamFailure, ParseFailure) as e:
                logger.warning(
                    "Generator attempt %d (%s pass) failed: %s [%s]",
                    attempts, "strict" if strict else "relaxed", e, e.reason_code,
                )
                continue

            accepted = selector.offer_all(candidates, enforce_first_token=strict)
            logger.info(
                "Generator attempt %d (%s pass): %d/%d candidates accepted, %d still needed",
                attempts, "strict" if strict else "relaxed",
                accepted, len(candidates), max(selector.needed, 0),
            )
    return calls


def build_fallback_lesson(
    target_count: int,
    level_tag: str,
    category: str,
    fallback: Sequence[Candidate],
) -> GeneratedLesson:
    """Assemble a lesson from a static pre-vetted list, ignoring history."""
    selector = CandidateSelector(target_count)
    selector.offer_all(fallback, enforce_first_token=False)
    if not selector.accepted:
        raise GenerationExhausted("Static fallback list produced no usable items")
    return _build_lesson(selector, level_tag, category, attempts=0, is_fallback=True)


def _check_lesson_args(target_count: int, level_tag: str, category: str) -> str:
    if not isinstance(target_count, int) or not 1 <= target_count <= MAX_LESSON_ITEMS:
        raise ValidationError(f"target_count must be between 1 and {MAX_LESSON_ITEMS}")
    if level_tag not in LEVEL_TAGS:
        raise ValidationError(f"Unknown level tag: {level_tag!r}")
    category = (category or "").strip()
    if not category:
        raise ValidationError("category is required")
    return category


def generate_lesson(
    target_count: int,
    level_tag: str,
    category: str,
    history: LessonHistory | None = None,
    avoid_terms: Sequence[str] | None = None,
    deadline: float | None = None,
    fallback: Sequence[Candidate] | None = None,
    fallback_category: str | None = None,
) -> GeneratedLesson:
    """Generate a unique, balanced lesson of up to ``target_count`` sentences.

    Args:
        target_count: Desired number of items.
        level_tag: CEFR-like tier (A0..B2).
        category: Topic for the generator prompt and lesson metadata.
        history: Learner's known lesson/sentence fingerprints and recent sentences.
        avoid_terms: Extra caller-supplied terms sent as a discourage hint.
        deadline: time.monotonic() value after which no new generator call starts.
        fallback: Pre-vetted candidates substituted on exhaustion.
        fallback_category: Category recorded on a fallback lesson; defaults
            to ``category``.

    Raises:
        ValidationError: Bad arguments.
        GenerationExhausted: Budget spent without a usable lesson and no fallback.
    """
    category = _check_lesson_args(target_count, level_tag, category)
    history = history or LessonHistory()
    avoid_terms = [t.strip() for t in (avoid_terms or []) if t and t.strip()]
    if deadline is None:
        deadline = time.monotonic() + settings.request_timeout_s

    # Sentence fingerprints from rejected duplicate lessons carry over, so
    # regeneration cannot rebuild the same lesson.
    excluded = set(history.sentence_fingerprints)
    total_calls = 0
    reason = "no candidates accepted"

    for lesson_round in range(1, MAX_ATTEMPTS + 1):
        round_history = LessonHistory(
            lesson_fingerprints=history.lesson_fingerprints,
            sentence_fingerprints=excluded,
            sentences=history.sentences,
        )
        selector = CandidateSelector(target_count, round_history)
        total_calls += _assemble(selector, level_tag, category, round_history, avoid_terms, deadline)

        if len(selector.accepted) < min_items(target_count):
            reason = (
                f"accepted {len(selector.accepted)}/{target_count} items "
                f"after {total_calls} generator calls"
            )
            break

        lesson = _build_lesson(selector, level_tag, category, attempts=total_calls)
        if lesson.fingerprint not in history.lesson_fingerprints:
            logger.info(
                "Generated lesson %s: %d items in %d calls",
                lesson.fingerprint, len(lesson.items), total_calls,
            )
            return lesson

        logger.warning("Lesson %s duplicates a known lesson; regenerating", lesson.fingerprint)
        excluded |= {item.fingerprint for item in lesson.items}
        reason = "every assembled lesson duplicated a known lesson"
        if time.monotonic() >= deadline:
            break

    if fallback:
        logger.error("Generation exhausted (%s); substituting static fallback lesson", reason)
        lesson = build_fallback_lesson(
            target_count, level_tag, fallback_category or category, fallback
        )
        lesson.attempts = total_calls
        lesson.degraded_reason = reason
        return lesson

    raise GenerationExhausted("Could not assemble a lesson", diagnostic=reason)


# --- vocabulary lessons ---

def vocab_lesson_title(category: str) -> str:
    return f"{category[:1].upper()}{category[1:]}: Vocabulary"


def vocab_key(term: str) -> str:
    return " ".join(tokenize(term))


class VocabSelector(CandidateSelector):
    """Accepts new words and short phrases, skipping anything already known.

    No type caps and no first-word rule; items are kind "word" (one token)
    or "phrase".
    """

    def __init__(
        self,
        target_count: int,
        known_terms: Iterable[str] = (),
        word_band: tuple[int, int] = PHRASE_WORD_BAND,
    ) -> None:
        super().__init__(target_count, word_band=word_band)
        self.known_keys: set[str] = {vocab_key(t) for t in known_terms} - {""}

    def offer(self, candidate: Candidate, enforce_first_token: bool = False) -> str | None:
        if self.full:
            return self._reject("lesson_full")
        text = candidate.en.strip()
        if not is_ascii(text):
            text = strip_non_ascii(text)
        text = text.rstrip(".,;:!").strip()
        if not text:
            return self._reject("blank")
        tokens = tokenize(text)

        validation = validate_candidate(text, tokens, self.word_band, full_sentence=False)
        if not validation.valid:
            return self._reject(validation.issues[0])

        key = " ".join(tokens)
        if key in self.known_keys:
            return self._reject("known_term")

        self.accepted.append(GeneratedItem(
            term=text,
            translation=candidate.th.strip(),
            sentence_type=None,
            fingerprint=sentence_fingerprint(text),
            tokens=tokens,
            kind="word" if len(tokens) == 1 else "phrase",
        ))
        self.known_keys.add(key)
        return None


def build_vocab_fallback(
    target_count: int,
    level_tag: str,
    category: str,
    seed: Mapping[str, str],
    known_terms: Iterable[str] = (),
) -> GeneratedLesson:
    """Assemble a vocabulary lesson from a seed dictionary, skipping known terms."""
    selector = VocabSelector(target_count, known_terms)
    selector.offer_all(Candidate(en=term, th=thai) for term, thai in seed.items())
    if not selector.accepted:
        raise GenerationExhausted("Seed vocabulary has no terms the learner does not know")
    return _build_lesson(
        selector, level_tag, category, attempts=0, is_fallback=True,
        title=vocab_lesson_title(category),
    )


def generate_vocab_lesson(
    target_count: int,
    level_tag: str,
    category: str,
    review_from: Sequence[str] | None = None,
    trouble_words: Sequence[str] | None = None,
    history: LessonHistory | None = None,
    deadline: float | None = None,
    fallback: Mapping[str, str] | None = None,
    fallback_category: str | None = None,
) -> GeneratedLesson:
    """Generate a lesson of new words and phrases the learner does not know yet.

    review_from holds known terms; none of them is accepted again.
    trouble_words are passed through as a prompt hint only. fallback is a
    term -> translation seed used when generation comes up short.
    """
    category = _check_lesson_args(target_count, level_tag, category)
    history = history or LessonHistory()
    review = [t.strip() for t in (review_from or []) if t and t.strip()]
    trouble = [t.strip() for t in (trouble_words or []) if t and t.strip()]
    if deadline is None:
        deadline = time.monotonic() + settings.request_timeout_s

    selector = VocabSelector(target_count, review)
    calls = 0
    while not selector.full and calls < MAX_ATTEMPTS:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            logger.warning("Vocabulary deadline reached after %d generator calls", calls)
            break
        calls += 1
        try:
            candidates = request_vocab(
                level_tag=level_tag,
                category=category,
                count=selector.needed + RELAXED_BUFFER,
                review_from=review[:MAX_AVOID_TOKENS],
                trouble_words=trouble[:MAX_AVOID_TOKENS],
                word_band=selector.word_band,
                timeout=min(settings.generator_timeout_s, remaining),
                deadline=deadline,
            )
        except (UpstreamFailure, ParseFailure) as e:
            logger.warning("Vocabulary attempt %d failed: %s [%s]", calls, e, e.reason_code)
            continue
        accepted = selector.offer_all(candidates)
        logger.info(
            "Vocabulary attempt %d: %d/%d candidates accepted, %d still needed",
            calls, accepted, len(candidates), max(selector.needed, 0),
        )

    if len(selector.accepted) >= min_items(target_count):
        lesson = _build_lesson(
            selector, level_tag, category, attempts=calls,
            title=vocab_lesson_title(category),
        )
        if lesson.fingerprint not in history.lesson_fingerprints:
            return lesson
        reason = "assembled vocabulary lesson duplicated a known lesson"
    else:
        reason = (
            f"accepted {len(selector.accepted)}/{target_count} vocabulary items "
            f"after {calls} generator calls"
        )

    if fallback:
        logger.error("Vocabulary generation exhausted (%s); using seed vocabulary", reason)
        lesson = build_vocab_fallback(
            target_count, level_tag, fallback_category or category, fallback, review,
        )
        lesson.attempts = calls
        lesson.degraded_reason = reason
        return lesson

    raise GenerationExhausted("Could not assemble a vocabulary lesson", diagnostic=reason)
