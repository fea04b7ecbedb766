"""Spaced-repetition scheduling for vocabulary terms.

Mastery is an integer 0-5. A correct answer raises it by one and schedules
the review from bucket min(mastery-1, 4). A wrong answer lowers it by one
and schedules from bucket ``mastery`` (the reduced value), clamped to the
last bucket. A failure therefore lands one bucket earlier than the
success interval for the same mastery level; at mastery 0 a failure
keeps mastery 0 and schedules 1 day out.

Terms from vocabulary lessons enter through introduce_terms() unseen
(mastery 0) and due at once.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from fluentbee.errors import ValidationError
from fluentbee.services.interaction_logger import log_interaction

logger = logging.getLogger(__name__)

SCHEDULE_DAYS = (1, 3, 7, 14, 30)
MAX_MASTERY = 5


@dataclass
class VocabState:
    term: str
    seen_count: int = 0
    correct_count: int = 0
    mastery: int = 0
    last_seen_at: datetime | None = None
    next_review_at: datetime | None = None


def normalize_term(term: str) -> str:
    term = " ".join((term or "").split())
    if not term:
        raise ValidationError("term is required")
    return term


def review_interval(bucket: int) -> timedelta:
    bucket = min(max(bucket, 0), len(SCHEDULE_DAYS) - 1)
    return timedelta(days=SCHEDULE_DAYS[bucket])


def record_outcome(
    term: str,
    correct: bool,
    existing: Any | None = None,
    now: datetime | None = None,
) -> VocabState:
    """Apply one practice outcome and return the new state.

    ``existing`` may be a VocabState or any object with the same
    attributes (e.g. the VocabEntry row). It is not mutated.
    """
    term = normalize_term(term)
    now = now or datetime.now(timezone.utc)

    seen = (getattr(existing, "seen_count", 0) or 0) if existing is not None else 0
    right = (getattr(existing, "correct_count", 0) or 0) if existing is not None else 0
    mastery = (getattr(existing, "mastery", 0) or 0) if existing is not None else 0
    mastery = min(max(mastery, 0), MAX_MASTERY)

    if correct:
        right += 1
        mastery = min(mastery + 1, MAX_MASTERY)
        bucket = min(mastery - 1, len(SCHEDULE_DAYS) - 1)
    else:
        mastery = max(mastery - 1, 0)
        bucket = mastery

    return VocabState(
        term=term,
        seen_count=seen + 1,
        correct_count=right,
        mastery=mastery,
        last_seen_at=now,
        next_review_at=now + review_interval(bucket),
    )


def submit_outcome(store, user_id: str, term: str, correct: bool, now: datetime | None = None):
    """Load, apply and persist one outcome. Returns the saved VocabEntry."""
    term = normalize_term(term)
    existing = store.load_vocab_entry(user_id, term)
    state = record_outcome(term, correct, existing, now)
    entry = store.save_vocab(user_id, term, state)
    log_interaction(
        event="vocab_outcome",
        user_id=user_id,
        term=term,
        correct=correct,
        mastery=state.mastery,
        next_review_at=state.next_review_at.isoformat(),
    )
    return entry


def due_terms(store, user_id: str, now: datetime | None = None, limit: int = 20) -> list:
    """Entries due for review, oldest due date first."""
    now = now or datetime.now(timezone.utc)
    return store.due_vocab(user_id, now, limit)


def introduce_terms(store, user_id: str, terms, now: datetime | None = None) -> list[str]:
    """Start scheduling terms the learner has not met before.

    New entries begin at mastery 0 and are due immediately; terms that
    already have an entry keep their schedule. Returns the terms added.
    """
    now = now or datetime.now(timezone.utc)
    added: list[str] = []
    for raw in terms:
        term = " ".join((raw or "").split())
        if not term or term in added or store.load_vocab_entry(user_id, term) is not None:
            continue
        store.save_vocab(user_id, term, VocabState(term=term, next_review_at=now))
        added.append(term)
    if added:
        logger.info("Scheduled %d new vocabulary terms for %s", len(added), user_id)
    return added
