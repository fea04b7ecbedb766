"""Create the next lesson for a learner: history in, persisted lesson out."""

import logging
import time

from fluentbee.config import settings
from fluentbee.errors import ValidationError
from fluentbee.services.fallback import FALLBACK_CATEGORY, FALLBACK_SENTENCES
from fluentbee.services.interaction_logger import log_interaction
from fluentbee.services.lesson_generator import LEVEL_TAGS, generate_lesson, generate_vocab_lesson
from fluentbee.services.progress import ITEM_COUNTS
from fluentbee.services.translation_seed import THAI_SEED, backfill_translations
from fluentbee.services.vocab_scheduler import introduce_terms

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "routines"
LESSON_TYPES = ("sentences", "vocab")


def create_next_lesson(
    store,
    user_id: str,
    category: str | None = None,
    count: int | None = None,
    level_tag: str | None = None,
    avoid_terms: list[str] | None = None,
    lesson_type: str = "sentences",
    review_from: list[str] | None = None,
    trouble_words: list[str] | None = None,
):
    """Generate, persist and activate a new lesson. Returns the Lesson row.

    lesson_type "vocab" builds a word/phrase lesson instead of sentence
    drills; its terms are handed to the vocabulary scheduler.
    """
    category = (category or DEFAULT_CATEGORY).strip() or DEFAULT_CATEGORY
    if level_tag is not None and level_tag not in LEVEL_TAGS:
        raise ValidationError(f"Unknown level tag: {level_tag!r}")
    if lesson_type not in LESSON_TYPES:
        raise ValidationError(f"Unknown lesson type: {lesson_type!r}")

    deadline = time.monotonic() + settings.request_timeout_s
    profile = store.load_profile(user_id)
    history = store.load_history(user_id)

    level_tag = level_tag or profile.level_tag
    count = count or ITEM_COUNTS[level_tag]
    use_fallback = settings.static_fallback_enabled

    if lesson_type == "vocab":
        known = [entry.term for entry in store.load_vocab(user_id)]
        generated = generate_vocab_lesson(
            target_count=count,
            level_tag=level_tag,
            category=category,
            review_from=list(review_from or []) + list(avoid_terms or []) + known,
            trouble_words=trouble_words,
            history=history,
            deadline=deadline,
            fallback=THAI_SEED if use_fallback else None,
            fallback_category=FALLBACK_CATEGORY,
        )
    else:
        generated = generate_lesson(
            target_count=count,
            level_tag=level_tag,
            category=category,
            history=history,
            avoid_terms=avoid_terms,
            deadline=deadline,
            fallback=FALLBACK_SENTENCES if use_fallback else None,
            fallback_category=FALLBACK_CATEGORY,
        )

    filled = backfill_translations(generated.items)

    with store.transaction():
        lesson = store.save_lesson(user_id, generated)
        store.record_fingerprint(user_id, lesson.fingerprint)
        scheduled = []
        if lesson_type == "vocab":
            scheduled = introduce_terms(store, user_id, [item.term for item in generated.items])
        store.save_profile(user_id, {
            "active_lesson_id": lesson.id,
            "next_lesson_index": profile.next_lesson_index + 1,
        })

    if generated.is_fallback:
        logger.error("Served fallback lesson %d to %s: %s", lesson.id, user_id, generated.degraded_reason)
        log_interaction(
            event="lesson_degraded",
            user_id=user_id,
            lesson_id=lesson.id,
            lesson_type=lesson_type,
            reason=generated.degraded_reason,
            attempts=generated.attempts,
        )
    else:
        log_interaction(
            event="lesson_generated",
            user_id=user_id,
            lesson_id=lesson.id,
            lesson_type=lesson_type,
            level_tag=level_tag,
            category=category,
            items=len(generated.items),
            attempts=generated.attempts,
            rejections=generated.rejections,
            translations_backfilled=filled or None,
            terms_scheduled=len(scheduled) or None,
        )
    return lesson
