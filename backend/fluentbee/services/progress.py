"""Leveling, difficulty progression and streaks.

XP to clear level L is round(100 * 1.5^(L-1)); level is always derived
from total XP, never stored. Streak day boundaries use UTC.
"""

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime, timezone

from fluentbee.errors import ValidationError
from fluentbee.services.interaction_logger import log_interaction

logger = logging.getLogger(__name__)

LEVEL_TAGS = ("A0", "A1", "A2", "B1", "B2")
ITEM_COUNTS = {"A0": 6, "A1": 6, "A2": 8, "B1": 10, "B2": 10}

RECENT_SCORE_WINDOW = 3
ADVANCE_THRESHOLD = 0.85
REGRESS_THRESHOLD = 0.5
XP_PER_ITEM = 10


@dataclass
class LevelInfo:
    level: int
    xp_into_level: int
    xp_to_next: int


@dataclass
class Difficulty:
    level_tag: str
    item_count: int


@dataclass
class StreakUpdate:
    streak_count: int
    last_active_date: str


def xp_needed_for_level(level: int) -> int:
    return round(100 * 1.5 ** max(0, level - 1))


def compute_level(total_xp: int | float) -> LevelInfo:
    if total_xp is None or not math.isfinite(total_xp) or total_xp < 0:
        raise ValidationError("total_xp must be a non-negative finite number")
    level = 1
    xp = total_xp
    while xp >= xp_needed_for_level(level):
        xp -= xp_needed_for_level(level)
        level += 1
    xp = int(xp)
    return LevelInfo(level=level, xp_into_level=xp, xp_to_next=xp_needed_for_level(level) - xp)


def next_lesson_difficulty(level_tag: str, recent_scores: Sequence[float]) -> Difficulty:
    """Move at most one tier based on the average of the last 3 scores."""
    if level_tag not in LEVEL_TAGS:
        raise ValidationError(f"Unknown level tag: {level_tag!r}")
    for s in recent_scores:
        if not 0.0 <= s <= 1.0:
            raise ValidationError("scores must be within [0, 1]")

    tier = LEVEL_TAGS.index(level_tag)
    window = list(recent_scores)[-RECENT_SCORE_WINDOW:]
    if window:
        avg = sum(window) / len(window)
        if avg >= ADVANCE_THRESHOLD and tier < len(LEVEL_TAGS) - 1:
            tier += 1
        elif 0 < avg <= REGRESS_THRESHOLD and tier > 0:
            tier -= 1

    new_tag = LEVEL_TAGS[tier]
    return Difficulty(level_tag=new_tag, item_count=ITEM_COUNTS[new_tag])


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


def update_streak(
    last_active_date: str | date | None,
    streak_count: int,
    today: date | None = None,
) -> StreakUpdate:
    today = today or today_utc()
    if not last_active_date:
        return StreakUpdate(streak_count=1, last_active_date=today.isoformat())
    last = last_active_date if isinstance(last_active_date, date) else date.fromisoformat(last_active_date)
    elapsed = (today - last).days
    if elapsed <= 0:
        # same day (or a clock behind the stored date): unchanged
        return StreakUpdate(streak_count=streak_count, last_active_date=last.isoformat())
    if elapsed == 1:
        return StreakUpdate(streak_count=(streak_count or 0) + 1, last_active_date=today.isoformat())
    return StreakUpdate(streak_count=1, last_active_date=today.isoformat())


@dataclass
class CompletionResult:
    lesson_id: int
    xp_gained: int
    xp: int
    level: LevelInfo
    streak_count: int
    lessons_completed: int
    next_difficulty: Difficulty


def complete_lesson(
    store,
    user_id: str,
    lesson_id: int,
    score: float,
    today: date | None = None,
) -> CompletionResult:
    """Close a lesson session: score, XP, streak and next difficulty."""
    if score is None or not 0.0 <= score <= 1.0:
        raise ValidationError("score must be within [0, 1]")

    lesson = store.get_lesson(user_id, lesson_id)
    if lesson.status == "completed":
        raise ValidationError(f"Lesson {lesson_id} is already completed")

    # all-or-nothing: a failed write leaves the lesson open for a retry
    with store.transaction():
        store.mark_lesson_completed(lesson)
        store.record_session_score(user_id, lesson.id, score)
        store.record_fingerprint(user_id, lesson.fingerprint)

        profile = store.load_profile(user_id)
        xp_gained = round(XP_PER_ITEM * len(lesson.items) * score)
        streak = update_streak(profile.last_active_date, profile.streak_count, today)
        difficulty = next_lesson_difficulty(profile.level_tag, store.recent_scores(user_id))

        partial = {
            "xp": profile.xp + xp_gained,
            "streak_count": streak.streak_count,
            "last_active_date": streak.last_active_date,
            "lessons_completed": profile.lessons_completed + 1,
            "level_tag": difficulty.level_tag,
        }
        if profile.active_lesson_id == lesson.id:
            partial["active_lesson_id"] = None
        profile = store.save_profile(user_id, partial)
        store.clear_lesson_progress(lesson.id)

    level = compute_level(profile.xp)
    log_interaction(
        event="lesson_completed",
        user_id=user_id,
        lesson_id=lesson.id,
        score=score,
        xp_gained=xp_gained,
        level=level.level,
        next_level_tag=difficulty.level_tag,
    )
    return CompletionResult(
        lesson_id=lesson.id,
        xp_gained=xp_gained,
        xp=profile.xp,
        level=level,
        streak_count=profile.streak_count,
        lessons_completed=profile.lessons_completed,
        next_difficulty=difficulty,
    )
