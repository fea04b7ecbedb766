"""Persistence collaborator for the lesson engine.

Reads with a safe empty default (known fingerprints, history, recent
scores) fail soft and log. Every write rolls back and raises
PersistenceError on database failure.

Multi-step writes run inside ``transaction()``: the individual write
methods only flush there, and the block commits once at the end or rolls
back as a whole.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fluentbee.errors import NotFound, PersistenceError, ValidationError
from fluentbee.models import (
    KnownFingerprint,
    Lesson,
    LessonItem,
    LessonProgress,
    Profile,
    SessionScore,
    VocabEntry,
)
from fluentbee.services.lesson_generator import GeneratedLesson, LessonHistory

logger = logging.getLogger(__name__)

DEFAULT_PROFILE: dict[str, Any] = {
    "xp": 0,
    "level_tag": "A1",
    "streak_count": 0,
    "last_active_date": None,
    "lessons_completed": 0,
    "next_lesson_index": 1,
    "active_lesson_id": None,
}
PROFILE_FIELDS = frozenset(DEFAULT_PROFILE)

HISTORY_LESSON_LIMIT = 20
RECENT_SCORE_LIMIT = 3


def as_utc(dt: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; they are stored as UTC."""
    if dt is None or dt.tzinfo is not None:
        return dt
    return dt.replace(tzinfo=timezone.utc)


class LessonStore:
    def __init__(self, db: Session):
        self.db = db
        self._depth = 0

    @contextmanager
    def transaction(self):
        """Group several writes into one commit. Nested blocks join the outer one."""
        self._depth += 1
        try:
            yield self
        except BaseException:
            self._depth -= 1
            if not self._depth:
                self.db.rollback()
            raise
        self._depth -= 1
        if not self._depth:
            self._commit("transaction")

    def _commit(self, what: str) -> None:
        try:
            if self._depth:
                self.db.flush()
            else:
                self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to persist %s: %s", what, e)
            raise PersistenceError(f"Could not save {what}", diagnostic=str(e)) from e

    def _read_failed(self, what: str, user_id: str, error: SQLAlchemyError) -> None:
        # a rollback here would discard the pending writes of an open transaction
        if self._depth:
            raise PersistenceError(f"Could not read {what}", diagnostic=str(error)) from error
        logger.warning("%s unavailable for %s: %s", what, user_id, error)
        self.db.rollback()

    # --- fingerprints ---

    def load_known_fingerprints(self, user_id: str) -> set[str]:
        try:
            rows = (
                self.db.query(KnownFingerprint.fingerprint)
                .filter(KnownFingerprint.user_id == user_id)
                .all()
            )
        except SQLAlchemyError as e:
            self._read_failed("Known fingerprints", user_id, e)
            return set()
        return {fp for (fp,) in rows}

    def record_fingerprint(self, user_id: str, fingerprint: str) -> None:
        try:
            exists = (
                self.db.query(KnownFingerprint.id)
                .filter(
                    KnownFingerprint.user_id == user_id,
                    KnownFingerprint.fingerprint == fingerprint,
                )
                .first()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError("Could not save fingerprint", diagnostic=str(e)) from e
        if exists:
            return
        self.db.add(KnownFingerprint(user_id=user_id, fingerprint=fingerprint))
        self._commit("fingerprint")

    # --- vocabulary ---

    def load_vocab(self, user_id: str) -> list[VocabEntry]:
        return (
            self.db.query(VocabEntry)
            .filter(VocabEntry.user_id == user_id)
            .order_by(VocabEntry.term)
            .all()
        )

    def load_vocab_entry(self, user_id: str, term: str) -> VocabEntry | None:
        return (
            self.db.query(VocabEntry)
            .filter(VocabEntry.user_id == user_id, VocabEntry.term == term)
            .first()
        )

    def save_vocab(self, user_id: str, term: str, state) -> VocabEntry:
        entry = self.load_vocab_entry(user_id, term)
        if entry is None:
            entry = VocabEntry(user_id=user_id, term=term)
            self.db.add(entry)
        entry.seen_count = state.seen_count
        entry.correct_count = state.correct_count
        entry.mastery = state.mastery
        entry.last_seen_at = state.last_seen_at
        entry.next_review_at = state.next_review_at
        self._commit("vocab entry")
        self.db.refresh(entry)
        return entry

    def due_vocab(self, user_id: str, now: datetime, limit: int = 20) -> list[VocabEntry]:
        # stored naive UTC; compare naive
        cutoff = now.astimezone(timezone.utc).replace(tzinfo=None) if now.tzinfo else now
        return (
            self.db.query(VocabEntry)
            .filter(
                VocabEntry.user_id == user_id,
                VocabEntry.next_review_at.isnot(None),
                VocabEntry.next_review_at <= cutoff,
            )
            .order_by(VocabEntry.next_review_at.asc())
            .limit(limit)
            .all()
        )

    # --- profile ---

    def load_profile(self, user_id: str, defaults: dict[str, Any] | None = None) -> Profile:
        """Return the profile, creating it from defaults on first access."""
        profile = self.db.query(Profile).filter(Profile.user_id == user_id).first()
        if profile is not None:
            return profile
        values = {**DEFAULT_PROFILE, **(defaults or {})}
        values.pop("level", None)
        profile = Profile(user_id=user_id, **{k: v for k, v in values.items() if k in PROFILE_FIELDS})
        self.db.add(profile)
        self._commit("profile")
        self.db.refresh(profile)
        return profile

    def save_profile(self, user_id: str, partial: dict[str, Any]) -> Profile:
        if "level" in partial:
            raise ValidationError("level is derived from xp and cannot be saved")
        unknown = set(partial) - PROFILE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown profile fields: {', '.join(sorted(unknown))}")
        profile = self.load_profile(user_id)
        for key, value in partial.items():
            setattr(profile, key, value)
        self._commit("profile")
        self.db.refresh(profile)
        return profile

    # --- lessons ---

    def save_lesson(self, user_id: str, generated: GeneratedLesson) -> Lesson:
        lesson = Lesson(
            user_id=user_id,
            title=generated.title,
            level_tag=generated.level_tag,
            category=generated.category,
            fingerprint=generated.fingerprint,
            is_fallback=generated.is_fallback,
            status="incomplete",
        )
        for position, item in enumerate(generated.items):
            lesson.items.append(LessonItem(
                position=position,
                kind=item.kind,
                term=item.term,
                translation=item.translation or None,
                sentence_type=item.sentence_type.value if item.sentence_type else None,
                fingerprint=item.fingerprint,
            ))
        self.db.add(lesson)
        self._commit("lesson")
        self.db.refresh(lesson)
        return lesson

    def get_lesson(self, user_id: str, lesson_id: int) -> Lesson:
        lesson = (
            self.db.query(Lesson)
            .filter(Lesson.id == lesson_id, Lesson.user_id == user_id)
            .first()
        )
        if lesson is None:
            raise NotFound(f"Lesson {lesson_id} not found")
        return lesson

    def mark_lesson_completed(self, lesson: Lesson) -> Lesson:
        lesson.status = "completed"
        lesson.completed_at = datetime.now(timezone.utc)
        self._commit("lesson completion")
        return lesson

    def list_lessons(self, user_id: str, limit: int = 20, order: str = "desc") -> list[Lesson]:
        if order not in ("asc", "desc"):
            raise ValidationError("order must be 'asc' or 'desc'")
        sort = Lesson.id.asc() if order == "asc" else Lesson.id.desc()
        return (
            self.db.query(Lesson)
            .filter(Lesson.user_id == user_id)
            .order_by(sort)
            .limit(limit)
            .all()
        )

    # --- per-lesson progress ---

    def load_lesson_progress(self, lesson_id: int) -> LessonProgress | None:
        return (
            self.db.query(LessonProgress)
            .filter(LessonProgress.lesson_id == lesson_id)
            .first()
        )

    def save_lesson_progress(
        self, lesson_id: int, completed_indices: list[int], last_index: int,
    ) -> LessonProgress:
        progress = self.load_lesson_progress(lesson_id)
        if progress is None:
            progress = LessonProgress(lesson_id=lesson_id)
            self.db.add(progress)
        progress.completed_indices = sorted(set(completed_indices))
        progress.last_index = last_index
        progress.updated_at = datetime.now(timezone.utc)
        self._commit("lesson progress")
        self.db.refresh(progress)
        return progress

    def clear_lesson_progress(self, lesson_id: int) -> None:
        progress = self.load_lesson_progress(lesson_id)
        if progress is None:
            return
        self.db.delete(progress)
        self._commit("lesson progress")

    # --- history and scores ---

    def load_history(self, user_id: str, limit: int = HISTORY_LESSON_LIMIT) -> LessonHistory:
        """Known fingerprints plus sentences from recent lessons, newest first."""
        history = LessonHistory(lesson_fingerprints=self.load_known_fingerprints(user_id))
        try:
            lessons = self.list_lessons(user_id, limit=limit, order="desc")
            for lesson in lessons:
                history.lesson_fingerprints.add(lesson.fingerprint)
                for item in lesson.items:
                    if item.kind != "sentence":
                        continue
                    history.sentences.append(item.term)
                    if item.fingerprint:
                        history.sentence_fingerprints.add(item.fingerprint)
        except SQLAlchemyError as e:
            self._read_failed("Lesson history", user_id, e)
        return history

    def record_session_score(self, user_id: str, lesson_id: int | None, score: float) -> SessionScore:
        row = SessionScore(user_id=user_id, lesson_id=lesson_id, score=score)
        self.db.add(row)
        self._commit("session score")
        return row

    def recent_scores(self, user_id: str, limit: int = RECENT_SCORE_LIMIT) -> list[float]:
        """Last ``limit`` session scores, oldest first."""
        try:
            rows = (
                self.db.query(SessionScore.score)
                .filter(SessionScore.user_id == user_id)
                .order_by(SessionScore.id.desc())
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            self._read_failed("Recent scores", user_id, e)
            return []
        return [score for (score,) in reversed(rows)]
