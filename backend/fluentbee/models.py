from datetime import datetime, timezone
from sqlalchemy import (
    Column, Integer, String, Text, Float, DateTime, ForeignKey, JSON, Boolean, UniqueConstraint
)
from sqlalchemy.orm import relationship

from fluentbee.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Lesson(Base):
    __tablename__ = "lessons"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(128), nullable=False, index=True)
    title = Column(Text, nullable=False)
    level_tag = Column(String(2), nullable=False)  # A0/A1/A2/B1/B2
    category = Column(String(64), nullable=False)
    fingerprint = Column(String(8), nullable=False, index=True)
    status = Column(String(20), default="incomplete", nullable=False)  # incomplete/completed
    is_fallback = Column(Boolean, default=False, server_default="0")
    created_at = Column(DateTime, default=_utcnow)
    completed_at = Column(DateTime, nullable=True)

    items = relationship(
        "LessonItem",
        back_populates="lesson",
        order_by="LessonItem.position",
        cascade="all, delete-orphan",
    )


class LessonItem(Base):
    __tablename__ = "lesson_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    lesson_id = Column(Integer, ForeignKey("lessons.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    kind = Column(String(10), nullable=False, default="sentence")  # word/phrase/sentence/text
    term = Column(Text, nullable=False)
    translation = Column(Text, nullable=True)
    sentence_type = Column(String(10), nullable=True)  # statement/question/request/negation
    fingerprint = Column(String(8), nullable=True, index=True)

    lesson = relationship("Lesson", back_populates="items")


class KnownFingerprint(Base):
    __tablename__ = "known_fingerprints"
    __table_args__ = (UniqueConstraint("user_id", "fingerprint", name="uq_known_fingerprint"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(128), nullable=False, index=True)
    fingerprint = Column(String(8), nullable=False)
    created_at = Column(DateTime, default=_utcnow)


class VocabEntry(Base):
    __tablename__ = "vocab_entries"
    __table_args__ = (UniqueConstraint("user_id", "term", name="uq_vocab_user_term"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(128), nullable=False, index=True)
    term = Column(Text, nullable=False)
    seen_count = Column(Integer, default=0, nullable=False)
    correct_count = Column(Integer, default=0, nullable=False)
    mastery = Column(Integer, default=0, nullable=False)  # 0-5
    last_seen_at = Column(DateTime, nullable=True)
    next_review_at = Column(DateTime, nullable=True, index=True)


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(128), unique=True, nullable=False)
    xp = Column(Integer, default=0, nullable=False)
    # no level column: level is always recomputed from xp
    level_tag = Column(String(2), default="A1", nullable=False)
    streak_count = Column(Integer, default=0, nullable=False)
    last_active_date = Column(String(10), nullable=True)  # ISO date, UTC
    lessons_completed = Column(Integer, default=0, nullable=False)
    next_lesson_index = Column(Integer, default=1, nullable=False)
    active_lesson_id = Column(Integer, ForeignKey("lessons.id"), nullable=True)


class LessonProgress(Base):
    __tablename__ = "lesson_progress"

    id = Column(Integer, primary_key=True, autoincrement=True)
    lesson_id = Column(Integer, ForeignKey("lessons.id"), unique=True, nullable=False)
    completed_indices = Column(JSON, default=list)
    last_index = Column(Integer, default=0, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


class SessionScore(Base):
    __tablename__ = "session_scores"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(128), nullable=False, index=True)
    lesson_id = Column(Integer, ForeignKey("lessons.id"), nullable=True)
    score = Column(Float, nullable=False)
    recorded_at = Column(DateTime, default=_utcnow, index=True)
