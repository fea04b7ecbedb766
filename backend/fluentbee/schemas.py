from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field


class LessonItemOut(BaseModel):
    position: int
    kind: str
    term: str
    translation: Optional[str] = None
    sentence_type: Optional[str] = None
    model_config = {"from_attributes": True}


class LessonOut(BaseModel):
    id: int
    title: str
    level_tag: str
    category: str
    fingerprint: str
    status: str
    is_fallback: bool = False
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    items: list[LessonItemOut] = []
    model_config = {"from_attributes": True}


class LessonSummaryOut(BaseModel):
    id: int
    title: str
    level_tag: str
    category: str
    status: str
    is_fallback: bool = False
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    model_config = {"from_attributes": True}


class NewLessonIn(BaseModel):
    category: Optional[str] = Field(None, max_length=64)
    level: Optional[Literal["A0", "A1", "A2", "B1", "B2"]] = None
    count: Optional[int] = Field(None, ge=4, le=12)
    avoid_terms: list[str] = []
    lesson_type: Literal["sentences", "vocab"] = "sentences"
    review_from: list[str] = []
    trouble_words: list[str] = []


class NewLessonOut(BaseModel):
    lesson: LessonOut


class CompleteLessonIn(BaseModel):
    score: float = Field(..., ge=0.0, le=1.0)


class LevelOut(BaseModel):
    level: int
    xp_into_level: int
    xp_to_next: int


class DifficultyOut(BaseModel):
    level_tag: str
    item_count: int


class CompleteLessonOut(BaseModel):
    lesson_id: int
    xp_gained: int
    xp: int
    level: LevelOut
    streak_count: int
    lessons_completed: int
    next_difficulty: DifficultyOut
    model_config = {"from_attributes": True}


class LessonProgressIn(BaseModel):
    completed_indices: list[int] = []
    last_index: int = Field(0, ge=0)


class LessonProgressOut(BaseModel):
    lesson_id: int
    completed_indices: list[int] = []
    last_index: int = 0
    updated_at: Optional[datetime] = None
    model_config = {"from_attributes": True}


class VocabOutcomeIn(BaseModel):
    term: str = Field(..., min_length=1, max_length=200)
    correct: bool


class VocabEntryOut(BaseModel):
    term: str
    seen_count: int
    correct_count: int
    mastery: int
    last_seen_at: Optional[datetime] = None
    next_review_at: Optional[datetime] = None
    model_config = {"from_attributes": True}


class VocabOutcomeOut(BaseModel):
    entry: VocabEntryOut


class ProfileOut(BaseModel):
    user_id: str
    xp: int
    level: LevelOut
    level_tag: str
    streak_count: int
    last_active_date: Optional[str] = None
    lessons_completed: int
    next_lesson_index: int
    active_lesson_id: Optional[int] = None


class FeedbackIn(BaseModel):
    target: str = Field(..., min_length=1, max_length=500)
    heard: str = Field("", max_length=500)


class FeedbackOut(BaseModel):
    score: int
    verdict: str
    tip: str
    highlight: str = ""
    model_config = {"from_attributes": True}


class TranslateIn(BaseModel):
    terms: list[str] = Field(..., min_length=1, max_length=50)


class TranslateOut(BaseModel):
    translations: dict[str, str]
