import logging
from typing import Literal

from fastapi import APIRouter, Depends, Query

from fluentbee.errors import ValidationError
from fluentbee.routers.deps import enforce_rate_limit, get_store, get_user_id
from fluentbee.schemas import (
    CompleteLessonIn,
    CompleteLessonOut,
    LessonOut,
    LessonProgressIn,
    LessonProgressOut,
    LessonSummaryOut,
    NewLessonIn,
    NewLessonOut,
)
from fluentbee.services.lesson_service import create_next_lesson
from fluentbee.services.progress import complete_lesson
from fluentbee.services.store import LessonStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/lessons", tags=["lessons"])


@router.post("/new", response_model=NewLessonOut)
def new_lesson(
    body: NewLessonIn,
    user_id: str = Depends(get_user_id),
    _identity: str = Depends(enforce_rate_limit),
    store: LessonStore = Depends(get_store),
):
    """Generate a fresh lesson that does not repeat the learner's history.

    lesson_type "vocab" returns new words and phrases instead of sentences.
    Served from the static fallback list or the seed dictionary
    (is_fallback=true) when generation is exhausted and the fallback is
    enabled.
    """
    lesson = create_next_lesson(
        store,
        user_id,
        category=body.category,
        count=body.count,
        level_tag=body.level,
        avoid_terms=body.avoid_terms,
        lesson_type=body.lesson_type,
        review_from=body.review_from,
        trouble_words=body.trouble_words,
    )
    return {"lesson": lesson}


@router.get("", response_model=list[LessonSummaryOut])
def list_lessons(
    limit: int = Query(20, ge=1, le=100),
    order: Literal["asc", "desc"] = Query("desc"),
    user_id: str = Depends(get_user_id),
    store: LessonStore = Depends(get_store),
):
    return store.list_lessons(user_id, limit=limit, order=order)


@router.get("/{lesson_id}", response_model=LessonOut)
def get_lesson(
    lesson_id: int,
    user_id: str = Depends(get_user_id),
    store: LessonStore = Depends(get_store),
):
    return store.get_lesson(user_id, lesson_id)


@router.post("/{lesson_id}/complete", response_model=CompleteLessonOut)
def complete(
    lesson_id: int,
    body: CompleteLessonIn,
    user_id: str = Depends(get_user_id),
    store: LessonStore = Depends(get_store),
):
    return complete_lesson(store, user_id, lesson_id, body.score)


@router.get("/{lesson_id}/progress", response_model=LessonProgressOut)
def get_progress(
    lesson_id: int,
    user_id: str = Depends(get_user_id),
    store: LessonStore = Depends(get_store),
):
    lesson = store.get_lesson(user_id, lesson_id)
    progress = store.load_lesson_progress(lesson.id)
    if progress is None:
        return {"lesson_id": lesson.id, "completed_indices": [], "last_index": 0}
    return progress


@router.put("/{lesson_id}/progress", response_model=LessonProgressOut)
def put_progress(
    lesson_id: int,
    body: LessonProgressIn,
    user_id: str = Depends(get_user_id),
    store: LessonStore = Depends(get_store),
):
    lesson = store.get_lesson(user_id, lesson_id)
    size = len(lesson.items)
    out_of_range = [i for i in body.completed_indices if not 0 <= i < size]
    if out_of_range or (size and body.last_index >= size):
        raise ValidationError(f"Item index out of range for a {size}-item lesson")
    return store.save_lesson_progress(lesson.id, body.completed_indices, body.last_index)
