from dataclasses import asdict

from fastapi import APIRouter, Depends

from fluentbee.routers.deps import get_store, get_user_id
from fluentbee.schemas import ProfileOut
from fluentbee.services.progress import compute_level
from fluentbee.services.store import LessonStore

router = APIRouter(prefix="/api/profile", tags=["profile"])


@router.get("", response_model=ProfileOut)
def get_profile(
    user_id: str = Depends(get_user_id),
    store: LessonStore = Depends(get_store),
):
    profile = store.load_profile(user_id)
    return {
        "user_id": profile.user_id,
        "xp": profile.xp,
        "level": asdict(compute_level(profile.xp)),
        "level_tag": profile.level_tag,
        "streak_count": profile.streak_count,
        "last_active_date": profile.last_active_date,
        "lessons_completed": profile.lessons_completed,
        "next_lesson_index": profile.next_lesson_index,
        "active_lesson_id": profile.active_lesson_id,
    }
