from fastapi import APIRouter, Depends, Query

from fluentbee.routers.deps import get_store, get_user_id
from fluentbee.schemas import VocabEntryOut, VocabOutcomeIn, VocabOutcomeOut
from fluentbee.services.store import LessonStore
from fluentbee.services.vocab_scheduler import due_terms, submit_outcome

router = APIRouter(prefix="/api/vocab", tags=["vocab"])


@router.post("/outcome", response_model=VocabOutcomeOut)
def record_outcome(
    body: VocabOutcomeIn,
    user_id: str = Depends(get_user_id),
    store: LessonStore = Depends(get_store),
):
    entry = submit_outcome(store, user_id, body.term, body.correct)
    return {"entry": entry}


@router.get("/due", response_model=list[VocabEntryOut])
def due(
    limit: int = Query(20, ge=1, le=100),
    user_id: str = Depends(get_user_id),
    store: LessonStore = Depends(get_store),
):
    return due_terms(store, user_id, limit=limit)
