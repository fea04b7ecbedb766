from fastapi import APIRouter, Depends

from fluentbee.routers.deps import enforce_rate_limit, get_user_id
from fluentbee.schemas import FeedbackIn, FeedbackOut, TranslateIn, TranslateOut
from fluentbee.services.feedback import score_pronunciation
from fluentbee.services.translation import translate_terms

router = APIRouter(prefix="/api", tags=["practice"])


@router.post("/feedback", response_model=FeedbackOut)
def feedback(
    body: FeedbackIn,
    user_id: str = Depends(get_user_id),
    _identity: str = Depends(enforce_rate_limit),
):
    """Score what the speech recognizer heard against the target line."""
    return score_pronunciation(body.target, body.heard, user_id=user_id)


@router.post("/translate", response_model=TranslateOut)
def translate(
    body: TranslateIn,
    user_id: str = Depends(get_user_id),
    _identity: str = Depends(enforce_rate_limit),
):
    return {"translations": translate_terms(body.terms, user_id=user_id)}
