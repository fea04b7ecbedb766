from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from fluentbee.database import get_db
from fluentbee.errors import RateLimitExceeded
from fluentbee.services.interaction_logger import log_interaction
from fluentbee.services.rate_limiter import RateLimiter, resolve_identity
from fluentbee.services.store import LessonStore

DEFAULT_USER_ID = "local"


def get_user_id(x_user_id: str | None = Header(None)) -> str:
    return (x_user_id or "").strip() or DEFAULT_USER_ID


def get_store(db: Session = Depends(get_db)) -> LessonStore:
    return LessonStore(db)


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def enforce_rate_limit(
    request: Request,
    x_user_id: str | None = Header(None),
    x_forwarded_for: str | None = Header(None),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> str:
    """Count the request against the caller's daily quota; returns the identity."""
    identity = resolve_identity(
        (x_user_id or "").strip() or None,
        x_forwarded_for,
        request.client.host if request.client else None,
    )
    try:
        limiter.check(identity)
    except RateLimitExceeded as e:
        log_interaction(event="rate_limited", context=identity, reset_at=e.reset_at.isoformat())
        raise
    return identity
