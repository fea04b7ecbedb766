import asyncio
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fluentbee.config import settings
from fluentbee.database import engine, Base
from fluentbee.errors import LessonEngineError, RateLimitExceeded
from fluentbee.routers import lessons, practice, vocab, profile
from fluentbee.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    alembic_ini = Path(__file__).resolve().parent.parent / "alembic.ini"
    if alembic_ini.exists() and os.environ.get("FLUENTBEE_SKIP_MIGRATIONS") != "1":
        # Dispose engine pool to avoid SQLite locking conflicts with alembic
        engine.dispose()
        await asyncio.to_thread(_run_alembic, alembic_ini)
    else:
        Base.metadata.create_all(bind=engine)
    app.state.rate_limiter = RateLimiter(settings.daily_request_limit, settings.rate_limit_max_keys)
    yield


def _run_alembic(alembic_ini: Path):
    from alembic import command
    from alembic.config import Config
    alembic_cfg = Config(str(alembic_ini))
    alembic_cfg.set_main_option("script_location", str(alembic_ini.parent / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.database_url)
    command.upgrade(alembic_cfg, "head")


app = FastAPI(title="FluentBee Lesson API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LessonEngineError)
def lesson_engine_error(request: Request, exc: LessonEngineError):
    if exc.status_code >= 500:
        logger.error("%s on %s: %s (%s)", exc.reason_code, request.url.path, exc, exc.diagnostic)
    body = {"error": exc.reason_code, "detail": exc.diagnostic or str(exc)}
    headers = None
    if isinstance(exc, RateLimitExceeded):
        body["reset_at"] = exc.reset_at.isoformat()
        headers = {"Retry-After": str(max(0, int((exc.reset_at - datetime.now(timezone.utc)).total_seconds())))}
    return JSONResponse(status_code=exc.status_code, content=body, headers=headers)


app.include_router(lessons.router)
app.include_router(vocab.router)
app.include_router(profile.router)
app.include_router(practice.router)


@app.get("/")
def root():
    return {"app": "fluentbee", "version": "0.1.0"}
