"""Append-only JSONL log of learner-facing events, one file per UTC day.

Events written under settings.log_dir as interactions_YYYY-MM-DD.jsonl:

- lesson_generated: a new lesson was stored (lesson_type, level_tag,
  category, items, attempts, rejection counts by reason)
- lesson_degraded: a fallback lesson was served instead (reason, attempts)
- lesson_completed: score, xp_gained, the new level and next level_tag
- vocab_outcome: one practice answer for a term (correct, mastery,
  next_review_at)
- pronunciation_feedback: what was heard against a target (score, verdict)
- terms_translated: batch translation (requested, from_seed, from_model)
- rate_limited: a request refused by the daily quota (context is the
  caller identity, reset_at)

Fields that are None are dropped from the entry.
"""

import json
from datetime import datetime, timezone
from pathlib import Path

from fluentbee.config import settings


def _get_log_path() -> Path:
    log_dir = settings.log_dir
    log_dir.mkdir(parents=True, exist_ok=True)
    today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    return log_dir / f"interactions_{today}.jsonl"


def log_interaction(
    event: str,
    user_id: str | None = None,
    lesson_id: int | None = None,
    term: str | None = None,
    context: str | None = None,
    **extra,
) -> None:
    entry = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "event": event,
        "user_id": user_id,
        "lesson_id": lesson_id,
        "term": term,
        "context": context,
        **extra,
    }
    entry = {k: v for k, v in entry.items() if v is not None}

    log_path = _get_log_path()
    with open(log_path, "a") as f:
        f.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")
