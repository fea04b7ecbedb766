"""Pronunciation feedback: compare what the recognizer heard with a target line.

The model returns a 0-100 score, a verdict, a short tip and the part of the
line to work on. Missing or malformed fields fall back to safe defaults
rather than failing the request; provider failures still propagate.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any

from fluentbee.config import settings
from fluentbee.errors import ParseFailure, ValidationError
from fluentbee.services.interaction_logger import log_interaction
from fluentbee.services.llm import generate_completion

logger = logging.getLogger(__name__)

VERDICTS = ("match", "close", "incorrect")
DEFAULT_VERDICT = "incorrect"
DEFAULT_TIP = "Try again slowly."
MAX_TIP_CHARS = 120

FEEDBACK_SYSTEM_PROMPT = (
    "You are a concise ESL tutor for a Thai L1 learner. Return JSON with fields: "
    "score (0-100), verdict ('match'|'close'|'incorrect'), tip (<=120 chars), "
    "and highlight (string showing the part to improve). No extra text."
)


@dataclass
class Feedback:
    score: int
    verdict: str
    tip: str
    highlight: str


def _as_score(value: Any) -> int:
    try:
        score = round(float(value))
    except (TypeError, ValueError):
        return 0
    return min(max(score, 0), 100)


def normalize_feedback(result: Any) -> Feedback:
    data = result if isinstance(result, dict) else {}
    verdict = str(data.get("verdict") or "").strip().lower()
    tip = str(data.get("tip") or "").strip() or DEFAULT_TIP
    return Feedback(
        score=_as_score(data.get("score")),
        verdict=verdict if verdict in VERDICTS else DEFAULT_VERDICT,
        tip=tip[:MAX_TIP_CHARS],
        highlight=str(data.get("highlight") or "").strip(),
    )


def score_pronunciation(target: str, heard: str = "", user_id: str | None = None) -> Feedback:
    target = " ".join((target or "").split())
    if not target:
        raise ValidationError("target is required")
    heard = " ".join((heard or "").split())

    prompt = (
        f'Target: "{target}"\nHeard: "{heard}"\n'
        "Evaluate pronunciation similarity (focus on intelligibility, "
        "key sounds like /v/ vs /w/, articles a/an/the)."
    )
    try:
        result = generate_completion(
            prompt=prompt,
            system_prompt=FEEDBACK_SYSTEM_PROMPT,
            json_mode=True,
            temperature=0.2,
            task_type="pronunciation_feedback",
            deadline=time.monotonic() + settings.request_timeout_s,
        )
    except ParseFailure as e:
        logger.warning("Feedback response unusable (%s); using defaults", e)
        result = {}

    feedback = normalize_feedback(result)
    log_interaction(
        event="pronunciation_feedback",
        user_id=user_id,
        term=target,
        context=heard or None,
        score=feedback.score,
        verdict=feedback.verdict,
    )
    return feedback
