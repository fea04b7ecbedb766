"""Batch English -> Thai translation of vocabulary terms.

Terms found in the seed dictionary are answered locally; the rest go to
the model in one call. Terms the model leaves out are simply absent from
the result.
"""

import logging
import time

from fluentbee.config import settings
from fluentbee.errors import ParseFailure, ValidationError
from fluentbee.services.interaction_logger import log_interaction
from fluentbee.services.llm import generate_completion
from fluentbee.services.translation_seed import lookup

logger = logging.getLogger(__name__)

MAX_TERMS = 50

TRANSLATE_SYSTEM_PROMPT = (
    "You translate English terms to Thai. Respond with a JSON object "
    "mapping each input term to its Thai translation."
)


def clean_terms(terms) -> list[str]:
    seen: list[str] = []
    for term in terms or []:
        if not isinstance(term, str):
            continue
        term = " ".join(term.split())
        if term and term not in seen:
            seen.append(term)
    return seen


def translate_terms(terms, user_id: str | None = None) -> dict[str, str]:
    terms = clean_terms(terms)
    if not terms:
        raise ValidationError("No terms")
    if len(terms) > MAX_TERMS:
        raise ValidationError(f"At most {MAX_TERMS} terms per request")

    translations: dict[str, str] = {}
    missing: list[str] = []
    for term in terms:
        seeded = lookup(term)
        if seeded:
            translations[term] = seeded
        else:
            missing.append(term)

    from_model = 0
    if missing:
        try:
            result = generate_completion(
                prompt=", ".join(missing),
                system_prompt=TRANSLATE_SYSTEM_PROMPT,
                json_mode=True,
                temperature=0.2,
                task_type="translate_terms",
                deadline=time.monotonic() + settings.request_timeout_s,
            )
        except ParseFailure as e:
            logger.warning("Translation response unusable: %s", e)
            result = {}
        if isinstance(result, dict):
            for term in missing:
                value = result.get(term)
                if isinstance(value, str) and value.strip():
                    translations[term] = value.strip()
                    from_model += 1

    log_interaction(
        event="terms_translated",
        user_id=user_id,
        requested=len(terms),
        from_seed=len(terms) - len(missing),
        from_model=from_model,
    )
    return translations
