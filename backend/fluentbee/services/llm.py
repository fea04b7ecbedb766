"""LLM service using LiteLLM with multi-provider fallback.

Lesson candidates: GPT-4o-mini first, then Gemini Flash, then Claude Haiku,
each tried only when its API key is configured. Every call carries a hard
timeout. Responses are free text expected to contain JSON, optionally
wrapped in markdown fences.

Failure handling at this layer:
- provider error / non-2xx  -> next provider, then AllProvidersFailed
- every provider timed out  -> UpstreamTimeout
- deadline passed           -> UpstreamTimeout; no further provider or
  repair call starts, and each call gets only the time that is left
- unparseable / schema-invalid JSON -> ParseFailure (no provider fallback);
  request_candidates() gives it exactly one repair round trip
"""

import json
import logging
import os
import re
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import litellm
from pydantic import BaseModel

from fluentbee.config import settings
from fluentbee.errors import ParseFailure, UpstreamFailure, UpstreamTimeout

logger = logging.getLogger(__name__)

litellm.set_verbose = False


class LLMError(UpstreamFailure):
    pass


class AllProvidersFailed(LLMError):
    pass


class Candidate(BaseModel):
    en: str
    th: str = ""


MODELS = [
    {
        "name": "openai",
        "model": "gpt-4o-mini",
        "key_env": "OPENAI_API_KEY",
        "key_setting": "openai_key",
    },
    {
        "name": "gemini",
        "model": "gemini/gemini-2.5-flash",
        "key_env": "GEMINI_API_KEY",
        "key_setting": "gemini_key",
    },
    {
        "name": "anthropic",
        "model": "claude-haiku-4-5",
        "key_env": "ANTHROPIC_API_KEY",
        "key_setting": "anthropic_api_key",
    },
]


def _get_api_key(model_config: dict) -> str | None:
    """Get API key from settings or environment."""
    key = getattr(settings, model_config["key_setting"], "")
    if key:
        return key
    return os.environ.get(model_config["key_env"], "") or None


def _log_call(
    log_dir: Path,
    model: str,
    success: bool,
    response_time: float,
    error: str | None = None,
    prompt_length: int = 0,
    task_type: str | None = None,
) -> None:
    """Append a log entry for the LLM call."""
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"llm_calls_{datetime.now(timezone.utc):%Y-%m-%d}.jsonl"
    entry = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "event": "llm_call",
        "model": model,
        "success": success,
        "response_time_s": round(response_time, 2),
        "error": error,
        "prompt_length": prompt_length,
    }
    if task_type:
        entry["task_type"] = task_type
    with open(log_file, "a") as f:
        f.write(json.dumps(entry) + "\n")


def strip_code_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = re.sub(r"^```(?:json)?\s*", "", text, flags=re.IGNORECASE)
        text = re.sub(r"\s*```$", "", text)
    return text


def parse_json_response(content: str) -> Any:
    """Parse model output as JSON after stripping markdown fences."""
    text = strip_code_fences(content or "")
    if not text:
        raise ParseFailure("empty response", raw=content or "")
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    # Some models append prose after the JSON body
    try:
        return json.JSONDecoder().raw_decode(text)[0]
    except json.JSONDecodeError:
        raise ParseFailure("response is not valid JSON", raw=content)


def generate_completion(
    prompt: str,
    system_prompt: str = "",
    prior_output: str | None = None,
    followup: str | None = None,
    json_mode: bool = True,
    temperature: float = 0.7,
    timeout: float | None = None,
    model_override: str | None = None,
    task_type: str | None = None,
    deadline: float | None = None,
) -> Any:
    """Call the LLM with automatic fallback across providers.

    Returns parsed JSON when json_mode=True, otherwise the raw content
    wrapped as {"content": "..."}.

    prior_output/followup replay a previous assistant turn and append a
    new user turn after it (used for repair round trips).

    deadline is an absolute time.monotonic() value. Each provider call gets
    min(timeout, time left); once nothing is left the chain stops with
    UpstreamTimeout.
    """
    if timeout is None:
        timeout = settings.generator_timeout_s

    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": prompt})
    if prior_output is not None:
        messages.append({"role": "assistant", "content": prior_output})
        messages.append({"role": "user", "content": followup or prompt})

    if model_override:
        models_to_try = [m for m in MODELS if m["name"] == model_override]
        if not models_to_try:
            raise LLMError(f"Unknown model override: {model_override}")
    else:
        models_to_try = MODELS

    errors: list[str] = []
    timeouts: list[str] = []
    content: str | None = None
    out_of_time = False

    for model_config in models_to_try:
        api_key = _get_api_key(model_config)
        if not api_key:
            continue

        call_timeout = timeout
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                timeouts.append(f"{model_config['name']}: skipped, deadline passed")
                out_of_time = True
                break
            call_timeout = min(timeout, remaining)

        start = time.time()
        try:
            kwargs: dict[str, Any] = {
                "model": model_config["model"],
                "messages": messages,
                "temperature": temperature,
                "timeout": call_timeout,
                "api_key": api_key,
            }
            if json_mode:
                kwargs["response_format"] = {"type": "json_object"}

            response = litellm.completion(**kwargs)
            elapsed = time.time() - start
            content = response.choices[0].message.content or ""
            _log_call(
                settings.log_dir,
                model_config["model"],
                True,
                elapsed,
                prompt_length=len(prompt),
                task_type=task_type,
            )
            break

        except litellm.Timeout as e:
            elapsed = time.time() - start
            timeouts.append(f"{model_config['name']}: timed out after {call_timeout:.1f}s")
            _log_call(
                settings.log_dir,
                model_config["model"],
                False,
                elapsed,
                error=f"timeout: {e}",
                prompt_length=len(prompt),
                task_type=task_type,
            )
        except Exception as e:
            elapsed = time.time() - start
            errors.append(f"{model_config['name']}: {e}")
            _log_call(
                settings.log_dir,
                model_config["model"],
                False,
                elapsed,
                error=str(e),
                prompt_length=len(prompt),
                task_type=task_type,
            )

    if content is None:
        if out_of_time or (timeouts and not errors):
            raise UpstreamTimeout(
                "LLM call timed out", diagnostic="; ".join(timeouts)
            )
        if not errors and not timeouts:
            raise AllProvidersFailed("No LLM provider configured")
        raise AllProvidersFailed(
            "All LLM providers failed", diagnostic="; ".join(errors + timeouts)
        )

    if json_mode:
        return parse_json_response(content)
    return {"content": content}


LEVEL_RULES = {
    "A0": "Use only very common words (A0). Keep grammar to simple present.",
    "A1": "Use common everyday words (A1). Simple sentences, present and past tense.",
    "A2": "Use frequent A2 vocabulary and collocations. Basic grammar (present/past/future).",
    "B1": "Use B1 vocabulary and common patterns. Light variation in structure.",
    "B2": "Use B2 vocabulary and natural phrasing. Varied clause structure.",
}

LESSON_SYSTEM_PROMPT = """\
You generate short English practice sentences for Thai learners.
{level_rule}

Rules:
- Each English sentence is {min_words}-{max_words} words.
- Each sentence is complete, starts with a capital letter and ends with ., ? or !.
- English text is ASCII only.
- Every sentence has a natural, polite Thai translation.
- Include about 4 statements, 3 questions, 2 polite requests (starting with "Please") \
and 1 negation for every 10 sentences.
- Never start two sentences with the same word.
- Everyday topics only. No slang or rare words.

Respond with JSON only: {{"items": [{{"type": "s", "en": "...", "th": "..."}}, ...]}}"""

REPAIR_PROMPT = (
    "Your previous output was not valid JSON per the schema. "
    'Re-output JSON ONLY in the form {"items": [{"type": "s", "en": "...", "th": "..."}]}. '
    "Do not include commentary or markdown."
)


def _parse_candidates(result: Any) -> list[Candidate]:
    """Validate the response schema; ParseFailure when no usable items."""
    if isinstance(result, list):
        raw_list = result
    elif isinstance(result, dict):
        raw_list = next(
            (result[key] for key in ("items", "sentences", "new_vocab") if key in result), None
        )
    else:
        raw_list = None
    if not isinstance(raw_list, list):
        raise ParseFailure("response has no items list", raw=json.dumps(result, ensure_ascii=False))

    candidates: list[Candidate] = []
    for item in raw_list:
        if not isinstance(item, dict):
            continue
        en = str(item.get("en") or item.get("term") or "").strip()
        th = str(item.get("th") or item.get("thai") or "").strip()
        if en:
            candidates.append(Candidate(en=en, th=th))

    if not candidates:
        raise ParseFailure("response items are missing required fields", raw=json.dumps(result, ensure_ascii=False))
    return candidates


def _complete_with_repair(
    prompt: str,
    system_prompt: str,
    parse,
    repair_prompt: str,
    task_type: str,
    timeout: float | None = None,
    model_override: str | None = None,
    deadline: float | None = None,
):
    """One JSON completion, plus exactly one repair round trip on ParseFailure."""
    try:
        result = generate_completion(
            prompt=prompt,
            system_prompt=system_prompt,
            json_mode=True,
            timeout=timeout,
            model_override=model_override,
            task_type=task_type,
            deadline=deadline,
        )
        return parse(result)
    except ParseFailure as e:
        if deadline is not None and deadline - time.monotonic() <= 0:
            raise UpstreamTimeout("No time left for a repair call", diagnostic=str(e))
        logger.warning("%s response unusable (%s); attempting repair", task_type, e)
        repaired = generate_completion(
            prompt=prompt,
            system_prompt=system_prompt,
            prior_output=e.raw,
            followup=repair_prompt,
            json_mode=True,
            timeout=timeout,
            model_override=model_override,
            task_type=f"{task_type}_repair",
            deadline=deadline,
        )
        return parse(repaired)


def request_candidates(
    level_tag: str,
    category: str,
    count: int,
    avoid_sentences: list[str] | None = None,
    avoid_tokens: list[str] | None = None,
    word_band: tuple[int, int] = (8, 14),
    timeout: float | None = None,
    model_override: str | None = None,
    deadline: float | None = None,
) -> list[Candidate]:
    """Ask the generator for ``count`` candidate sentences.

    The avoid lists are advisory only; the caller still dedups every
    candidate itself.
    """
    system_prompt = LESSON_SYSTEM_PROMPT.format(
        level_rule=LEVEL_RULES.get(level_tag, LEVEL_RULES["A1"]),
        min_words=word_band[0],
        max_words=word_band[1],
    )
    prompt = f"Level: {level_tag}. Category: {category}. Count: {count}."
    if avoid_sentences:
        prompt += f"\nAvoid sentences: {' | '.join(avoid_sentences)}."
    if avoid_tokens:
        prompt += f"\nDiscourage tokens: {', '.join(avoid_tokens)}."

    return _complete_with_repair(
        prompt,
        system_prompt,
        parse=_parse_candidates,
        repair_prompt=REPAIR_PROMPT,
        task_type="lesson_candidates",
        timeout=timeout,
        model_override=model_override,
        deadline=deadline,
    )


VOCAB_SYSTEM_PROMPT = """\
You generate English vocabulary for Thai learners.
{level_rule}

Rules:
- Each item is a single word or a short phrase of {min_words}-{max_words} words.
- English text is ASCII only, lowercase unless it is a proper noun.
- Every item has a short, natural Thai translation.
- Do NOT repeat any item the learner already knows.
- Everyday topics only. No slang or rare words.

Respond with JSON only: {{"new_vocab": [{{"en": "...", "th": "...", "pos": "noun|verb|adj|adv|phrase"}}, ...]}}"""

VOCAB_REPAIR_PROMPT = (
    "Your previous output was not valid JSON per the schema. "
    'Re-output JSON ONLY in the form {"new_vocab": [{"en": "...", "th": "...", "pos": "..."}]}. '
    "Do not include commentary or markdown."
)


def request_vocab(
    level_tag: str,
    category: str,
    count: int,
    review_from: list[str] | None = None,
    trouble_words: list[str] | None = None,
    word_band: tuple[int, int] = (1, 4),
    timeout: float | None = None,
    model_override: str | None = None,
    deadline: float | None = None,
) -> list[Candidate]:
    """Ask the generator for ``count`` new words or short phrases.

    review_from lists terms the learner already has; trouble_words are
    terms they recently got wrong, which the model may build around.
    """
    system_prompt = VOCAB_SYSTEM_PROMPT.format(
        level_rule=LEVEL_RULES.get(level_tag, LEVEL_RULES["A1"]),
        min_words=word_band[0],
        max_words=word_band[1],
    )
    prompt = f"Level: {level_tag}. Theme: {category}. New vocab target count: {count}."
    if review_from:
        prompt += f"\nKnown items to avoid: {', '.join(review_from)}."
    if trouble_words:
        prompt += f"\nTrouble words from recent practice: {', '.join(trouble_words)}."

    return _complete_with_repair(
        prompt,
        system_prompt,
        parse=_parse_candidates,
        repair_prompt=VOCAB_REPAIR_PROMPT,
        task_type="vocab_candidates",
        timeout=timeout,
        model_override=model_override,
        deadline=deadline,
    )
