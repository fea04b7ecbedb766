"""Tests for the LLM service.

Provider fallback, fence stripping and the single repair round trip,
with litellm mocked out.
"""

import time
from unittest.mock import MagicMock, patch

import pytest

from fluentbee.errors import ParseFailure, UpstreamTimeout
from fluentbee.services.llm import (
    REPAIR_PROMPT,
    VOCAB_REPAIR_PROMPT,
    AllProvidersFailed,
    Candidate,
    _parse_candidates,
    generate_completion,
    parse_json_response,
    request_candidates,
    request_vocab,
    strip_code_fences,
)


class FakeTimeout(Exception):
    pass


def _response(content):
    mock_response = MagicMock()
    mock_response.choices = [MagicMock()]
    mock_response.choices[0].message.content = content
    return mock_response


@patch("fluentbee.services.llm.litellm.completion")
@patch("fluentbee.services.llm._get_api_key")
def test_generate_completion_uses_first_available_model(mock_key, mock_completion):
    mock_key.side_effect = lambda cfg: "fake-key" if cfg["name"] == "gemini" else None
    mock_completion.return_value = _response('{"result": "ok"}')

    result = generate_completion("test prompt", system_prompt="be helpful", timeout=5)

    assert result == {"result": "ok"}
    call_kwargs = mock_completion.call_args.kwargs
    assert "gemini" in call_kwargs["model"]
    assert call_kwargs["timeout"] == 5


@patch("fluentbee.services.llm.litellm.completion")
@patch("fluentbee.services.llm._get_api_key")
def test_fallback_to_next_provider(mock_key, mock_completion):
    mock_key.return_value = "fake-key"
    mock_completion.side_effect = [Exception("OpenAI is down"), _response('{"result": "from gemini"}')]

    result = generate_completion("test prompt")

    assert result == {"result": "from gemini"}
    assert mock_completion.call_count == 2
    assert "gemini" in mock_completion.call_args.kwargs["model"]


@patch("fluentbee.services.llm.litellm.completion")
@patch("fluentbee.services.llm._get_api_key")
def test_all_providers_fail_raises(mock_key, mock_completion):
    mock_key.return_value = "fake-key"
    mock_completion.side_effect = Exception("down")

    with pytest.raises(AllProvidersFailed) as exc:
        generate_completion("test prompt")
    assert exc.value.reason_code == "upstream_failure"
    assert "down" in exc.value.diagnostic


@patch("fluentbee.services.llm.litellm.Timeout", FakeTimeout)
@patch("fluentbee.services.llm.litellm.completion")
@patch("fluentbee.services.llm._get_api_key")
def test_all_timeouts_raise_upstream_timeout(mock_key, mock_completion):
    mock_key.return_value = "fake-key"
    mock_completion.side_effect = FakeTimeout("slow")

    with pytest.raises(UpstreamTimeout) as exc:
        generate_completion("test prompt", timeout=1)
    assert exc.value.reason_code == "upstream_timeout"
    assert mock_completion.call_count == 3


@patch("fluentbee.services.llm._get_api_key")
def test_no_provider_configured(mock_key):
    mock_key.return_value = None
    with pytest.raises(AllProvidersFailed, match="No LLM provider configured"):
        generate_completion("test prompt")


@patch("fluentbee.services.llm.litellm.completion")
@patch("fluentbee.services.llm._get_api_key")
def test_parse_failure_does_not_fall_through(mock_key, mock_completion):
    mock_key.return_value = "fake-key"
    mock_completion.return_value = _response("Sure! Here are your sentences.")

    with pytest.raises(ParseFailure) as exc:
        generate_completion("test prompt")
    assert mock_completion.call_count == 1
    assert exc.value.raw == "Sure! Here are your sentences."


@patch("fluentbee.services.llm.litellm.completion")
@patch("fluentbee.services.llm._get_api_key")
def test_repair_turn_replays_prior_output(mock_key, mock_completion):
    mock_key.return_value = "fake-key"
    mock_completion.return_value = _response('{"items": []}')

    generate_completion("make items", system_prompt="sys", prior_output="oops", followup="fix it")

    messages = mock_completion.call_args.kwargs["messages"]
    assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
    assert messages[2]["content"] == "oops"
    assert messages[3]["content"] == "fix it"


def test_strip_code_fences():
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('```\n[1, 2]\n```') == "[1, 2]"
    assert strip_code_fences('  {"a": 1} ') == '{"a": 1}'


def test_parse_json_response_tolerates_trailing_prose():
    assert parse_json_response('{"items": [1]}\nHope this helps!') == {"items": [1]}


def test_parse_json_response_empty():
    with pytest.raises(ParseFailure):
        parse_json_response("   ")


def test_parse_candidates_accepts_aliases():
    result = _parse_candidates({"sentences": [
        {"term": "Hello there, how are you today?", "thai": "สวัสดี"},
        {"en": ""},
        "junk",
    ]})
    assert result == [Candidate(en="Hello there, how are you today?", th="สวัสดี")]


def test_parse_candidates_rejects_missing_items():
    with pytest.raises(ParseFailure):
        _parse_candidates({"data": []})
    with pytest.raises(ParseFailure):
        _parse_candidates({"items": [{"th": "ไม่มี"}]})


@patch("fluentbee.services.llm.generate_completion")
def test_request_candidates_builds_prompt(mock_completion):
    mock_completion.return_value = {"items": [{"en": "We eat rice every day at home.", "th": "เรา"}]}

    result = request_candidates(
        "A2", "food", 12,
        avoid_sentences=["I like tea."],
        avoid_tokens=["tea", "coffee"],
        timeout=7,
    )

    assert result[0].en == "We eat rice every day at home."
    kwargs = mock_completion.call_args.kwargs
    assert "Count: 12" in kwargs["prompt"]
    assert "I like tea." in kwargs["prompt"]
    assert "tea, coffee" in kwargs["prompt"]
    assert "8-14 words" in kwargs["system_prompt"]
    assert kwargs["timeout"] == 7


@patch("fluentbee.services.llm.generate_completion")
def test_request_candidates_repairs_once(mock_completion):
    mock_completion.side_effect = [
        ParseFailure("bad", raw="not json at all"),
        {"items": [{"en": "Please open the door for me now.", "th": "กรุณาเปิดประตู"}]},
    ]

    result = request_candidates("A1", "routines", 10)

    assert len(result) == 1
    assert mock_completion.call_count == 2
    repair_kwargs = mock_completion.call_args.kwargs
    assert repair_kwargs["prior_output"] == "not json at all"
    assert repair_kwargs["followup"] == REPAIR_PROMPT


@patch("fluentbee.services.llm.generate_completion")
def test_request_candidates_gives_up_after_one_repair(mock_completion):
    mock_completion.side_effect = [
        ParseFailure("bad", raw="nope"),
        {"unexpected": True},
    ]

    with pytest.raises(ParseFailure):
        request_candidates("A1", "routines", 10)
    assert mock_completion.call_count == 2


def _sleep_then_time_out(**kwargs):
    time.sleep(kwargs["timeout"])
    raise FakeTimeout("slow")


@patch("fluentbee.services.llm.litellm.Timeout", FakeTimeout)
@patch("fluentbee.services.llm.litellm.completion")
@patch("fluentbee.services.llm._get_api_key")
def test_deadline_bounds_whole_provider_chain(mock_key, mock_completion):
    mock_key.return_value = "fake-key"
    mock_completion.side_effect = _sleep_then_time_out

    start = time.monotonic()
    with pytest.raises(UpstreamTimeout) as exc:
        generate_completion("test prompt", timeout=0.4, deadline=start + 0.5)
    elapsed = time.monotonic() - start

    # first provider gets 0.4s, the next only what is left, the last never starts
    assert elapsed < 0.8
    assert mock_completion.call_count <= 2
    timeouts = [c.kwargs["timeout"] for c in mock_completion.call_args_list]
    assert timeouts[0] <= 0.4
    assert sum(timeouts) <= 0.5
    assert "deadline passed" in exc.value.diagnostic


@patch("fluentbee.services.llm.litellm.completion")
@patch("fluentbee.services.llm._get_api_key")
def test_expired_deadline_starts_no_provider_call(mock_key, mock_completion):
    mock_key.return_value = "fake-key"

    with pytest.raises(UpstreamTimeout):
        generate_completion("test prompt", deadline=time.monotonic() - 1)
    mock_completion.assert_not_called()


@patch("fluentbee.services.llm.litellm.completion")
@patch("fluentbee.services.llm._get_api_key")
def test_call_timeout_shrinks_to_time_left(mock_key, mock_completion):
    mock_key.return_value = "fake-key"
    mock_completion.return_value = _response('{"result": "ok"}')

    generate_completion("test prompt", timeout=25, deadline=time.monotonic() + 2)

    assert mock_completion.call_args.kwargs["timeout"] <= 2


@patch("fluentbee.services.llm.generate_completion")
def test_repair_skipped_once_deadline_passed(mock_completion):
    def slow_parse_failure(**kwargs):
        time.sleep(0.1)
        raise ParseFailure("bad", raw="not json")

    mock_completion.side_effect = slow_parse_failure

    with pytest.raises(UpstreamTimeout):
        request_candidates("A1", "routines", 10, deadline=time.monotonic() + 0.05)
    assert mock_completion.call_count == 1


@patch("fluentbee.services.llm.generate_completion")
def test_request_candidates_forwards_deadline_to_repair(mock_completion):
    mock_completion.side_effect = [
        ParseFailure("bad", raw="nope"),
        {"items": [{"en": "Please open the door for me now.", "th": "กรุณาเปิดประตู"}]},
    ]
    deadline = time.monotonic() + 30

    request_candidates("A1", "routines", 10, deadline=deadline)

    assert [c.kwargs["deadline"] for c in mock_completion.call_args_list] == [deadline, deadline]


@patch("fluentbee.services.llm.generate_completion")
def test_request_vocab_builds_prompt_and_repairs(mock_completion):
    mock_completion.side_effect = [
        ParseFailure("bad", raw="words: rice, tea"),
        {"new_vocab": [{"en": "rice cooker", "th": "หม้อหุงข้าว", "pos": "noun"}]},
    ]

    result = request_vocab("A1", "food", 8, review_from=["rice"], trouble_words=["tea"])

    assert result == [Candidate(en="rice cooker", th="หม้อหุงข้าว")]
    first, repair = (c.kwargs for c in mock_completion.call_args_list)
    assert "New vocab target count: 8" in first["prompt"]
    assert "Known items to avoid: rice." in first["prompt"]
    assert "Trouble words from recent practice: tea." in first["prompt"]
    assert "1-4 words" in first["system_prompt"]
    assert repair["followup"] == VOCAB_REPAIR_PROMPT
    assert repair["task_type"] == "vocab_candidates_repair"
