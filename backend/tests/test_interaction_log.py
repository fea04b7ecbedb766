import json
from unittest.mock import patch

from fluentbee.services.interaction_logger import log_interaction
from fluentbee.services.llm import _log_call


def _read(path_glob, tmp_path):
    log_files = list(tmp_path.glob(path_glob))
    assert len(log_files) == 1
    with open(log_files[0]) as f:
        return [json.loads(line) for line in f]


def test_log_interaction(tmp_path):
    with patch("fluentbee.services.interaction_logger.settings") as mock_settings:
        mock_settings.log_dir = tmp_path
        log_interaction(
            event="lesson_generated",
            user_id="u1",
            lesson_id=42,
            items=10,
            attempts=4,
        )

    entries = _read("interactions_*.jsonl", tmp_path)
    assert len(entries) == 1
    entry = entries[0]
    assert entry["event"] == "lesson_generated"
    assert entry["lesson_id"] == 42
    assert entry["items"] == 10
    assert "ts" in entry


def test_none_fields_dropped(tmp_path):
    with patch("fluentbee.services.interaction_logger.settings") as mock_settings:
        mock_settings.log_dir = tmp_path
        log_interaction(event="vocab_outcome", term="rice", lesson_id=None)

    entry = _read("interactions_*.jsonl", tmp_path)[0]
    assert "lesson_id" not in entry
    assert "user_id" not in entry
    assert entry["term"] == "rice"


def test_log_multiple_interactions(tmp_path):
    with patch("fluentbee.services.interaction_logger.settings") as mock_settings:
        mock_settings.log_dir = tmp_path
        log_interaction(event="vocab_outcome", term="egg", correct=True)
        log_interaction(event="vocab_outcome", term="egg", correct=False)
        log_interaction(event="lesson_degraded", reason="accepted 1/10 items")

    entries = _read("interactions_*.jsonl", tmp_path)
    assert [e["event"] for e in entries] == ["vocab_outcome", "vocab_outcome", "lesson_degraded"]


def test_log_call_writes_jsonl(tmp_path):
    _log_call(tmp_path, "gpt-4o-mini", False, 1.234, error="timeout", prompt_length=50, task_type="lesson_candidates")

    entry = _read("llm_calls_*.jsonl", tmp_path)[0]
    assert entry["model"] == "gpt-4o-mini"
    assert entry["success"] is False
    assert entry["response_time_s"] == 1.23
    assert entry["task_type"] == "lesson_candidates"
