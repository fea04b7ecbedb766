from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from fluentbee.errors import NotFound, PersistenceError, ValidationError
from fluentbee.services.lesson_generator import GeneratedItem, GeneratedLesson
from fluentbee.services.sentence_classifier import SentenceType


def _generated(fingerprint="0badc0de", terms=("We cook rice together on Sunday evenings at home.",)):
    items = [
        GeneratedItem(
            term=t, translation="", sentence_type=SentenceType.STATEMENT,
            fingerprint=f"{i:08x}", tokens=[],
        )
        for i, t in enumerate(terms)
    ]
    return GeneratedLesson(
        title="Food: Sentences", level_tag="A2", category="food",
        items=items, fingerprint=fingerprint, attempts=1,
    )


def _db_down(*args, **kwargs):
    raise OperationalError("SELECT", {}, Exception("database is locked"))


def test_profile_created_with_defaults(store):
    profile = store.load_profile("u1")
    assert profile.xp == 0
    assert profile.level_tag == "A1"
    assert profile.next_lesson_index == 1
    assert not hasattr(profile, "level")


def test_profile_defaults_override(store):
    profile = store.load_profile("u2", {"level_tag": "B1", "level": 7})
    assert profile.level_tag == "B1"


def test_save_profile_rejects_level(store):
    with pytest.raises(ValidationError):
        store.save_profile("u1", {"level": 3})
    with pytest.raises(ValidationError):
        store.save_profile("u1", {"favorite_color": "blue"})


def test_save_profile_partial(store):
    store.save_profile("u1", {"xp": 40})
    profile = store.save_profile("u1", {"streak_count": 2})
    assert (profile.xp, profile.streak_count) == (40, 2)


def test_fingerprints_idempotent(store):
    store.record_fingerprint("u1", "abcd1234")
    store.record_fingerprint("u1", "abcd1234")
    assert store.load_known_fingerprints("u1") == {"abcd1234"}
    assert store.load_known_fingerprints("u2") == set()


def test_known_fingerprints_fail_soft(store):
    with patch.object(store.db, "query", side_effect=_db_down):
        assert store.load_known_fingerprints("u1") == set()


def test_recent_scores_fail_soft(store):
    with patch.object(store.db, "query", side_effect=_db_down):
        assert store.recent_scores("u1") == []


def test_writes_fail_loud(store):
    with patch.object(store.db, "commit", side_effect=_db_down):
        with pytest.raises(PersistenceError) as exc:
            store.record_session_score("u1", None, 0.5)
    assert exc.value.status_code == 500
    assert "locked" in exc.value.diagnostic


def test_save_and_get_lesson(store):
    lesson = store.save_lesson("u1", _generated(terms=("First sentence here.", "Second sentence here.")))
    fetched = store.get_lesson("u1", lesson.id)
    assert [i.term for i in fetched.items] == ["First sentence here.", "Second sentence here."]
    assert [i.position for i in fetched.items] == [0, 1]
    assert fetched.items[0].sentence_type == "statement"
    assert fetched.status == "incomplete"


def test_get_lesson_scoped_to_user(store):
    lesson = store.save_lesson("u1", _generated())
    with pytest.raises(NotFound):
        store.get_lesson("u2", lesson.id)
    with pytest.raises(NotFound):
        store.get_lesson("u1", 9999)


def test_list_lessons_order_and_limit(store):
    ids = [store.save_lesson("u1", _generated(fingerprint=f"{i:08x}")).id for i in range(3)]
    assert [l.id for l in store.list_lessons("u1", limit=2)] == ids[::-1][:2]
    assert [l.id for l in store.list_lessons("u1", order="asc")] == ids
    with pytest.raises(ValidationError):
        store.list_lessons("u1", order="sideways")


def test_load_history(store):
    store.save_lesson("u1", _generated(fingerprint="11111111", terms=("Older sentence for history.",)))
    store.save_lesson("u1", _generated(fingerprint="22222222", terms=("Newer sentence for history.",)))
    store.record_fingerprint("u1", "33333333")

    history = store.load_history("u1")

    assert history.lesson_fingerprints == {"11111111", "22222222", "33333333"}
    assert history.sentences == ["Newer sentence for history.", "Older sentence for history."]
    assert "00000000" in history.sentence_fingerprints


def test_lesson_progress_roundtrip(store):
    lesson = store.save_lesson("u1", _generated())
    assert store.load_lesson_progress(lesson.id) is None
    store.save_lesson_progress(lesson.id, [2, 0, 2], 2)
    progress = store.load_lesson_progress(lesson.id)
    assert progress.completed_indices == [0, 2]
    assert progress.last_index == 2
    store.clear_lesson_progress(lesson.id)
    assert store.load_lesson_progress(lesson.id) is None


def test_recent_scores_oldest_first(store):
    for score in (0.1, 0.2, 0.3, 0.4):
        store.record_session_score("u1", None, score)
    assert store.recent_scores("u1") == [0.2, 0.3, 0.4]


def test_transaction_commits_once(store):
    with patch.object(store.db, "commit", wraps=store.db.commit) as commit:
        with store.transaction():
            store.record_session_score("u1", None, 0.5)
            store.record_fingerprint("u1", "abcd1234")
            with store.transaction():
                store.save_profile("u1", {"xp": 30})
    assert commit.call_count == 1
    assert store.recent_scores("u1") == [0.5]
    assert store.load_profile("u1").xp == 30


def test_transaction_rolls_back_on_error(store):
    with pytest.raises(ValidationError):
        with store.transaction():
            store.record_session_score("u1", None, 0.5)
            store.save_profile("u1", {"level": 3})
    assert store.recent_scores("u1") == []
    assert store.load_known_fingerprints("u1") == set()


def test_soft_reads_fail_loud_inside_transaction(store):
    with pytest.raises(PersistenceError):
        with store.transaction():
            store.record_session_score("u1", None, 0.5)
            with patch.object(store.db, "query", side_effect=_db_down):
                store.recent_scores("u1")
    assert store.recent_scores("u1") == []
