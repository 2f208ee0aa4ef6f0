from __future__ import annotations

import json
from datetime import timedelta

import pytest

from app.backend.db import init_db, make_engine, make_session_factory
from app.backend.db.models import ExamSession
from app.backend.db.store import SqlExamStore, utcnow
from app.backend.evaluation.policy import EvaluationVerdict


@pytest.fixture
def store():
    engine = make_engine("sqlite://")
    init_db(engine)
    factory = make_session_factory(engine)
    yield SqlExamStore(factory)
    engine.dispose()


def test_create_and_get_session(store) -> None:
    s = store.create_session(3, "u1")
    assert s.session_id.startswith("session_3_")
    loaded = store.get_session(s.session_id)
    assert loaded.set_id == 3
    assert loaded.user_id == "u1"
    assert loaded.completed_at is None
    assert store.get_session("nope") is None


def test_answer_for_same_question_is_replaced(store) -> None:
    s = store.create_session(1)
    store.save_answer(s.session_id, 1, "A")
    verdict = EvaluationVerdict(False, 40, "S", "fist", "thumb out")
    store.save_answer(s.session_id, 1, image_url="http://x/1.jpg", verdict=verdict)
    store.save_answer(s.session_id, 2, skipped=True)

    answers = store.get_answers(s.session_id)
    assert [a.question_id for a in answers] == [1, 2]
    assert answers[0].image_url == "http://x/1.jpg"
    assert answers[0].detected_label == "S"
    assert answers[0].is_correct is False
    assert answers[1].skipped


def test_answer_for_unknown_session(store) -> None:
    with pytest.raises(KeyError):
        store.save_answer("missing", 1, "A")


def test_complete_and_result(store) -> None:
    s = store.create_session(1, "u1", total_questions=4)
    assert store.complete_session(s.session_id, 3)
    record = store.save_result(s.session_id, 3, 4, [{"questionId": 1, "isCorrect": True}])
    assert record.percentage == 75.0

    loaded = store.get_result(s.session_id)
    assert json.loads(loaded.feedback_json) == [{"questionId": 1, "isCorrect": True}]
    assert store.get_session(s.session_id).score == 3
    assert not store.complete_session("missing", 1)


def test_user_history_newest_first(store) -> None:
    first = store.create_session(1, "u1")
    second = store.create_session(2, "u1")
    store.create_session(1, "someone-else")
    with store._db() as db:
        db.get(ExamSession, first.session_id).started_at = utcnow() - timedelta(minutes=5)

    history = store.get_user_history("u1")
    assert [h.session_id for h in history] == [second.session_id, first.session_id]
    assert store.get_user_history("") == []


def test_set_statistics(store) -> None:
    a = store.create_session(2)
    b = store.create_session(2)
    store.create_session(2)
    store.create_session(5)
    store.complete_session(a.session_id, 8)
    store.complete_session(b.session_id, 6)

    stats = store.get_set_statistics(2)
    assert stats.total_attempts == 3
    assert stats.average_score == 7.0
    assert stats.completion_rate == pytest.approx(66.666, rel=1e-3)
    assert store.get_set_statistics(4).total_attempts == 0


def test_cleanup_removes_only_stale_incomplete(store) -> None:
    stale = store.create_session(1)
    done = store.create_session(1)
    fresh = store.create_session(1)
    store.save_answer(stale.session_id, 1, "A")
    store.complete_session(done.session_id, 5)
    with store._db() as db:
        for sid in (stale.session_id, done.session_id):
            db.get(ExamSession, sid).started_at = utcnow() - timedelta(hours=30)

    assert store.cleanup_old_sessions(24) == 1
    assert store.get_session(stale.session_id) is None
    assert store.get_answers(stale.session_id) == []
    assert store.get_session(done.session_id) is not None
    assert store.get_session(fresh.session_id) is not None


def test_letter_progress(store) -> None:
    assert store.get_progress("u1").completed_letters == []
    store.mark_letter("u1", "b", True)
    progress = store.mark_letter("u1", "A", True)
    assert progress.completed_letters == ["A", "B"]

    assert store.toggle_letter("u1", "a") is False
    assert store.toggle_letter("u1", "C") is True
    assert store.get_progress("u1").completed_letters == ["B", "C"]
    assert store.get_progress("u2").completed_letters == []

    assert store.reset_progress("u1").completed_letters == []
    assert store.get_progress("u1").completed_letters == []
