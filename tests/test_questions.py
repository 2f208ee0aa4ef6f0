from __future__ import annotations

import json

import pytest

from app.backend.questions.bank import (
    CAPTURE_OPTION,
    QUESTIONS_PER_SET,
    QuestionBank,
    build_question_prompt,
    canned_coaching,
    capture_question,
    fallback_question_set,
    parse_questions,
    validate_set_id,
)
from app.backend.questions.llm import LLMServiceError


class StubLLM:
    model = "stub-model"
    configured = True

    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.prompts = []

    def complete(self, prompt, temperature=0.7, max_tokens=1024):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.reply


def _reply(n: int) -> str:
    letters = "QWERTYUIOPASDF"
    return "Here you go:\n" + json.dumps({
        "questions": [
            {"id": i + 1, "question": f"Show {letters[i]}", "options": ["x"], "correctAnswer": letters[i].lower(),
             "explanation": "..."}
            for i in range(n)
        ]
    })


def test_fallback_sets_are_offset_by_five() -> None:
    assert [q.correct_answer for q in fallback_question_set(1)][:3] == ["A", "B", "C"]
    assert fallback_question_set(2)[0].correct_answer == "F"
    assert fallback_question_set(5)[-1].correct_answer == chr(ord("A") + (20 + 9) % 26)
    assert all(q.options == [CAPTURE_OPTION] for q in fallback_question_set(3))


@pytest.mark.parametrize("bad", [0, 6, "1", None, True])
def test_invalid_set_ids(bad) -> None:
    with pytest.raises(ValueError):
        validate_set_id(bad)


def test_prompt_names_level() -> None:
    assert "Expert level" in build_question_prompt(4)


def test_parse_normalises_questions() -> None:
    questions = parse_questions(_reply(12))
    assert len(questions) == QUESTIONS_PER_SET
    assert questions[0].correct_answer == "Q"
    assert questions[0].options == [CAPTURE_OPTION]
    assert [q.id for q in questions] == list(range(1, 11))


def test_parse_rejects_short_sets() -> None:
    with pytest.raises(ValueError):
        parse_questions(_reply(7))


def test_parse_replaces_bad_letters() -> None:
    payload = json.loads(_reply(10))
    payload["questions"][2]["correctAnswer"] = "AB"
    assert parse_questions(json.dumps(payload))[2].correct_answer == "C"


def test_parse_ignores_non_string_text_fields() -> None:
    payload = json.loads(_reply(10))
    payload["questions"][0]["question"] = 42
    payload["questions"][0]["explanation"] = {"tip": "x"}
    payload["questions"][1]["question"] = "   "
    payload["questions"][1]["explanation"] = None
    questions = parse_questions(json.dumps(payload))

    assert questions[0].question == "Give me the hand image that expresses the alphabet 'Q'"
    assert "'Q'" in questions[0].explanation
    assert questions[1].question.endswith("'W'")
    assert isinstance(questions[1].explanation, str)
    assert questions[2].question == "Show E"


def test_generate_uses_llm_output() -> None:
    bank = QuestionBank(StubLLM(_reply(10)))
    qs = bank.generate(2)
    assert not qs.fallback
    assert qs.questions[1].correct_answer == "W"


def test_generate_falls_back_on_failure() -> None:
    for llm in (None, StubLLM(error=LLMServiceError("down")), StubLLM("not json")):
        qs = QuestionBank(llm).generate(1)
        assert qs.fallback
        assert qs.message
        assert len(qs.questions) == QUESTIONS_PER_SET


def test_generate_rejects_invalid_set() -> None:
    with pytest.raises(ValueError):
        QuestionBank(None).generate(9)


def test_coaching_feedback_falls_back_to_canned_text() -> None:
    q = capture_question(1, "M")
    assert QuestionBank(StubLLM("Keep the thumb under three fingers.")).coaching_feedback(q).startswith("Keep")
    assert QuestionBank(StubLLM(error=LLMServiceError("down"))).coaching_feedback(q) == canned_coaching(q)


def test_health_without_client() -> None:
    health = QuestionBank(None).health()
    assert health == {"ok": False, "configured": False, "model": None, "reason": "Missing GROQ_API_KEY"}
