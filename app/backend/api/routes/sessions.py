import json
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from app.backend.api.deps import get_bank, get_gateway, get_store
from app.backend.api.schemas.exam import QuestionFeedbackOut
from app.backend.api.schemas.session import (
    AnswerOut,
    AnswerSaveIn,
    SessionFinishIn,
    SessionOut,
    SessionResultOut,
    SessionStartIn,
    SetStatisticsOut,
)
from app.backend.db.store import ExamStore
from app.backend.evaluation.exam import SKIPPED, AnswerInput, evaluate_exam
from app.backend.evaluation.gateway import EvaluationGateway
from app.backend.evaluation.policy import judgment_from_dict
from app.backend.questions.bank import QuestionBank

router = APIRouter(prefix="/api/v1", tags=["sessions"])


def _session_or_404(store: ExamStore, session_id: str):
    s = store.get_session(session_id)
    if not s:
        raise HTTPException(404, "Session not found")
    return s


def _stored_analysis(answer):
    if answer.is_correct is None:
        return None
    return {
        "isCorrect": answer.is_correct,
        "confidence": answer.confidence,
        "detectedLetter": answer.detected_label,
        "analysis": answer.rationale,
        "feedback": answer.feedback,
    }


@router.post("/sessions", response_model=SessionOut)
def start_session(payload: SessionStartIn, store: ExamStore = Depends(get_store)):
    return store.create_session(payload.set_id, payload.user_id, payload.total_questions)


@router.get("/sessions/{session_id}", response_model=SessionOut)
def get_session(session_id: str, store: ExamStore = Depends(get_store)):
    return _session_or_404(store, session_id)


@router.post("/sessions/{session_id}/answers", response_model=AnswerOut)
def save_answer(
    session_id: str,
    payload: AnswerSaveIn,
    store: ExamStore = Depends(get_store),
    gateway: EvaluationGateway = Depends(get_gateway),
):
    _session_or_404(store, session_id)

    verdict = None
    if payload.expected_answer and not payload.skipped:
        if payload.immediate_analysis:
            try:
                raw = judgment_from_dict(payload.immediate_analysis, payload.expected_answer)
            except ValueError as e:
                raise HTTPException(400, str(e))
            verdict = gateway.score(raw, payload.expected_answer, False)
        elif payload.image_url:
            verdict = gateway.evaluate(payload.image_url, payload.expected_answer, payload.question_text)

    return store.save_answer(
        session_id,
        payload.question_id,
        selected_answer=SKIPPED if payload.skipped else payload.selected_answer,
        image_url=payload.image_url,
        video_url=payload.video_url,
        skipped=payload.skipped,
        verdict=verdict,
    )


@router.get("/sessions/{session_id}/answers", response_model=List[AnswerOut])
def list_answers(session_id: str, store: ExamStore = Depends(get_store)):
    _session_or_404(store, session_id)
    return store.get_answers(session_id)


@router.patch("/sessions/{session_id}", response_model=SessionResultOut)
def finish_session(
    session_id: str,
    payload: SessionFinishIn,
    store: ExamStore = Depends(get_store),
    gateway: EvaluationGateway = Depends(get_gateway),
    bank: QuestionBank = Depends(get_bank),
):
    s = _session_or_404(store, session_id)

    if payload.questions:
        answers = [
            AnswerInput(a.question_id, a.selected_answer, a.image_url, _stored_analysis(a))
            for a in store.get_answers(session_id)
        ]
        result = evaluate_exam([q.to_question() for q in payload.questions], answers, gateway, bank)
        score, total = result.score, result.total_questions
        feedback = [QuestionFeedbackOut.from_feedback(f) for f in result.feedback]
    elif payload.score is not None:
        score, total, feedback = payload.score, s.total_questions, []
    else:
        raise HTTPException(400, "Score or questions are required")

    store.complete_session(session_id, score)
    record = store.save_result(session_id, score, total, [f.model_dump(by_alias=True) for f in feedback])
    return SessionResultOut(
        session_id=session_id,
        score=record.score,
        total_questions=record.total_questions,
        percentage=record.percentage,
        completed_at=record.completed_at,
        feedback=feedback,
    )


@router.get("/sessions/{session_id}/result", response_model=SessionResultOut)
def get_result(session_id: str, store: ExamStore = Depends(get_store)):
    _session_or_404(store, session_id)
    record = store.get_result(session_id)
    if not record:
        raise HTTPException(404, "Result not found")
    return SessionResultOut(
        session_id=session_id,
        score=record.score,
        total_questions=record.total_questions,
        percentage=record.percentage,
        completed_at=record.completed_at,
        feedback=[QuestionFeedbackOut.model_validate(f) for f in json.loads(record.feedback_json or "[]")],
    )


@router.get("/users/{user_id}/sessions", response_model=List[SessionOut])
def user_history(user_id: str, store: ExamStore = Depends(get_store)):
    return store.get_user_history(user_id)


@router.get("/sets/{set_id}/statistics", response_model=SetStatisticsOut)
def set_statistics(set_id: int, store: ExamStore = Depends(get_store)):
    stats = store.get_set_statistics(set_id)
    return SetStatisticsOut(
        set_id=set_id,
        total_attempts=stats.total_attempts,
        average_score=stats.average_score,
        completion_rate=stats.completion_rate,
    )
