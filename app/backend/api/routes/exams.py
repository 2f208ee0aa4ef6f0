from fastapi import APIRouter, Depends, HTTPException

from app.backend.api.deps import get_bank, get_gateway
from app.backend.api.schemas.exam import EvaluateExamIn, ExamResultOut
from app.backend.evaluation.exam import evaluate_exam
from app.backend.evaluation.gateway import EvaluationGateway
from app.backend.questions.bank import QuestionBank

router = APIRouter(prefix="/api/v1", tags=["exams"])


@router.post("/exams/evaluate", response_model=ExamResultOut)
def evaluate(
    payload: EvaluateExamIn,
    gateway: EvaluationGateway = Depends(get_gateway),
    bank: QuestionBank = Depends(get_bank),
):
    if not payload.questions:
        raise HTTPException(400, "Questions and answers are required")

    result = evaluate_exam(
        [q.to_question() for q in payload.questions],
        [a.to_input() for a in payload.answers],
        gateway,
        bank,
    )
    return ExamResultOut.from_result(result)
