from fastapi import APIRouter, Depends, HTTPException

from app.backend.api.deps import get_bank
from app.backend.api.schemas.exam import GenerateQuestionsIn, QuestionOut, QuestionSetOut
from app.backend.questions.bank import QuestionBank, validate_set_id

router = APIRouter(prefix="/api/v1", tags=["questions"])


@router.post("/questions/generate", response_model=QuestionSetOut)
def generate_questions(payload: GenerateQuestionsIn, bank: QuestionBank = Depends(get_bank)):
    try:
        set_id = validate_set_id(payload.set_id)
    except ValueError as e:
        raise HTTPException(400, str(e))

    qs = bank.generate(set_id)
    return QuestionSetOut(
        set_id=qs.set_id,
        questions=[QuestionOut.model_validate(q) for q in qs.questions],
        generated=qs.generated,
        fallback=qs.fallback,
        message=qs.message,
    )
