from fastapi import APIRouter, Depends

from app.backend.api.deps import get_bank, get_gateway
from app.backend.evaluation.gateway import EvaluationGateway
from app.backend.questions.bank import QuestionBank

router = APIRouter(prefix="/api/v1/health", tags=["health"])


@router.get("/vision")
def vision_health(gateway: EvaluationGateway = Depends(get_gateway)):
    if gateway.client is None:
        return {"ok": False, "configured": False, "model": None, "reason": "Missing GEMINI_API_KEY"}
    return gateway.client.health()


@router.get("/questions")
def questions_health(bank: QuestionBank = Depends(get_bank)):
    return bank.health()
