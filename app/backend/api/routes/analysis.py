from fastapi import APIRouter, Depends, HTTPException

from app.backend.api.deps import get_gateway
from app.backend.api.schemas.analysis import AnalyzeImageIn, AnalyzeImageOut, VerdictOut
from app.backend.evaluation.gateway import EvaluationGateway

router = APIRouter(prefix="/api/v1", tags=["analysis"])


@router.post("/analyze-image", response_model=AnalyzeImageOut)
def analyze_image(payload: AnalyzeImageIn, gateway: EvaluationGateway = Depends(get_gateway)):
    if not payload.image_url or not payload.expected_answer:
        raise HTTPException(400, "Image URL and expected answer are required")

    verdict = gateway.evaluate(payload.image_url, payload.expected_answer, payload.question_text)
    return AnalyzeImageOut(
        success=True,
        fallback=verdict.fallback,
        message="Using fallback analysis due to AI service unavailability" if verdict.fallback else None,
        result=VerdictOut.from_verdict(verdict),
    )
