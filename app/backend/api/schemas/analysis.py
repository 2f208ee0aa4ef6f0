from typing import Optional

from app.backend.evaluation.policy import EvaluationVerdict
from .base import CamelModel


class AnalyzeImageIn(CamelModel):
    image_url: Optional[str] = None
    expected_answer: Optional[str] = None
    question_text: str = ""


class VerdictOut(CamelModel):
    is_correct: bool
    confidence: int
    detected_letter: str
    analysis: str
    feedback: str
    fallback: bool = False

    @classmethod
    def from_verdict(cls, v: EvaluationVerdict) -> "VerdictOut":
        return cls(
            is_correct=v.is_correct,
            confidence=v.confidence,
            detected_letter=v.detected_label,
            analysis=v.rationale,
            feedback=v.feedback,
            fallback=v.fallback,
        )


class AnalyzeImageOut(CamelModel):
    success: bool
    fallback: bool = False
    message: Optional[str] = None
    result: VerdictOut
