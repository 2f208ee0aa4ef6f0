from typing import Optional

from .analysis import VerdictOut
from .base import CamelModel


class UploadIn(CamelModel):
    file: Optional[str] = None          # data URL
    set_id: int = 0
    question_id: int = 0
    user_id: Optional[str] = None
    expected_answer: Optional[str] = None
    question_text: str = ""


class QualityOut(CamelModel):
    is_valid: bool
    confidence: int
    feedback: str


class UploadOut(CamelModel):
    success: bool = True
    url: str
    public_id: Optional[str] = None
    provider: str
    fallback: bool = False
    message: Optional[str] = None
    quality: Optional[QualityOut] = None
    verdict: Optional[VerdictOut] = None
