from datetime import datetime
from typing import List, Optional

from .base import CamelModel
from .exam import QuestionFeedbackOut, QuestionIn


class SessionStartIn(CamelModel):
    set_id: int
    user_id: Optional[str] = None
    total_questions: int = 10


class SessionOut(CamelModel):
    session_id: str
    set_id: int
    user_id: Optional[str] = None
    started_at: datetime
    completed_at: Optional[datetime] = None
    score: Optional[int] = None
    total_questions: int


class AnswerSaveIn(CamelModel):
    question_id: int
    selected_answer: str = ""
    image_url: Optional[str] = None
    video_url: Optional[str] = None
    skipped: bool = False
    expected_answer: Optional[str] = None
    question_text: str = ""
    immediate_analysis: Optional[dict] = None


class AnswerOut(CamelModel):
    question_id: int
    selected_answer: str
    image_url: Optional[str] = None
    video_url: Optional[str] = None
    skipped: bool
    is_correct: Optional[bool] = None
    confidence: Optional[int] = None
    detected_label: Optional[str] = None
    rationale: Optional[str] = None
    feedback: Optional[str] = None
    answered_at: Optional[datetime] = None


class SessionFinishIn(CamelModel):
    score: Optional[int] = None
    questions: Optional[List[QuestionIn]] = None


class SessionResultOut(CamelModel):
    session_id: str
    score: int
    total_questions: int
    percentage: float
    completed_at: Optional[datetime] = None
    feedback: List[QuestionFeedbackOut] = []


class SetStatisticsOut(CamelModel):
    set_id: int
    total_attempts: int
    average_score: float
    completion_rate: float
