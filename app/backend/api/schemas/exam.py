from datetime import datetime
from typing import List, Optional

from pydantic import Field

from app.backend.evaluation.exam import AnswerInput, ExamResult, QuestionFeedback
from app.backend.questions.bank import CAPTURE_OPTION, Question
from .analysis import VerdictOut
from .base import CamelModel


class QuestionIn(CamelModel):
    id: int
    question: str = ""
    correct_answer: str
    explanation: str = ""
    options: List[str] = Field(default_factory=lambda: [CAPTURE_OPTION])

    def to_question(self) -> Question:
        return Question(self.id, self.question, self.correct_answer, self.explanation, list(self.options))


class QuestionOut(CamelModel):
    id: int
    question: str
    options: List[str]
    correct_answer: str
    explanation: str


class GenerateQuestionsIn(CamelModel):
    set_id: Optional[int] = None


class QuestionSetOut(CamelModel):
    success: bool = True
    set_id: int
    questions: List[QuestionOut]
    generated: datetime
    fallback: bool = False
    message: Optional[str] = None


class AnswerIn(CamelModel):
    question_id: int
    selected_answer: str = ""
    image_url: Optional[str] = None
    immediate_analysis: Optional[dict] = None

    def to_input(self) -> AnswerInput:
        return AnswerInput(self.question_id, self.selected_answer or "", self.image_url, self.immediate_analysis)


class EvaluateExamIn(CamelModel):
    set_id: Optional[int] = None
    questions: List[QuestionIn] = Field(default_factory=list)
    answers: List[AnswerIn] = Field(default_factory=list)


class QuestionFeedbackOut(CamelModel):
    question_id: int
    is_correct: bool
    correct_answer: str
    explanation: str
    analysis: Optional[str] = None
    verdict: Optional[VerdictOut] = None

    @classmethod
    def from_feedback(cls, f: QuestionFeedback) -> "QuestionFeedbackOut":
        return cls(
            question_id=f.question_id,
            is_correct=f.is_correct,
            correct_answer=f.correct_answer,
            explanation=f.explanation,
            analysis=f.analysis,
            verdict=VerdictOut.from_verdict(f.verdict) if f.verdict else None,
        )


class ExamResultOut(CamelModel):
    success: bool = True
    score: int
    total_questions: int
    percentage: float
    feedback: List[QuestionFeedbackOut]

    @classmethod
    def from_result(cls, r: ExamResult) -> "ExamResultOut":
        return cls(
            score=r.score,
            total_questions=r.total_questions,
            percentage=r.percentage,
            feedback=[QuestionFeedbackOut.from_feedback(f) for f in r.feedback],
        )
