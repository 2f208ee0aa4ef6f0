from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from app.backend.evaluation.gateway import EvaluationGateway
from app.backend.evaluation.policy import EvaluationVerdict, judgment_from_dict
from app.backend.questions.bank import Question, QuestionBank

logger = logging.getLogger(__name__)

SKIPPED = "Skipped"


@dataclass(frozen=True)
class AnswerInput:
    question_id: int
    selected_answer: str = ""
    image_url: Optional[str] = None
    immediate_analysis: Optional[dict] = None

    @property
    def skipped(self) -> bool:
        return self.selected_answer == SKIPPED and not self.image_url


@dataclass(frozen=True)
class QuestionFeedback:
    question_id: int
    is_correct: bool
    correct_answer: str
    explanation: str
    analysis: Optional[str] = None
    verdict: Optional[EvaluationVerdict] = None


@dataclass(frozen=True)
class ExamResult:
    score: int
    total_questions: int
    feedback: List[QuestionFeedback] = field(default_factory=list)

    @property
    def percentage(self) -> float:
        return round(self.score * 100.0 / self.total_questions, 1) if self.total_questions else 0.0


def format_analysis(verdict: EvaluationVerdict) -> str:
    return (
        "**Image Analysis Result:**\n\n"
        f"**Detected:** {verdict.detected_label}\n"
        f"**Confidence:** {verdict.confidence}%\n\n"
        f"**Analysis:** {verdict.rationale}\n\n"
        f"**Feedback:** {verdict.feedback}"
    )


def _image_verdict(question: Question, answer: AnswerInput, gateway: EvaluationGateway) -> EvaluationVerdict:
    if answer.immediate_analysis:
        try:
            raw = judgment_from_dict(answer.immediate_analysis, question.correct_answer)
        except ValueError:
            logger.warning("Ignoring malformed stored analysis for question %d", question.id)
        else:
            # stored results are re-scored, never taken at face value
            return gateway.score(raw, question.correct_answer, False)
    return gateway.evaluate(answer.image_url, question.correct_answer, question.question)


def evaluate_exam(
    questions: Sequence[Question],
    answers: Sequence[AnswerInput],
    gateway: EvaluationGateway,
    bank: Optional[QuestionBank] = None,
) -> ExamResult:
    by_question = {a.question_id: a for a in answers}
    feedback: List[QuestionFeedback] = []

    for q in questions:
        answer = by_question.get(q.id)
        if answer is None or answer.skipped:
            feedback.append(QuestionFeedback(
                q.id, False, q.correct_answer, q.explanation,
                analysis="No answer provided" if answer is None else "Skipped",
            ))
            continue

        if not answer.image_url:
            correct = answer.selected_answer.strip().lower() == q.correct_answer.strip().lower()
            feedback.append(QuestionFeedback(q.id, correct, q.correct_answer, q.explanation))
            continue

        verdict = _image_verdict(q, answer, gateway)
        if verdict.fallback and bank is not None:
            analysis = bank.coaching_feedback(q)
        else:
            analysis = format_analysis(verdict)
        feedback.append(QuestionFeedback(q.id, verdict.is_correct, q.correct_answer, q.explanation, analysis, verdict))

    score = sum(1 for f in feedback if f.is_correct)
    return ExamResult(score=score, total_questions=len(questions), feedback=feedback)
