from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from app.backend.questions.llm import GroqChatClient, LLMServiceError

logger = logging.getLogger(__name__)

QUESTIONS_PER_SET = 10
CAPTURE_OPTION = "Capture Image"

DIFFICULTY_LEVELS = {
    1: ("Beginner", "Basic alphabet recognition and simple hand formations for new learners",
        "fundamental letter shapes, basic hand positions, common letters A-Z"),
    2: ("Intermediate", "Letter combinations, common confusions, and basic techniques",
        "similar-looking letters, finger positioning details, basic transitions"),
    3: ("Advanced", "Complex hand positions, transitions, and professional techniques",
        "subtle differences, hand orientation, advanced letter formations"),
    4: ("Expert", "Linguistic principles, coarticulation, and advanced interpretation skills",
        "sign language linguistics, professional interpretation, advanced techniques"),
    5: ("Master", "Research-level concepts, morphophonology, and psycholinguistic analysis",
        "academic concepts, research methodology, expert-level analysis"),
}

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


@dataclass(frozen=True)
class Question:
    id: int
    question: str
    correct_answer: str
    explanation: str
    options: List[str] = field(default_factory=lambda: [CAPTURE_OPTION])


@dataclass(frozen=True)
class QuestionSet:
    set_id: int
    questions: List[Question]
    generated: datetime
    fallback: bool = False
    message: Optional[str] = None


def _letter_at(index: int) -> str:
    return chr(ord("A") + index % 26)


def capture_question(qid: int, letter: str) -> Question:
    return Question(
        id=qid,
        question=f"Give me the hand image that expresses the alphabet '{letter}'",
        correct_answer=letter,
        explanation=f"Capture a clear image of your hand forming the correct ISL handshape for '{letter}'.",
    )


def fallback_question_set(set_id: int) -> List[Question]:
    offset = (set_id - 1) * 5 if set_id in DIFFICULTY_LEVELS else 0
    return [capture_question(i + 1, _letter_at(i + offset)) for i in range(QUESTIONS_PER_SET)]


def validate_set_id(set_id) -> int:
    if isinstance(set_id, bool) or not isinstance(set_id, int) or set_id not in DIFFICULTY_LEVELS:
        raise ValueError("Invalid set ID")
    return set_id


def build_question_prompt(set_id: int) -> str:
    level, context, focus = DIFFICULTY_LEVELS[set_id]
    return f"""You are an expert Indian Sign Language (ISL) instructor. Generate exactly {QUESTIONS_PER_SET} questions for {level} level students.

CONTEXT: {context}
FOCUS AREAS: {focus}

STRICT REQUIREMENTS:
1) Generate EXACTLY {QUESTIONS_PER_SET} questions
2) EVERY question MUST be an IMAGE-CAPTURE task with options strictly as ["{CAPTURE_OPTION}"]
3) Each question MUST ask the learner to provide a hand image that expresses a specific ISL alphabet letter (A-Z)
4) Vary the letters across questions and avoid repetition when possible
5) The "correctAnswer" MUST be the target alphabet letter (single uppercase character like "A")
6) The "explanation" MUST describe the correct handshape/orientation for that letter in clear, concise terms
7) Keep the wording simple: "Give me the hand image that expresses the alphabet '<LETTER>'"

OUTPUT FORMAT (valid JSON only):
{{
  "questions": [
    {{
      "id": 1,
      "question": "Give me the hand image that expresses the alphabet 'A'",
      "options": ["{CAPTURE_OPTION}"],
      "correctAnswer": "A",
      "explanation": "Brief guidance on the correct ISL handshape for 'A'"
    }}
  ]
}}

Generate the {QUESTIONS_PER_SET} questions now for Set {set_id} ({level} level)."""


def parse_questions(text: str) -> List[Question]:
    m = _JSON_OBJECT.search(text or "")
    if not m:
        raise ValueError("Invalid JSON response from Groq AI")
    try:
        payload = json.loads(m.group(0))
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON response from Groq AI: {e}") from e

    items = payload.get("questions") if isinstance(payload, dict) else None
    if not isinstance(items, list):
        raise ValueError("Invalid question format from Groq AI")

    questions = []
    for index, q in enumerate(items[:QUESTIONS_PER_SET]):
        q = q if isinstance(q, dict) else {}
        answer = q.get("correctAnswer")
        if isinstance(answer, str) and len(answer.strip()) == 1 and answer.strip().isalpha():
            letter = answer.strip().upper()
        else:
            letter = _letter_at(index)
        default = capture_question(index + 1, letter)
        text = q.get("question")
        explanation = q.get("explanation")
        questions.append(Question(
            id=index + 1,
            question=text.strip() if isinstance(text, str) and text.strip() else default.question,
            correct_answer=letter,
            explanation=explanation if isinstance(explanation, str) and explanation else default.explanation,
        ))

    if len(questions) < QUESTIONS_PER_SET:
        raise ValueError(f"Only {len(questions)} questions generated, need {QUESTIONS_PER_SET}")
    return questions


class QuestionBank:
    def __init__(self, client: Optional[GroqChatClient] = None):
        self.client = client

    def generate(self, set_id: int) -> QuestionSet:
        set_id = validate_set_id(set_id)
        now = datetime.now(timezone.utc)
        try:
            if self.client is None:
                raise LLMServiceError("Groq API key not configured")
            text = self.client.complete(build_question_prompt(set_id), temperature=0.7, max_tokens=2048)
            return QuestionSet(set_id, parse_questions(text), now)
        except (LLMServiceError, ValueError) as e:
            logger.warning("Question generation for set %d failed, using fallback: %s", set_id, e)
            return QuestionSet(
                set_id,
                fallback_question_set(set_id),
                now,
                fallback=True,
                message="Using fallback questions due to AI service unavailability",
            )

    def coaching_feedback(self, question: Question) -> str:
        """Guidance for an image answer that could not be analysed."""
        prompt = f"""You are an expert Indian Sign Language (ISL) instructor. A student has submitted an image for this question:

QUESTION: "{question.question}"
EXPECTED ANSWER: "{question.correct_answer}"

Since I cannot analyze the actual image, please provide educational feedback about what the student should look for in their hand gesture for the letter "{question.correct_answer}" in Indian Sign Language.

Please provide:

1. **Expected Hand Position**: Describe the correct hand shape, finger positions, and orientation for letter "{question.correct_answer}"
2. **Common Mistakes**: What are typical errors students make with this letter?
3. **Tips for Improvement**: Specific suggestions for perfecting this handshape
4. **Self-Check**: What should the student verify in their own gesture?"""
        try:
            if self.client is None:
                raise LLMServiceError("Groq API key not configured")
            return self.client.complete(prompt, temperature=0.7, max_tokens=1024)
        except LLMServiceError as e:
            logger.warning("Coaching feedback unavailable: %s", e)
            return canned_coaching(question)

    def health(self) -> dict:
        model = self.client.model if self.client else None
        if self.client is None or not self.client.configured:
            return {"ok": False, "configured": False, "model": model, "reason": "Missing GROQ_API_KEY"}
        try:
            text = self.client.complete(
                'Return valid JSON only: {"questions": [{"id": 1, "correctAnswer": "A"}, {"id": 2, "correctAnswer": "B"}]}',
                temperature=0.3,
                max_tokens=256,
            )
            m = _JSON_OBJECT.search(text)
            if not m or len(json.loads(m.group(0)).get("questions") or []) < 2:
                return {"ok": False, "configured": True, "model": model, "reason": "Invalid JSON response from Groq"}
        except (LLMServiceError, ValueError, AttributeError) as e:
            return {"ok": False, "configured": True, "model": model, "reason": str(e)}
        return {"ok": True, "configured": True, "model": model}


def canned_coaching(question: Question) -> str:
    return f"""Unable to analyze image with AI. Please ensure:

1. The image is clear and well-lit
2. Your hand is clearly visible against a plain background
3. The gesture is held steady and matches ISL standards
4. The image format is supported (JPG, PNG, WebP)

For the question "{question.question}", the correct answer should be: "{question.correct_answer}".

**Self-Check Tips:**
- Compare your hand position with reference ISL alphabet charts
- Ensure all fingers are positioned correctly
- Check that your palm orientation matches the standard
- Hold the position steady and clearly"""
