"""
Local acceptance policy applied on top of whatever the vision model says.

The model's own ``isCorrect`` is advisory. A verdict is correct only when the
letter it detected equals the expected letter and its confidence reaches the
acceptance floor; everything else is downgraded with an explanation.
"""
import math
import re
from dataclasses import dataclass
from typing import Optional

UNKNOWN = "Unknown"

# a lone letter token: "A", "'b'", "Letter C." but not the "U" of "Unknown"
_LONE_LETTER = re.compile(r"(?<![A-Za-z])([A-Za-z])(?![A-Za-z])")


def extract_letter(label) -> Optional[str]:
    if label is None:
        return None
    m = _LONE_LETTER.search(str(label))
    return m.group(1).upper() if m else None


@dataclass(frozen=True)
class RawJudgment:
    """What the external model returned, after shape validation only."""
    is_correct: bool
    confidence: float
    detected_letter: str
    analysis: str
    feedback: str


@dataclass(frozen=True)
class EvaluationVerdict:
    is_correct: bool
    confidence: int
    detected_label: str
    rationale: str
    feedback: str
    fallback: bool = False

    def to_dict(self) -> dict:
        return {
            "isCorrect": self.is_correct,
            "confidence": self.confidence,
            "detectedLetter": self.detected_label,
            "analysis": self.rationale,
            "feedback": self.feedback,
        }


def _clamp(value, low: int = 0, high: int = 100) -> int:
    try:
        value = float(value)
    except (TypeError, ValueError):
        return low
    if value != value:  # NaN
        return low
    return int(round(max(low, min(high, value))))


def apply_conservative_scoring(
    raw: RawJudgment,
    expected_label: str,
    acceptance_floor: int = 70,
    rejected_cap: int = 60,
    fallback: bool = False,
) -> EvaluationVerdict:
    expected = extract_letter(expected_label) or str(expected_label).strip().upper()
    detected = extract_letter(raw.detected_letter) or UNKNOWN
    confidence = _clamp(raw.confidence)

    letter_matches = detected == expected
    confident = confidence >= acceptance_floor
    is_correct = letter_matches and confident

    feedback = raw.feedback or ""
    if is_correct:
        confidence = max(acceptance_floor, confidence)
    else:
        confidence = min(rejected_cap, confidence)
        reason = "Confidence below threshold" if letter_matches else f'Detected "{detected}" vs expected "{expected}"'
        note = f'Strict scoring: {reason}. Marking as incorrect. Focus on the exact ISL handshape for "{expected}".'
        if note not in feedback:
            feedback = f"{feedback}\n\n{note}" if feedback else note

    return EvaluationVerdict(
        is_correct=is_correct,
        confidence=confidence,
        detected_label=detected,
        rationale=raw.analysis or "",
        feedback=feedback,
        fallback=fallback,
    )


def judgment_from_dict(data: dict, expected_label: str = "") -> RawJudgment:
    """Shape-check a model (or client) payload, filling conservative defaults."""
    if not isinstance(data, dict):
        raise ValueError("judgment payload must be a JSON object")

    is_correct = data.get("isCorrect")
    confidence = data.get("confidence")
    detected = data.get("detectedLetter")
    analysis = data.get("analysis")
    feedback = data.get("feedback")

    has_confidence = (
        isinstance(confidence, (int, float))
        and not isinstance(confidence, bool)
        and math.isfinite(confidence)
    )
    return RawJudgment(
        is_correct=is_correct if isinstance(is_correct, bool) else False,
        confidence=max(0, min(100, confidence)) if has_confidence else 40,
        detected_letter=detected if isinstance(detected, str) else UNKNOWN,
        analysis=analysis if isinstance(analysis, str) else "Analysis not available",
        feedback=feedback if isinstance(feedback, str) else f'Aim for a precise ISL "{expected_label}" handshape.',
    )
