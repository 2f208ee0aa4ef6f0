import logging
from typing import Optional, Protocol

from app.backend.config import EvaluationConfig
from app.backend.evaluation.policy import (
    UNKNOWN,
    EvaluationVerdict,
    RawJudgment,
    apply_conservative_scoring,
    extract_letter,
)

logger = logging.getLogger(__name__)

ISL_DESCRIPTIONS = {
    "A": "Form a fist with your thumb along the side of the index finger (not across the palm).",
    "B": "Palm out; four fingers extended and together; thumb across the palm.",
    "C": "Curve fingers and thumb to form a clear C shape.",
    "D": "Index finger up; other fingers closed; thumb touches the middle finger to make a ring.",
    "E": "Curl all fingers; fingertips toward the palm; thumb against fingers.",
    "F": "Thumb and index touch forming a ring; other fingers extended.",
    "G": "Index points sideways; thumb up; other fingers closed.",
    "H": "Index and middle extended together sideways; others closed.",
    "I": "Only pinky up; others closed.",
    "J": "Pinky draws a J (motion). In a single photo, handshape should match I; motion can't be confirmed.",
    "K": "Index and middle form a V; thumb in between.",
    "L": "Index up, thumb out to the side to form an L; others closed.",
    "M": "Thumb under first three fingers (visible bumps).",
    "N": "Thumb under first two fingers.",
    "O": "All fingers curve to form an O shape.",
    "P": "Like K but palm down / pointing downward.",
    "Q": "Thumb and index pinch downward; others closed.",
    "R": "Index and middle crossed; others closed.",
    "S": "Fist with thumb across the front of fingers.",
    "T": "Thumb between index and middle; hand in a fist.",
    "U": "Index and middle up, together and straight.",
    "V": "Index and middle up, making a V shape.",
    "W": "Index, middle, ring up (three).",
    "X": "Index bent like a hook; others closed.",
    "Y": "Thumb and pinky out; middle fingers closed.",
    "Z": "Index draws Z (motion). In a single photo, handshape similar to pointing; motion can't be confirmed.",
}


class VisionClient(Protocol):
    def judge(self, image: str, expected_letter: str, question_text: str = "") -> RawJudgment: ...


def describe_letter(letter: str) -> str:
    key = extract_letter(letter) or str(letter).strip().upper()
    return ISL_DESCRIPTIONS.get(key, "Follow standard ISL guidelines for this letter.")


def fallback_judgment(expected_label: str, confidence: int = 30) -> RawJudgment:
    target = extract_letter(expected_label) or expected_label
    return RawJudgment(
        is_correct=False,
        confidence=confidence,
        detected_letter=UNKNOWN,
        analysis="Vision model unavailable. Providing guidance only.",
        feedback=f'Target ISL letter "{target}": {describe_letter(expected_label)}',
    )


class EvaluationGateway:
    """
    Sends a still to the vision collaborator and turns its answer into a
    strict verdict. Any failure (no client, transport error, unparseable
    reply) yields an incorrect, low-confidence verdict with guidance text.
    """

    def __init__(self, client: Optional[VisionClient] = None, config: Optional[EvaluationConfig] = None):
        self.client = client
        self.config = config or EvaluationConfig()

    @property
    def available(self) -> bool:
        return self.client is not None and getattr(self.client, "configured", True)

    def score(self, raw: RawJudgment, expected_label: str, fallback: bool) -> EvaluationVerdict:
        return apply_conservative_scoring(
            raw,
            expected_label,
            acceptance_floor=self.config.acceptance_floor,
            rejected_cap=self.config.rejected_confidence_cap,
            fallback=fallback,
        )

    def fallback(self, expected_label: str) -> EvaluationVerdict:
        return self.score(fallback_judgment(expected_label, self.config.fallback_confidence), expected_label, True)

    def evaluate(self, image: str, expected_label: str, question_context: str = "") -> EvaluationVerdict:
        if not image:
            logger.info("No image for %r, using fallback guidance", expected_label)
            return self.fallback(expected_label)
        if not self.available:
            logger.info("Vision service not configured, using conservative fallback")
            return self.fallback(expected_label)

        try:
            raw = self.client.judge(image, expected_label, question_context)
        except Exception as e:
            logger.warning("Image analysis failed for %r: %s", expected_label, e, exc_info=True)
            return self.fallback(expected_label)

        if not isinstance(raw, RawJudgment):
            logger.warning("Vision client returned %s, expected RawJudgment", type(raw).__name__)
            return self.fallback(expected_label)
        return self.score(raw, expected_label, False)
