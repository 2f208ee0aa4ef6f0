from __future__ import annotations

import requests

from app.backend.config import EvaluationConfig
from app.backend.evaluation.gateway import EvaluationGateway, describe_letter
from app.backend.evaluation.policy import RawJudgment

IMAGE = "data:image/jpeg;base64,/9j/AAAA"


class StubVision:
    configured = True

    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    def judge(self, image, expected_letter, question_text=""):
        self.calls.append((image, expected_letter, question_text))
        if self.error:
            raise self.error
        return self.result


def test_confident_match_passes_through_policy() -> None:
    vision = StubVision(RawJudgment(True, 91, "V", "two fingers up", "Great"))
    verdict = EvaluationGateway(vision).evaluate(IMAGE, "V", "Show V")
    assert verdict.is_correct
    assert verdict.confidence == 91
    assert not verdict.fallback
    assert vision.calls == [(IMAGE, "V", "Show V")]


def test_model_claim_is_advisory() -> None:
    vision = StubVision(RawJudgment(True, 99, "U", "two fingers up", "Great"))
    verdict = EvaluationGateway(vision).evaluate(IMAGE, "V")
    assert not verdict.is_correct
    assert verdict.confidence <= 60


def test_transport_error_yields_conservative_fallback() -> None:
    vision = StubVision(error=requests.ConnectionError("offline"))
    verdict = EvaluationGateway(vision).evaluate(IMAGE, "B")
    assert verdict.fallback
    assert not verdict.is_correct
    assert verdict.confidence == 30
    assert verdict.detected_label == "Unknown"
    assert describe_letter("B") in verdict.feedback


def test_malformed_client_result_falls_back() -> None:
    verdict = EvaluationGateway(StubVision({"isCorrect": True})).evaluate(IMAGE, "B")
    assert verdict.fallback
    assert not verdict.is_correct


def test_missing_client_or_image_never_calls_service() -> None:
    vision = StubVision(RawJudgment(True, 99, "A", "", ""))
    assert EvaluationGateway(None).evaluate(IMAGE, "A").fallback
    assert EvaluationGateway(vision).evaluate("", "A").fallback
    assert vision.calls == []


def test_fallback_confidence_from_config() -> None:
    gateway = EvaluationGateway(None, EvaluationConfig(fallback_confidence=10))
    assert gateway.fallback("C").confidence == 10


def test_describe_unknown_letter() -> None:
    assert describe_letter("?") == "Follow standard ISL guidelines for this letter."
    assert describe_letter("letter q").startswith("Thumb and index pinch")
