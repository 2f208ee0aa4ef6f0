from __future__ import annotations

import json

import pytest

from app.backend.evaluation.vision import (
    GeminiVisionClient,
    VisionNotConfigured,
    VisionQuotaExceeded,
    extract_json_object,
    load_image_payload,
    parse_judgment,
)

IMAGE = "data:image/jpeg;base64,/9j/AAAA"


class FakeResponse:
    def __init__(self, status_code=200, body=None, text=None, content=b"", headers=None):
        self.status_code = status_code
        self._body = body
        self.text = text if text is not None else json.dumps(body or {})
        self.content = content
        self.headers = headers or {}

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


def gemini_reply(text: str) -> FakeResponse:
    return FakeResponse(body={"candidates": [{"content": {"parts": [{"text": text}]}}]})


class FakeHttp:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.posts = []

    def post(self, url, **kwargs):
        self.posts.append((url, kwargs))
        return self.responses.pop(0)

    def get(self, url, **kwargs):
        return self.responses.pop(0)


def test_extract_json_strips_code_fences() -> None:
    text = 'Sure!\n```json\n{"isCorrect": true, "confidence": 91}\n```'
    assert extract_json_object(text) == {"isCorrect": True, "confidence": 91}


def test_extract_json_without_object_raises() -> None:
    with pytest.raises(ValueError):
        extract_json_object("I cannot see a hand")


def test_parse_judgment_fills_defaults() -> None:
    raw = parse_judgment('{"detectedLetter": "B", "confidence": 140}', "B")
    assert raw.confidence == 100
    assert raw.is_correct is False
    assert raw.detected_letter == "B"


def test_load_image_payload_variants() -> None:
    assert load_image_payload(IMAGE) == ("/9j/AAAA", "image/jpeg")
    assert load_image_payload("iVBORw0KGgo") == ("iVBORw0KGgo", "image/jpeg")
    http = FakeHttp(FakeResponse(content=b"\x89PNG", headers={"Content-Type": "image/png"}))
    data, mime = load_image_payload("https://cdn.example/x.png", http)
    assert mime == "image/png"
    assert data == "iVBORw=="


def test_judge_sends_image_and_prompt() -> None:
    http = FakeHttp(gemini_reply('{"isCorrect": true, "confidence": 88, "detectedLetter": "L"}'))
    client = GeminiVisionClient("key", models=("m1",), http=http)
    raw = client.judge(IMAGE, "L", "Show L")

    assert raw.detected_letter == "L"
    url, kwargs = http.posts[0]
    assert "m1:generateContent" in url
    assert kwargs["headers"]["x-goog-api-key"] == "key"
    assert kwargs["timeout"] == 30.0
    parts = kwargs["json"]["contents"][0]["parts"]
    assert parts[0]["inline_data"] == {"mime_type": "image/jpeg", "data": "/9j/AAAA"}
    assert '"L"' in parts[1]["text"]


def test_rate_limit_moves_to_next_model() -> None:
    http = FakeHttp(
        FakeResponse(429, text="Too many requests"),
        gemini_reply('{"isCorrect": false, "confidence": 30, "detectedLetter": "Unknown"}'),
    )
    client = GeminiVisionClient("key", models=("m1", "m2"), rate_limit_backoff_s=0, http=http)
    raw = client.judge(IMAGE, "A")
    assert raw.confidence == 30
    assert "m2" in http.posts[1][0]


def test_quota_error_stops_model_walk() -> None:
    http = FakeHttp(FakeResponse(429, text="Quota exceeded for metric"), gemini_reply("{}"))
    client = GeminiVisionClient("key", models=("m1", "m2"), rate_limit_backoff_s=0, http=http)
    with pytest.raises(VisionQuotaExceeded):
        client.judge(IMAGE, "A")
    assert len(http.posts) == 1


def test_unconfigured_client_refuses() -> None:
    client = GeminiVisionClient("", http=FakeHttp())
    assert not client.configured
    with pytest.raises(VisionNotConfigured):
        client.judge(IMAGE, "A")
    assert client.health()["reason"] == "Missing GEMINI_API_KEY"


def test_health_reports_failure_reason() -> None:
    http = FakeHttp(FakeResponse(500, text="boom"))
    health = GeminiVisionClient("key", models=("m1",), http=http).health()
    assert health["ok"] is False
    assert health["configured"] is True
    assert "500" in health["reason"]
