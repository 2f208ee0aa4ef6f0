import base64
import json
import logging
import re
import time
from typing import Iterable, Optional, Tuple

import requests

from app.backend.evaluation.policy import RawJudgment, judgment_from_dict

logger = logging.getLogger(__name__)

GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

_FENCE = re.compile(r"```(?:json)?\s*")


class VisionServiceError(Exception):
    pass


class VisionNotConfigured(VisionServiceError):
    pass


class VisionQuotaExceeded(VisionServiceError):
    pass


class VisionRateLimited(VisionServiceError):
    pass


def build_prompt(expected_letter: str, question_text: str) -> str:
    return f"""You are an expert Indian Sign Language (ISL) instructor.
STRICT TASK: Determine if the hand in the image correctly forms the ISL alphabet letter "{expected_letter}". Only evaluate ISL static alphabet handshapes. Generic hand gestures, random poses, or non-ISL gestures must be marked incorrect.

QUESTION CONTEXT: "{question_text}"

Output JSON only, no extra text. Use this exact schema:
{{
  "isCorrect": boolean,
  "confidence": number,
  "detectedLetter": "X",
  "analysis": "Short description of what you see and why",
  "feedback": "Precise correction tips for achieving {expected_letter} in ISL"
}}

DECISION RULES:
- isCorrect must be true only if the handshape matches {expected_letter} and no contradictory features are present.
- confidence is 0-100.
- detectedLetter is your best guess of the ISL letter seen (single A-Z). If unsure, put "Unknown".
- Be conservative: if lighting, occlusion, angle, or ambiguity prevents reliable judgment, set isCorrect=false and reduce confidence.
- If the visible handshape resembles a different ISL letter, set detectedLetter accordingly and isCorrect=false.
- Consider: finger extension/curl, thumb placement, finger count/spacing, palm orientation.
- If motion-based letters (e.g., J, Z) are not clearly inferable from a single frame, do not guess; use Unknown and isCorrect=false.

Return ONLY valid JSON."""


def extract_json_object(text: str) -> dict:
    cleaned = _FENCE.sub("", text or "").strip()
    first, last = cleaned.find("{"), cleaned.rfind("}")
    if first == -1 or last <= first:
        raise ValueError(f"No valid JSON found in response: {cleaned[:100]!r}")
    try:
        return json.loads(cleaned[first:last + 1])
    except json.JSONDecodeError as e:
        raise ValueError(f"JSON parsing failed: {e}. Raw JSON: {cleaned[first:first + 100]!r}") from e


def parse_judgment(text: str, expected_letter: str = "") -> RawJudgment:
    return judgment_from_dict(extract_json_object(text), expected_letter)


def load_image_payload(image: str, http: Optional[requests.Session] = None, timeout_s: float = 15.0) -> Tuple[str, str]:
    """Return (base64 data, mime type) for a data URL, a remote URL or bare base64."""
    if not image:
        raise ValueError("empty image")
    if image.startswith("data:"):
        header, _, data = image.partition(",")
        mime = header[5:].split(";", 1)[0] or "image/jpeg"
        return data, mime
    if image.startswith(("http://", "https://")):
        resp = (http or requests).get(image, timeout=timeout_s)
        if not resp.ok:
            raise VisionServiceError(f"Failed to fetch image ({resp.status_code})")
        mime = resp.headers.get("Content-Type", "image/jpeg").split(";", 1)[0]
        return base64.b64encode(resp.content).decode("ascii"), mime
    return image, "image/jpeg"


class GeminiVisionClient:
    """
    Thin REST client for Gemini ``generateContent`` with an ordered model
    fallback: a quota error stops the walk, a 429 waits and moves on.
    """

    def __init__(
        self,
        api_key: str,
        models: Iterable[str] = ("gemini-2.5-flash", "gemini-2.5-pro"),
        timeout_s: float = 30.0,
        rate_limit_backoff_s: float = 2.0,
        http: Optional[requests.Session] = None,
    ):
        self.api_key = (api_key or "").strip()
        self.models = tuple(models)
        self.timeout_s = timeout_s
        self.rate_limit_backoff_s = rate_limit_backoff_s
        self.http = http or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _generate(self, model: str, parts: list, temperature: float = 0.2) -> str:
        resp = self.http.post(
            GEMINI_URL.format(model=model),
            headers={"x-goog-api-key": self.api_key, "Content-Type": "application/json"},
            json={"contents": [{"parts": parts}], "generationConfig": {"temperature": temperature}},
            timeout=self.timeout_s,
        )
        if resp.status_code == 429:
            body = resp.text or ""
            if "quota" in body.lower():
                raise VisionQuotaExceeded(f"{model}: quota exceeded")
            raise VisionRateLimited(f"{model}: 429 rate limited")
        if not resp.ok:
            raise VisionServiceError(f"{model}: HTTP {resp.status_code}: {(resp.text or '')[:200]}")

        try:
            candidates = resp.json()["candidates"]
            text_parts = candidates[0]["content"]["parts"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise VisionServiceError(f"{model}: malformed response") from e
        return "".join(p.get("text", "") for p in text_parts if isinstance(p, dict))

    def judge(self, image: str, expected_letter: str, question_text: str = "") -> RawJudgment:
        if not self.configured:
            raise VisionNotConfigured("GEMINI_API_KEY is not set")

        data, mime = load_image_payload(image, self.http)
        parts = [
            {"inline_data": {"mime_type": mime, "data": data}},
            {"text": build_prompt(expected_letter, question_text)},
        ]

        last_error: Optional[Exception] = None
        for model in self.models:
            try:
                logger.info("Trying Gemini model: %s", model)
                text = self._generate(model, parts)
                logger.debug("Raw response from %s: %s", model, text[:200])
                judgment = parse_judgment(text, expected_letter)
                logger.info("Analyzed with %s: detected=%s confidence=%s", model, judgment.detected_letter, judgment.confidence)
                return judgment
            except VisionQuotaExceeded as e:
                logger.warning("Quota exceeded, skipping remaining models: %s", e)
                last_error = e
                break
            except VisionRateLimited as e:
                logger.warning("Rate limited, waiting before trying next model: %s", e)
                last_error = e
                time.sleep(self.rate_limit_backoff_s)
            except (VisionServiceError, ValueError, requests.RequestException) as e:
                logger.warning("Model %s failed: %s", model, e)
                last_error = e

        raise last_error or VisionServiceError("All Gemini models failed")

    def health(self) -> dict:
        model = self.models[0] if self.models else None
        if not self.configured:
            return {"ok": False, "configured": False, "model": model, "reason": "Missing GEMINI_API_KEY"}
        try:
            text = self._generate(model, [{"text": 'Reply with JSON only: {"ok": true}'}], temperature=0.0)
            extract_json_object(text)
        except (VisionServiceError, ValueError, requests.RequestException) as e:
            return {"ok": False, "configured": True, "model": model, "reason": str(e)}
        return {"ok": True, "configured": True, "model": model}
