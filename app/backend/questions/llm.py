import logging
from typing import Optional

import requests

logger = logging.getLogger(__name__)

GROQ_CHAT_URL = "https://api.groq.com/openai/v1/chat/completions"


class LLMServiceError(Exception):
    pass


class GroqChatClient:
    """Chat completions against Groq's OpenAI-compatible endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str = "llama-3.3-70b-versatile",
        timeout_s: float = 30.0,
        http: Optional[requests.Session] = None,
    ):
        self.api_key = (api_key or "").strip()
        self.model = model
        self.timeout_s = timeout_s
        self.http = http or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def complete(self, prompt: str, temperature: float = 0.7, max_tokens: int = 1024) -> str:
        if not self.configured:
            raise LLMServiceError("Groq API key not configured")
        try:
            resp = self.http.post(
                GROQ_CHAT_URL,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={
                    "model": self.model,
                    "messages": [{"role": "user", "content": prompt}],
                    "temperature": temperature,
                    "max_tokens": max_tokens,
                },
                timeout=self.timeout_s,
            )
        except requests.RequestException as e:
            raise LLMServiceError(f"Groq request failed: {e}") from e

        if not resp.ok:
            raise LLMServiceError(f"Groq HTTP {resp.status_code}: {(resp.text or '')[:200]}")
        try:
            content = resp.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise LLMServiceError("Malformed response from Groq") from e
        if not content:
            raise LLMServiceError("No response from Groq AI")
        return content
