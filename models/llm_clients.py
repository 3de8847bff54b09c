"""
models/llm_clients.py

HTTP clients for the hosted generative models used by the triage chain.

- GeminiClient: Google Generative Language ``generateContent`` endpoint
- OpenAIClient: OpenAI chat completions endpoint

Both expose ``generate(prompt) -> LLMReply`` and raise ``LLMError`` on any
failure (missing key, transport error, non-2xx status, empty content), so the
caller can treat every failure mode the same way.

Auth:
- GEMINI_API_KEY / OPENAI_API_KEY are read from the environment at call time.
  Keys are never embedded in source.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Optional

import requests
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
OPENAI_URL = "https://api.openai.com/v1/chat/completions"

DEFAULT_GEMINI_MODEL = "gemini-2.0-flash"
DEFAULT_OPENAI_MODEL = "gpt-3.5-turbo"
DEFAULT_TIMEOUT = 30.0


class LLMError(RuntimeError):
    """A hosted model call did not produce usable text."""


class LLMReply(BaseModel):
    text: str
    model: str
    tokens_used: Optional[int] = None
    raw: dict[str, Any] = Field(default_factory=dict)


def _timeout_from_env() -> float:
    raw = os.environ.get("LLM_TIMEOUT_SECONDS")
    if not raw:
        return DEFAULT_TIMEOUT
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring invalid LLM_TIMEOUT_SECONDS=%r", raw)
        return DEFAULT_TIMEOUT


def _post_json(url: str, *, name: str, timeout: float, **kwargs: Any) -> dict[str, Any]:
    try:
        resp = requests.post(url, timeout=timeout, **kwargs)
    except requests.RequestException as exc:
        raise LLMError(f"{name} request failed: {exc}") from exc

    if not resp.ok:
        # Body may carry the provider's error message; keep it short.
        raise LLMError(f"{name} returned HTTP {resp.status_code}: {resp.text[:200]}")

    try:
        data = resp.json()
    except ValueError as exc:
        raise LLMError(f"{name} returned a non-JSON body") from exc
    if not isinstance(data, dict):
        raise LLMError(f"{name} returned unexpected JSON")
    return data


class GeminiClient:
    """Primary provider."""

    name = "gemini"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else os.environ.get("GEMINI_API_KEY")
        self.model = model or os.environ.get("GEMINI_MODEL") or DEFAULT_GEMINI_MODEL
        self.timeout = timeout if timeout is not None else _timeout_from_env()

    def generate(self, prompt: str) -> LLMReply:
        if not self.api_key:
            raise LLMError("GEMINI_API_KEY is not configured")

        logger.info("Calling Gemini model=%s", self.model)
        data = _post_json(
            GEMINI_URL.format(model=self.model),
            name="Gemini",
            timeout=self.timeout,
            params={"key": self.api_key},
            headers={"Content-Type": "application/json"},
            json={
                "contents": [{"parts": [{"text": prompt}]}],
                "generationConfig": {
                    "temperature": 0.2,
                    "maxOutputTokens": 2048,
                    "topP": 0.8,
                },
            },
        )

        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as exc:
            raise LLMError("No content in Gemini response") from exc
        if not isinstance(text, str) or not text.strip():
            raise LLMError("Empty content in Gemini response")

        tokens = (data.get("usageMetadata") or {}).get("totalTokenCount")
        return LLMReply(text=text, model=self.model, tokens_used=tokens, raw=data)


class OpenAIClient:
    """Secondary provider."""

    name = "openai"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        system_prompt: str | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else os.environ.get("OPENAI_API_KEY")
        self.model = model or os.environ.get("OPENAI_MODEL") or DEFAULT_OPENAI_MODEL
        self.timeout = timeout if timeout is not None else _timeout_from_env()
        self.system_prompt = system_prompt

    def generate(self, prompt: str) -> LLMReply:
        if not self.api_key:
            raise LLMError("OPENAI_API_KEY is not configured")

        messages = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        messages.append({"role": "user", "content": prompt})

        logger.info("Calling OpenAI model=%s", self.model)
        data = _post_json(
            OPENAI_URL,
            name="OpenAI",
            timeout=self.timeout,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            json={
                "model": self.model,
                "messages": messages,
                "temperature": 0.2,
                "max_tokens": 2048,
            },
        )

        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise LLMError("No content in OpenAI response") from exc
        if not isinstance(text, str) or not text.strip():
            raise LLMError("Empty content in OpenAI response")

        tokens = (data.get("usage") or {}).get("total_tokens")
        return LLMReply(text=text, model=self.model, tokens_used=tokens, raw=data)
