"""
models/ocr_client.py

Multimodal OCR through an OpenAI-compatible AI gateway.

The document is sent inline as a base64 data URL alongside a fixed extraction
prompt. Configuration:
- AI_GATEWAY_URL      full chat-completions URL of the gateway
- AI_GATEWAY_API_KEY  bearer token
- OCR_MODEL           optional model override
"""

from __future__ import annotations

import logging
import os

import requests

from models.llm_clients import LLMError, LLMReply

logger = logging.getLogger(__name__)

DEFAULT_OCR_MODEL = "google/gemini-2.5-flash"
DEFAULT_OCR_TIMEOUT = 60.0

OCR_PROMPT = """Extract all text and structured data from this medical report.

Return JSON with:
{
  "extracted_text": "Full OCR text",
  "structured_data": {
    "lab_values": [{"test": "", "value": "", "unit": "", "reference_range": "", "flag": ""}],
    "dates": [],
    "medications": [],
    "diagnoses": [],
    "vital_signs": {}
  }
}"""


class OcrClient:
    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float = DEFAULT_OCR_TIMEOUT,
    ) -> None:
        self.url = url if url is not None else os.environ.get("AI_GATEWAY_URL")
        self.api_key = api_key if api_key is not None else os.environ.get("AI_GATEWAY_API_KEY")
        self.model = model or os.environ.get("OCR_MODEL") or DEFAULT_OCR_MODEL
        self.timeout = timeout

    def extract(self, base64_data: str, mime_type: str) -> LLMReply:
        """
        Send one document to the gateway and return the model's text reply.

        Raises:
            LLMError: if the gateway is not configured or the call fails.
        """
        if not self.url or not self.api_key:
            raise LLMError("AI gateway configuration is missing")

        payload = {
            "model": self.model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": OCR_PROMPT},
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:{mime_type};base64,{base64_data}"},
                        },
                    ],
                }
            ],
        }

        logger.info("Calling OCR gateway model=%s mime=%s", self.model, mime_type)
        try:
            resp = requests.post(
                self.url,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise LLMError(f"OCR request failed: {exc}") from exc

        if not resp.ok:
            raise LLMError(f"OCR processing failed (HTTP {resp.status_code})")

        try:
            data = resp.json()
            text = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise LLMError("OCR gateway returned an unexpected body") from exc
        if not isinstance(text, str):
            raise LLMError("OCR gateway returned no text")

        tokens = (data.get("usage") or {}).get("total_tokens")
        return LLMReply(text=text, model=self.model, tokens_used=tokens, raw=data)
