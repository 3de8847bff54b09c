from __future__ import annotations

import json

import pytest
from cryptography.fernet import Fernet

from models.llm_clients import LLMError, LLMReply
from pipelines.schemas import SymptomInput
from storage import crypto, db


class FakeProvider:
    """Stands in for a hosted model: returns canned text or raises LLMError."""

    def __init__(self, name: str, reply: str | dict | None = None, error: str | None = None):
        self.name = name
        self.reply = reply
        self.error = error
        self.prompts: list[str] = []

    def generate(self, prompt: str) -> LLMReply:
        self.prompts.append(prompt)
        if self.error is not None:
            raise LLMError(self.error)
        text = self.reply if isinstance(self.reply, str) else json.dumps(self.reply)
        return LLMReply(text=text, model=f"{self.name}-model", tokens_used=42)


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Fresh database, blob dir and encryption key per test; no real API keys."""
    monkeypatch.setenv("APNA_DB_PATH", str(tmp_path / "test.db"))
    monkeypatch.setenv("APNA_BLOB_DIR", str(tmp_path / "blobs"))
    monkeypatch.setenv("APP_DATA_KEY", Fernet.generate_key().decode())
    for var in (
        "GEMINI_API_KEY", "GEMINI_MODEL", "OPENAI_API_KEY", "OPENAI_MODEL",
        "LLM_TIMEOUT_SECONDS", "AI_GATEWAY_URL", "AI_GATEWAY_API_KEY", "OCR_MODEL",
    ):
        monkeypatch.delenv(var, raising=False)
    crypto._get_fernet.cache_clear()
    db.init_db()
    yield
    crypto._get_fernet.cache_clear()


@pytest.fixture
def symptoms() -> SymptomInput:
    return SymptomInput(
        symptoms_text="Fever with cough and sore throat since yesterday",
        severity="moderate",
        age=30,
    )


@pytest.fixture
def model_answer() -> dict:
    return {
        "triage_level": "see-doctor",
        "triage_reason": "Likely viral upper respiratory infection.",
        "recommendations": {
            "medicines": [{"name": "Paracetamol", "dose": "500 mg", "notes": "for fever"}],
            "home_remedies": ["Warm salt water gargle"],
            "what_to_do": ["Rest", "Drink fluids"],
            "what_not_to_do": ["Do not take antibiotics without prescription"],
        },
        "confidence_score": 0.72,
        "sources": ["WHO"],
        "disclaimer": "Educational only.",
    }
