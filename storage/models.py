"""
storage/models.py

Pydantic v2 record models for the Apna Health data store.

These describe rows as they come out of db.py (JSON columns already decoded,
encrypted columns already decrypted). They are NOT ORM models; persistence is
handled entirely by db.py.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class TriageLevel(str, Enum):
    emergency = "emergency"
    urgent_visit = "urgent-visit"
    see_doctor = "see-doctor"
    self_care = "self-care"


class OcrStatus(str, Enum):
    """pending -> completed | failed; terminal states never change."""
    pending = "pending"
    completed = "completed"
    failed = "failed"


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class SessionRecord(BaseModel):
    """
    One symptom assessment.

    The triage fields stay ``None`` until analysis completes; consumers must
    read that as "pending", not "failed".
    """
    id: str
    user_id: str
    symptoms_text: str
    severity: str | None = None
    onset: str | None = None
    duration: str | None = None
    existing_conditions: str | None = None
    current_medications: str | None = None
    allergies: str | None = None
    age: int | None = None
    is_pregnant: bool = False
    triage_level: TriageLevel | None = None
    triage_reason: str | None = None
    confidence_score: float | None = None
    recommendations: dict[str, Any] | None = None
    created_at: str = Field(description="ISO-8601 UTC timestamp.")

    class Config:
        use_enum_values = True

    @property
    def is_pending(self) -> bool:
        return self.triage_level is None


class ReportFileRecord(BaseModel):
    """An uploaded medical document attached to a session."""
    id: str
    session_id: str
    user_id: str
    file_name: str
    file_path: str = Field(description="Path inside the blob store bucket.")
    file_type: str
    file_size: int
    ocr_status: OcrStatus = OcrStatus.pending
    ocr_text: str | None = None
    parsed_data: dict[str, Any] | None = None
    created_at: str

    class Config:
        use_enum_values = True


class ConsentRecord(BaseModel):
    """An append-only consent row; the newest row per user is authoritative."""
    id: str
    user_id: str
    consent_given: bool
    consent_text: str
    ip_address: str | None = None
    user_agent: str | None = None
    created_at: str


class LlmAuditEntry(BaseModel):
    """One write-once audit row per analysis call."""
    id: str
    session_id: str
    user_id: str
    prompt_data: dict[str, Any]
    response_data: dict[str, Any]
    model_used: str
    tokens_used: int | None = None
    created_at: str
