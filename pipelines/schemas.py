"""
pipelines/schemas.py

Pydantic models for the symptom-triage workflow:
- SymptomInput: the structured payload collected by the assessment form
- Recommendations / TriageResult: the canonical analysis response shape

Triage ordering helpers live here too so that every escalation rule shares
one definition of "more severe".
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator


TriageLevel = Literal["emergency", "urgent-visit", "see-doctor", "self-care"]
Severity = Literal["mild", "moderate", "significant", "severe", "emergency-level"]

# Least to most severe.
TRIAGE_ORDER: tuple[str, ...] = ("self-care", "see-doctor", "urgent-visit", "emergency")

DEFAULT_DISCLAIMER = (
    "This is an educational tool only and not medical advice. "
    "Always consult healthcare professionals."
)


def triage_rank(level: str) -> int:
    """Position of *level* in TRIAGE_ORDER; raises ValueError for unknown levels."""
    return TRIAGE_ORDER.index(level)


def escalate(current: str, target: str) -> str:
    """Return whichever of the two levels is more severe."""
    return current if triage_rank(current) >= triage_rank(target) else target


def step_up(level: str, cap: str = "urgent-visit") -> str:
    """
    Raise *level* by one step, but never past *cap*.

    A level already at or above the cap is returned unchanged, so this can
    only escalate.
    """
    rank = triage_rank(level)
    if rank >= triage_rank(cap):
        return level
    return TRIAGE_ORDER[rank + 1]


class SymptomInput(BaseModel):
    symptoms_text: str = Field(min_length=10)
    severity: Severity
    age: int = Field(ge=1, le=120)
    onset: Optional[str] = None
    duration: Optional[str] = None
    existing_conditions: Optional[str] = None
    current_medications: Optional[str] = None
    allergies: Optional[str] = None
    is_pregnant: bool = False

    @field_validator("symptoms_text", mode="before")
    @classmethod
    def _strip_symptoms(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("severity", mode="before")
    @classmethod
    def _lower_severity(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator(
        "onset", "duration", "existing_conditions", "current_medications", "allergies",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class Medicine(BaseModel):
    name: str
    dose: Optional[str] = None
    notes: Optional[str] = None
    evidence_level: Optional[str] = None


class EmergencyContact(BaseModel):
    name: str
    number: str


class FollowUp(BaseModel):
    when_to_see_provider: Optional[str] = None
    suggested_doctor_type: Optional[str] = None


class Recommendations(BaseModel):
    medicines: list[Medicine] = Field(default_factory=list)
    home_remedies: list[str] = Field(default_factory=list)
    what_to_do: list[str] = Field(default_factory=list)
    what_not_to_do: list[str] = Field(default_factory=list)
    doctor_specialization: Optional[str] = None
    indian_emergency_contacts: list[EmergencyContact] = Field(default_factory=list)
    follow_up: FollowUp = Field(default_factory=FollowUp)
    disclaimer: Optional[str] = None


class TriageResult(BaseModel):
    triage_level: TriageLevel
    triage_reason: str
    recommendations: Recommendations = Field(default_factory=Recommendations)
    confidence_score: float = Field(ge=0.0, le=1.0)
    sources: list[str] = Field(default_factory=list)
    disclaimer: str = DEFAULT_DISCLAIMER
