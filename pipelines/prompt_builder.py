"""
pipelines/prompt_builder.py

Renders the structured symptom payload into the natural-language prompt sent
to the hosted models. Optional fields are included only when present.
"""

from __future__ import annotations

import json
from typing import Any

from pipelines.schemas import SymptomInput

SYSTEM_PROMPT = (
    "You are a medical triage assistant for an educational demo. "
    "Respond ONLY with valid JSON, no markdown."
)

_SAFETY_GUIDELINES = """CRITICAL SAFETY GUIDELINES:
1. If patient mentions chest pain, severe difficulty breathing, uncontrolled bleeding, sudden numbness, confusion, or loss of consciousness - return EMERGENCY triage only.
2. For ages < 2 or > 65, be conservative and escalate triage level.
3. For pregnant patients, automatically escalate at least one level.
4. ONLY suggest OTC medications - never prescribe medications.
5. If unsure about anything, escalate the triage level."""

_RESPONSE_FORMAT = """REQUIRED JSON RESPONSE FORMAT (RESPOND ONLY WITH VALID JSON, NO MARKDOWN):
{
  "triage_level": "emergency" | "urgent-visit" | "see-doctor" | "self-care",
  "triage_reason": "Brief explanation of the triage decision",
  "recommendations": {
    "medicines": [
      {
        "name": "OTC medication name",
        "dose": "dose and frequency",
        "notes": "why this medication",
        "evidence_level": "Strong/Moderate/Supportive"
      }
    ],
    "home_remedies": ["remedy 1", "remedy 2"],
    "what_to_do": ["action 1", "action 2"],
    "what_not_to_do": ["avoid 1", "avoid 2"],
    "doctor_specialization": "type of doctor to consult",
    "indian_emergency_contacts": [{"name": "Ambulance", "number": "108"}],
    "follow_up": {
      "when_to_see_provider": "when to seek care",
      "suggested_doctor_type": "General Physician"
    }
  },
  "confidence_score": 0.0 to 1.0,
  "disclaimer": "This is an educational tool only and not medical advice. Always consult healthcare professionals."
}

Remember: For emergencies, return only emergency triage with minimal recommendations."""


def build_prompt(symptoms: SymptomInput, report_data: Any = None) -> str:
    lines = [
        "You are a medical triage assistant for an educational demonstration tool. "
        "Analyze the following symptoms and provide structured health guidance.",
        "",
        "SYMPTOM INFORMATION:",
        f"- Primary Symptoms: {symptoms.symptoms_text}",
        f"- Severity Level: {symptoms.severity}",
        f"- Patient Age: {symptoms.age}",
    ]
    if symptoms.onset:
        lines.append(f"- Symptom Onset: {symptoms.onset}")
    if symptoms.duration:
        lines.append(f"- Duration: {symptoms.duration}")
    if symptoms.existing_conditions:
        lines.append(f"- Existing Conditions: {symptoms.existing_conditions}")
    if symptoms.current_medications:
        lines.append(f"- Current Medications: {symptoms.current_medications}")
    if symptoms.allergies:
        lines.append(f"- Allergies: {symptoms.allergies}")
    if symptoms.is_pregnant:
        lines.append("- Patient is pregnant")

    if report_data:
        lines += [
            "",
            "MEDICAL REPORT DATA:",
            json.dumps(report_data, indent=2, ensure_ascii=False, default=str),
        ]

    lines += ["", _SAFETY_GUIDELINES, "", _RESPONSE_FORMAT]
    return "\n".join(lines)
