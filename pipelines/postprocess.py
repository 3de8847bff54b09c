"""
pipelines/postprocess.py

Turns raw model text into the canonical TriageResult.

- extract_json_object: brace-matching scan that tolerates markdown fences and
  chatter around the JSON
- parse_model_output: text -> dict, raises ValueError so the analysis chain
  can fall through to the next provider
- normalize_analysis: dict of uncertain shape -> TriageResult (never raises)
"""

import json
import logging
import math
import re
from typing import Any, Optional

from pipelines.schemas import (
    DEFAULT_DISCLAIMER,
    TRIAGE_ORDER,
    EmergencyContact,
    FollowUp,
    Medicine,
    Recommendations,
    TriageResult,
)

logger = logging.getLogger(__name__)

DEFAULT_REASON = "Assessment completed based on provided information"
DEFAULT_CONFIDENCE = 0.5

_TRIAGE_ALIASES: dict[str, str] = {
    "emergency": "emergency",
    "critical": "emergency",
    "urgent": "urgent-visit",
    "urgent visit": "urgent-visit",
    "urgent care": "urgent-visit",
    "see doctor": "see-doctor",
    "see a doctor": "see-doctor",
    "doctor": "see-doctor",
    "routine": "see-doctor",
    "self care": "self-care",
    "selfcare": "self-care",
    "home care": "self-care",
}


def extract_json_object(text: str) -> Optional[str]:
    """
    Extract the first {...} JSON object from a messy LLM output using a brace-matching scan.
    Returns the JSON string or None.
    """
    if not text:
        return None

    text = re.sub(r"```(?:json)?", "", text, flags=re.IGNORECASE)

    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        c = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif c == "\\":
                escaped = True
            elif c == '"':
                in_string = False
            continue
        if c == '"':
            in_string = True
        elif c == "{":
            depth += 1
        elif c == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]

    return None


def parse_model_output(raw_output: str) -> dict[str, Any]:
    """
    Parse model text into a dict.

    Raises:
        ValueError: if no JSON object is found, the JSON is invalid, or the
            top-level value is not an object.
    """
    json_str = extract_json_object(raw_output)
    if json_str is None:
        raise ValueError("No JSON object found in model output.")

    try:
        data = json.loads(json_str)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ValueError("Model output JSON is not an object.")
    return data


def normalize_triage_level(value: Any) -> str:
    """
    Map a model's triage label onto one of the four levels.

    Exact values and aliases win. Otherwise the most severe level whose name
    or alias appears as words in the label is used ("Emergency." ->
    emergency); only a label naming no level falls back to see-doctor.
    """
    if not isinstance(value, str):
        return "see-doctor"
    lvl = value.strip().lower()
    if lvl in TRIAGE_ORDER:
        return lvl
    key = re.sub(r"[-_]+", " ", lvl)
    if key in _TRIAGE_ALIASES:
        return _TRIAGE_ALIASES[key]

    words = f" {re.sub(r'[^a-z]+', ' ', lvl).strip()} "
    found = [
        level
        for phrase, level in _TRIAGE_ALIASES.items()
        if f" {phrase} " in words
    ]
    if not found:
        return "see-doctor"
    return max(found, key=TRIAGE_ORDER.index)


def clamp_confidence(value: Any) -> float:
    if isinstance(value, bool):
        return DEFAULT_CONFIDENCE
    if isinstance(value, str):
        text = value.strip()
        try:
            value = float(text.rstrip("%"))
        except ValueError:
            return DEFAULT_CONFIDENCE
        if text.endswith("%"):
            value /= 100
    if not isinstance(value, (int, float)) or math.isnan(value):
        return DEFAULT_CONFIDENCE
    return min(max(float(value), 0.0), 1.0)


def _as_str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    out: list[str] = []
    for item in value:
        if isinstance(item, (str, int, float)) and not isinstance(item, bool):
            s = str(item).strip()
            if s:
                out.append(s)
    return out


def _optional_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _as_medicines(value: Any) -> list[Medicine]:
    if not isinstance(value, list):
        return []
    meds: list[Medicine] = []
    for item in value:
        if isinstance(item, str) and item.strip():
            meds.append(Medicine(name=item.strip()))
        elif isinstance(item, dict):
            meds.append(
                Medicine(
                    name=_optional_str(item.get("name")) or "Unknown medication",
                    dose=_optional_str(item.get("dose")),
                    notes=_optional_str(item.get("notes")),
                    evidence_level=_optional_str(item.get("evidence_level")),
                )
            )
    return meds


def _as_contacts(value: Any) -> list[EmergencyContact]:
    if not isinstance(value, list):
        return []
    contacts: list[EmergencyContact] = []
    for item in value:
        if not isinstance(item, dict):
            continue
        name = _optional_str(item.get("name")) or _optional_str(item.get("service"))
        number = item.get("number", item.get("phone"))
        if isinstance(number, (int, float)) and not isinstance(number, bool):
            number = str(int(number))
        number = _optional_str(number)
        if name and number:
            contacts.append(EmergencyContact(name=name, number=number))
    return contacts


def _as_follow_up(value: Any) -> FollowUp:
    if not isinstance(value, dict):
        return FollowUp()
    return FollowUp(
        when_to_see_provider=_optional_str(value.get("when_to_see_provider")),
        suggested_doctor_type=_optional_str(value.get("suggested_doctor_type")),
    )


def normalize_recommendations(raw: Any) -> Recommendations:
    recs = raw if isinstance(raw, dict) else {}
    return Recommendations(
        medicines=_as_medicines(recs.get("medicines")),
        home_remedies=_as_str_list(recs.get("home_remedies")),
        what_to_do=_as_str_list(recs.get("what_to_do")),
        what_not_to_do=_as_str_list(recs.get("what_not_to_do")),
        doctor_specialization=_optional_str(recs.get("doctor_specialization")),
        indian_emergency_contacts=_as_contacts(recs.get("indian_emergency_contacts")),
        follow_up=_as_follow_up(recs.get("follow_up")),
        disclaimer=_optional_str(recs.get("disclaimer")),
    )


def normalize_analysis(raw: Any) -> TriageResult:
    """
    Coerce a parsed model response of uncertain shape into a TriageResult.

    Missing or malformed fields fall back to conservative defaults; this
    function never raises.
    """
    data = raw if isinstance(raw, dict) else {}
    if not isinstance(raw, dict):
        logger.warning("normalize_analysis: expected dict, got %s", type(raw).__name__)

    return TriageResult(
        triage_level=normalize_triage_level(data.get("triage_level")),
        triage_reason=_optional_str(data.get("triage_reason")) or DEFAULT_REASON,
        recommendations=normalize_recommendations(data.get("recommendations")),
        confidence_score=clamp_confidence(data.get("confidence_score")),
        sources=_as_str_list(data.get("sources")),
        disclaimer=_optional_str(data.get("disclaimer")) or DEFAULT_DISCLAIMER,
    )
