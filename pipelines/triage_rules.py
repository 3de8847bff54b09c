"""
pipelines/triage_rules.py

Deterministic safety net used when no hosted model produced a usable answer.

The decision is a fixed sequence:
  1. severity label -> base triage level (lookup table)
  2. emergency keyword in the symptom text -> emergency
  3. age extremes, pregnancy, serious comorbidities -> escalate
  4. canned recommendation bundle chosen by symptom combination

Every rule in step 2 and 3 goes through schemas.escalate / schemas.step_up,
so none of them can lower the level. Confidence scores are fixed per branch.
"""

from __future__ import annotations

import logging
from typing import Any

from pipelines.schemas import (
    EmergencyContact,
    FollowUp,
    Medicine,
    Recommendations,
    SymptomInput,
    TriageResult,
    escalate,
    step_up,
)

logger = logging.getLogger(__name__)

SEVERITY_TO_TRIAGE: dict[str, str] = {
    "emergency-level": "emergency",
    "severe": "urgent-visit",
    "significant": "see-doctor",
    "moderate": "see-doctor",
    "mild": "self-care",
}

EMERGENCY_KEYWORDS: tuple[str, ...] = (
    "chest pain",
    "chest pressure",
    "difficulty breathing",
    "can't breathe",
    "cannot breathe",
    "uncontrolled bleeding",
    "severe bleeding",
    "sudden weakness",
    "sudden numbness",
    "one-sided weakness",
    "slurred speech",
    "confusion",
    "loss of consciousness",
    "unconscious",
    "fainted",
    "seizure",
    "anaphylaxis",
    "severe allergic reaction",
    "severe burn",
    "suicidal",
)

SERIOUS_COMORBIDITIES: tuple[str, ...] = (
    "diabetes",
    "heart disease",
    "heart failure",
    "copd",
    "asthma",
    "kidney",
    "cancer",
    "immunocompromised",
    "hiv",
    "hypertension",
    "liver",
)

INDIAN_EMERGENCY_CONTACTS: tuple[EmergencyContact, ...] = (
    EmergencyContact(name="National Emergency Number", number="112"),
    EmergencyContact(name="Ambulance", number="108"),
    EmergencyContact(name="Ambulance (alternate)", number="102"),
)

FALLBACK_DISCLAIMER = (
    "This fallback assessment is for educational purposes only. Please consult with "
    "qualified healthcare professionals for accurate diagnosis and treatment."
)

EMERGENCY_CONFIDENCE = 0.85


def find_emergency_keywords(text: str) -> list[str]:
    """Return every emergency keyword that appears in *text* (case-insensitive)."""
    t = (text or "").lower()
    return [kw for kw in EMERGENCY_KEYWORDS if kw in t]


def find_comorbidities(text: str | None) -> list[str]:
    t = (text or "").lower()
    return [c for c in SERIOUS_COMORBIDITIES if c in t]


# ---------------------------------------------------------------------------
# Recommendation bundles
# ---------------------------------------------------------------------------
# Each bundle matches when every group has at least one term in the text.

_BUNDLES: list[dict[str, Any]] = [
    {
        "name": "flu-like",
        "groups": [("fever", "temperature"), ("cough",), ("sore throat", "throat pain")],
        "confidence": 0.55,
        "medicines": [
            Medicine(
                name="Paracetamol",
                dose="500 mg every 6 hours as needed (max 4 g/day)",
                notes="For fever and body ache",
                evidence_level="Strong",
            ),
            Medicine(
                name="Throat lozenges",
                dose="As directed on the pack",
                notes="Soothes sore throat",
                evidence_level="Supportive",
            ),
        ],
        "home_remedies": [
            "Warm salt-water gargles 3-4 times a day",
            "Steam inhalation twice daily",
            "Warm fluids such as soups and herbal tea",
            "Rest and adequate sleep",
        ],
        "what_to_do": [
            "Check your temperature twice a day",
            "Stay hydrated",
            "Wear a mask around others",
            "See a doctor if fever lasts more than 3 days",
        ],
        "what_not_to_do": [
            "Do not take antibiotics without a prescription",
            "Do not share utensils or towels",
            "Do not ignore breathing difficulty",
        ],
        "doctor_specialization": "General Physician",
        "when_to_see_provider": "If fever persists beyond 3 days or breathing becomes difficult",
    },
    {
        "name": "common-cold",
        "groups": [("runny nose", "blocked nose", "stuffy nose", "sneez"), ("cough", "sore throat", "congestion", "sneez")],
        "confidence": 0.5,
        "medicines": [
            Medicine(
                name="Saline nasal spray",
                dose="2 sprays per nostril up to 4 times a day",
                notes="Relieves congestion",
                evidence_level="Supportive",
            ),
            Medicine(
                name="Cetirizine",
                dose="10 mg once daily",
                notes="For sneezing and runny nose; may cause drowsiness",
                evidence_level="Moderate",
            ),
        ],
        "home_remedies": [
            "Steam inhalation",
            "Honey with warm water or ginger tea",
            "Rest and fluids",
        ],
        "what_to_do": [
            "Wash hands frequently",
            "Keep the room well ventilated",
            "Monitor for fever",
        ],
        "what_not_to_do": [
            "Do not take antibiotics for a cold",
            "Do not overuse decongestant sprays beyond 3 days",
        ],
        "doctor_specialization": "General Physician",
        "when_to_see_provider": "If symptoms last longer than 10 days",
    },
    {
        "name": "gastro",
        "groups": [("vomit", "diarrh", "loose motion", "nausea", "stomach upset")],
        "confidence": 0.5,
        "medicines": [
            Medicine(
                name="Oral rehydration salts (ORS)",
                dose="Sip after every loose stool or vomit",
                notes="Prevents dehydration",
                evidence_level="Strong",
            ),
        ],
        "home_remedies": [
            "Small frequent sips of water, coconut water or rice water",
            "Bland foods such as khichdi, banana, curd rice",
            "Rest",
        ],
        "what_to_do": [
            "Watch for signs of dehydration (dry mouth, little urine, dizziness)",
            "Wash hands before eating and after using the toilet",
        ],
        "what_not_to_do": [
            "Do not eat oily, spicy or outside food",
            "Do not take anti-diarrhoeal tablets if there is blood in stool or high fever",
        ],
        "doctor_specialization": "Gastroenterologist",
        "when_to_see_provider": "If you cannot keep fluids down, or symptoms last over 2 days",
    },
    {
        "name": "headache",
        "groups": [("headache", "migraine", "head ache")],
        "confidence": 0.45,
        "medicines": [
            Medicine(
                name="Paracetamol",
                dose="500 mg every 6 hours as needed",
                notes="For mild to moderate headache",
                evidence_level="Strong",
            ),
        ],
        "home_remedies": [
            "Rest in a quiet, dark room",
            "Cold compress on the forehead",
            "Drink enough water",
        ],
        "what_to_do": [
            "Keep a headache diary of triggers and timing",
            "Maintain regular sleep and meals",
        ],
        "what_not_to_do": [
            "Do not overuse painkillers (more than 10 days a month)",
            "Do not skip meals",
        ],
        "doctor_specialization": "General Physician",
        "when_to_see_provider": "If the headache is sudden and severe, or comes with vision changes",
    },
    {
        "name": "skin-allergy",
        "groups": [("rash", "itch", "hives")],
        "confidence": 0.45,
        "medicines": [
            Medicine(
                name="Cetirizine",
                dose="10 mg once daily",
                notes="Reduces itching",
                evidence_level="Moderate",
            ),
            Medicine(
                name="Calamine lotion",
                dose="Apply to affected skin 2-3 times a day",
                notes="Soothes irritation",
                evidence_level="Supportive",
            ),
        ],
        "home_remedies": [
            "Cool compress on the affected area",
            "Wear loose cotton clothing",
        ],
        "what_to_do": [
            "Identify and avoid possible triggers (new soap, food, medicine)",
        ],
        "what_not_to_do": [
            "Do not scratch the rash",
            "Do not apply steroid creams without advice",
        ],
        "doctor_specialization": "Dermatologist",
        "when_to_see_provider": "If the rash spreads quickly or comes with swelling of face or lips",
    },
]

_GENERIC_BUNDLE: dict[str, Any] = {
    "name": "generic",
    "confidence": 0.35,
    "medicines": [
        Medicine(
            name="Consult a pharmacist",
            dose="Before any OTC medication",
            notes="To avoid drug interactions",
        ),
    ],
    "home_remedies": [
        "Rest and adequate sleep",
        "Stay well hydrated with water or electrolyte beverages",
        "Monitor symptom progression",
        "Maintain comfortable room temperature",
        "Track symptom patterns in a log",
    ],
    "what_to_do": [
        "Contact a healthcare provider for professional evaluation",
        "Keep a symptom diary with timing and severity",
        "Follow any prescribed treatment from your doctor",
        "Stay informed about your symptoms",
        "Maintain good hygiene practices",
    ],
    "what_not_to_do": [
        "Do not self-diagnose or self-treat serious symptoms",
        "Do not ignore worsening symptoms",
        "Do not stop prescribed medications without consulting your doctor",
        "Do not delay seeking professional help if symptoms escalate",
    ],
    "doctor_specialization": "General Physician",
    "when_to_see_provider": "If symptoms worsen or do not improve within a few days",
}


def select_bundle(text: str) -> dict[str, Any]:
    """Return the first bundle whose symptom groups all match *text*, else the generic one."""
    t = (text or "").lower()
    for bundle in _BUNDLES:
        if all(any(term in t for term in group) for group in bundle["groups"]):
            return bundle
    return _GENERIC_BUNDLE


def _emergency_recommendations() -> Recommendations:
    return Recommendations(
        what_to_do=[
            "Call 112 or 108 for an ambulance immediately",
            "Go to the nearest emergency department",
            "Stay with someone until help arrives",
        ],
        what_not_to_do=[
            "Do not drive yourself to the hospital",
            "Do not wait for symptoms to pass",
            "Do not take any medication unless advised by emergency services",
        ],
        doctor_specialization="Emergency Medicine",
        indian_emergency_contacts=list(INDIAN_EMERGENCY_CONTACTS),
        follow_up=FollowUp(
            when_to_see_provider="Immediately",
            suggested_doctor_type="Emergency Medicine",
        ),
        disclaimer=FALLBACK_DISCLAIMER,
    )


def restrict_to_emergency_care(recs: Recommendations) -> Recommendations:
    """
    Emergency results carry no self-treatment advice.

    Medicines and home remedies are dropped; missing actions and contacts
    are filled from the rule-based emergency guidance.
    """
    fallback = _emergency_recommendations()
    return recs.model_copy(
        update={
            "medicines": [],
            "home_remedies": [],
            "what_to_do": recs.what_to_do or fallback.what_to_do,
            "indian_emergency_contacts": (
                recs.indian_emergency_contacts or fallback.indian_emergency_contacts
            ),
        }
    )


def _bundle_recommendations(bundle: dict[str, Any], level: str) -> Recommendations:
    contacts = list(INDIAN_EMERGENCY_CONTACTS) if level == "urgent-visit" else []
    return Recommendations(
        medicines=list(bundle["medicines"]),
        home_remedies=list(bundle["home_remedies"]),
        what_to_do=list(bundle["what_to_do"]),
        what_not_to_do=list(bundle["what_not_to_do"]),
        doctor_specialization=bundle["doctor_specialization"],
        indian_emergency_contacts=contacts,
        follow_up=FollowUp(
            when_to_see_provider=bundle["when_to_see_provider"],
            suggested_doctor_type=bundle["doctor_specialization"],
        ),
        disclaimer=FALLBACK_DISCLAIMER,
    )


# ---------------------------------------------------------------------------
# Decision
# ---------------------------------------------------------------------------


def assess_level(symptoms: SymptomInput) -> tuple[str, list[str]]:
    """
    Compute the heuristic triage level and the reasons that produced it.

    Returns:
        ``(level, reasons)``
    """
    level = SEVERITY_TO_TRIAGE.get(symptoms.severity, "see-doctor")
    reasons = [f"Reported severity '{symptoms.severity}' maps to {level}."]

    hits = find_emergency_keywords(symptoms.symptoms_text)
    if hits:
        level = escalate(level, "emergency")
        reasons.append(f"Emergency warning sign reported: {', '.join(hits)}.")

    if symptoms.age < 2 or symptoms.age > 65:
        new_level = step_up(level)
        if new_level != level:
            reasons.append(f"Age {symptoms.age} is a higher-risk age group; escalated to {new_level}.")
        level = new_level

    if symptoms.is_pregnant:
        new_level = step_up(level)
        if new_level != level:
            reasons.append(f"Pregnancy; escalated to {new_level}.")
        level = new_level

    conditions = find_comorbidities(symptoms.existing_conditions)
    if conditions:
        new_level = escalate(level, "see-doctor")
        if new_level != level:
            reasons.append(f"Existing condition ({', '.join(conditions)}); escalated to {new_level}.")
        level = new_level

    return level, reasons


def rule_based_triage(symptoms: SymptomInput) -> TriageResult:
    """Produce a full TriageResult without calling any model."""
    level, reasons = assess_level(symptoms)

    if level == "emergency":
        recommendations = _emergency_recommendations()
        confidence = EMERGENCY_CONFIDENCE
        reasons.append("Seek emergency care now.")
    else:
        bundle = select_bundle(symptoms.symptoms_text)
        recommendations = _bundle_recommendations(bundle, level)
        confidence = bundle["confidence"]
        if bundle is not _GENERIC_BUNDLE:
            reasons.append(f"Symptom pattern looks {bundle['name']}.")
        reasons.append("Professional medical consultation recommended.")

    logger.info("Rule-based triage: level=%s confidence=%.2f", level, confidence)
    return TriageResult(
        triage_level=level,
        triage_reason=" ".join(reasons),
        recommendations=recommendations,
        confidence_score=confidence,
        sources=["rule-based safety net"],
        disclaimer=FALLBACK_DISCLAIMER,
    )
