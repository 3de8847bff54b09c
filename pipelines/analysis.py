"""
pipelines/analysis.py

Symptom analysis chain: primary model -> secondary model -> rule-based safety net.

Every provider failure (transport error, HTTP error, unparsable body) is
treated identically: log it and try the next one. The chain itself never
raises for a valid SymptomInput, so the caller always gets a TriageResult.

After a model answer is normalised, the emergency-keyword rule is applied as a
floor: a model may not downgrade a reported emergency warning sign. Emergency
results, from the floor or the model itself, keep no medicines or home remedies.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol, Sequence

from pydantic import BaseModel, Field

from models.llm_clients import GeminiClient, LLMError, LLMReply, OpenAIClient
from pipelines.postprocess import normalize_analysis, parse_model_output
from pipelines.prompt_builder import SYSTEM_PROMPT, build_prompt
from pipelines.schemas import SymptomInput, TriageResult, escalate
from pipelines.triage_rules import (
    find_emergency_keywords,
    restrict_to_emergency_care,
    rule_based_triage,
)

logger = logging.getLogger(__name__)

FALLBACK_MODEL_NAME = "rule-based-fallback"


class Provider(Protocol):
    name: str

    def generate(self, prompt: str) -> LLMReply: ...


class AnalysisOutcome(BaseModel):
    result: TriageResult
    model_used: str
    tokens_used: Optional[int] = None
    prompt: str
    raw_response: Optional[dict[str, Any]] = None
    errors: list[str] = Field(default_factory=list)


def default_providers() -> list[Provider]:
    """Gemini first, OpenAI second; keys are read from the environment."""
    return [GeminiClient(), OpenAIClient(system_prompt=SYSTEM_PROMPT)]


def apply_emergency_floor(result: TriageResult, symptoms: SymptomInput) -> TriageResult:
    hits = find_emergency_keywords(symptoms.symptoms_text)
    if hits and escalate(result.triage_level, "emergency") != result.triage_level:
        logger.warning(
            "Model returned %s despite emergency warning signs (%s); escalating.",
            result.triage_level,
            ", ".join(hits),
        )
        result = result.model_copy(
            update={
                "triage_level": "emergency",
                "triage_reason": (
                    f"Emergency warning sign reported: {', '.join(hits)}. {result.triage_reason}"
                ),
            }
        )
    if result.triage_level == "emergency":
        result = result.model_copy(
            update={"recommendations": restrict_to_emergency_care(result.recommendations)}
        )
    return result


def analyze_symptoms(
    symptoms: SymptomInput,
    report_data: Any = None,
    providers: Sequence[Provider] | None = None,
) -> AnalysisOutcome:
    """
    Run the analysis chain for one symptom payload.

    Args:
        symptoms:    Validated symptom input.
        report_data: Optional structured OCR data to include in the prompt.
        providers:   Ordered model providers; defaults to Gemini then OpenAI.

    Returns:
        ``AnalysisOutcome`` with the normalised result and audit details.
    """
    prompt = build_prompt(symptoms, report_data)
    chain = list(providers) if providers is not None else default_providers()
    errors: list[str] = []

    logger.info(
        "Starting symptom analysis (severity=%s, age=%s, text=%r...)",
        symptoms.severity,
        symptoms.age,
        symptoms.symptoms_text[:50],
    )

    for provider in chain:
        name = getattr(provider, "name", type(provider).__name__)
        try:
            reply = provider.generate(prompt)
            parsed = parse_model_output(reply.text)
        except (LLMError, ValueError) as exc:
            logger.warning("Provider %s failed, trying next: %s", name, exc)
            errors.append(f"{name}: {exc}")
            continue

        result = apply_emergency_floor(normalize_analysis(parsed), symptoms)
        logger.info("Provider %s succeeded: triage=%s", name, result.triage_level)
        return AnalysisOutcome(
            result=result,
            model_used=reply.model,
            tokens_used=reply.tokens_used,
            prompt=prompt,
            raw_response=parsed,
            errors=errors,
        )

    logger.warning("All AI providers failed, using rule-based fallback")
    return AnalysisOutcome(
        result=rule_based_triage(symptoms),
        model_used=FALLBACK_MODEL_NAME,
        prompt=prompt,
        errors=errors,
    )
