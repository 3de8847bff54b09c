"""
eval/evaluate.py

Offline evaluation of the symptom-triage chain.

Loads labelled cases from eval/cases.json, runs each through
pipelines.analysis.analyze_symptoms and compares the predicted triage_level
with the label.

Metrics computed:
  - Overall accuracy
  - Emergency recall: fraction of true-emergency cases predicted as emergency
  - Escalation rate: fraction of cases predicted emergency or urgent-visit
  - Under-triage count: predictions less severe than the label

Usage:
  python -m eval.evaluate               # configured model chain
  python -m eval.evaluate --rules-only  # rule-based safety net only, no network
"""

import argparse
import json
import logging
import math
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import ValidationError

from pipelines.analysis import analyze_symptoms
from pipelines.schemas import SymptomInput, triage_rank

logger = logging.getLogger(__name__)

_CASES_PATH = Path(__file__).parent / "cases.json"


def load_cases(path: Path = _CASES_PATH) -> list[dict[str, Any]]:
    """
    Each case: ``{"id": str, "symptoms": {...SymptomInput fields}, "expected": level}``.
    """
    with path.open("r", encoding="utf-8") as f:
        cases: list[dict[str, Any]] = json.load(f)
    logger.info("Loaded %d cases from %s", len(cases), path)
    return cases


def run_case(case: dict[str, Any], providers: list | None = None) -> dict[str, Any]:
    """Run one labelled case; errors are reported in the row, not raised."""
    row: dict[str, Any] = {
        "id": case["id"],
        "expected": case["expected"],
        "predicted": "ERROR",
        "model": None,
        "error": None,
    }
    try:
        symptoms = SymptomInput.model_validate(case["symptoms"])
    except ValidationError as exc:
        row["error"] = f"invalid case: {exc.errors()[0]['msg']}"
        return row

    outcome = analyze_symptoms(symptoms, case.get("report_data"), providers)
    row["predicted"] = outcome.result.triage_level
    row["model"] = outcome.model_used
    return row


def compute_metrics(results: list[dict[str, Any]]) -> dict[str, Any]:
    scored = [r for r in results if r["predicted"] != "ERROR"]
    total = len(scored)
    emergencies = [r for r in scored if r["expected"] == "emergency"]
    caught = [r for r in emergencies if r["predicted"] == "emergency"]
    escalated = [r for r in scored if r["predicted"] in ("emergency", "urgent-visit")]
    under = [r for r in scored if triage_rank(r["predicted"]) < triage_rank(r["expected"])]

    return {
        "total": total,
        "errors": len(results) - total,
        "accuracy": sum(r["predicted"] == r["expected"] for r in scored) / total if total else math.nan,
        "emergency_recall": len(caught) / len(emergencies) if emergencies else math.nan,
        "escalation_rate": len(escalated) / total if total else math.nan,
        "under_triage": len(under),
    }


def main() -> None:
    """Run evaluation and print results table."""
    parser = argparse.ArgumentParser(description="Evaluate the symptom-triage chain.")
    parser.add_argument("--rules-only", action="store_true", help="skip hosted models")
    parser.add_argument("--cases", type=Path, default=_CASES_PATH)
    args = parser.parse_args()

    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    cases = load_cases(args.cases)
    providers = [] if args.rules_only else None

    results = []
    for i, case in enumerate(cases, start=1):
        print(f"  [{i}/{len(cases)}] Evaluating: {case['id']} ...")
        results.append(run_case(case, providers))

    m = compute_metrics(results)

    print("\n" + "=" * 90)
    print("APNA HEALTH TRIAGE EVALUATION")
    print("=" * 90)
    print(f"{'Case':<28} {'Expected':<14} {'Predicted':<14} {'Match':<7} {'Model / Error'}")
    print("-" * 90)
    for r in results:
        match_str = "✓" if r["predicted"] == r["expected"] else "✗"
        print(
            f"{r['id']:<28} {r['expected']:<14} {r['predicted']:<14} {match_str:<7} "
            f"{(r['error'] or r['model'] or '')[:30]}"
        )
    print("=" * 90)
    print(f"Total cases:       {m['total']}  (errors: {m['errors']})")
    print(f"Overall accuracy:  {m['accuracy']:.1%}")
    print(f"Emergency recall:  {m['emergency_recall']:.1%}")
    print(f"Escalation rate:   {m['escalation_rate']:.1%}")
    print(f"Under-triaged:     {m['under_triage']}")
    print("=" * 90)


if __name__ == "__main__":
    main()
