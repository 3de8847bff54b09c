from pipelines.prompt_builder import build_prompt
from pipelines.schemas import SymptomInput


def test_required_fields_always_present(symptoms):
    prompt = build_prompt(symptoms)
    assert "- Primary Symptoms: Fever with cough and sore throat since yesterday" in prompt
    assert "- Severity Level: moderate" in prompt
    assert "- Patient Age: 30" in prompt


def test_optional_fields_omitted_when_blank(symptoms):
    prompt = build_prompt(symptoms)
    assert "Symptom Onset" not in prompt
    assert "Allergies" not in prompt
    assert "Patient is pregnant" not in prompt
    assert "MEDICAL REPORT DATA" not in prompt


def test_optional_fields_included_when_present():
    s = SymptomInput(
        symptoms_text="Burning sensation while urinating",
        severity="significant",
        age=27,
        onset="yesterday",
        duration="  ",
        allergies="penicillin",
        is_pregnant=True,
    )
    prompt = build_prompt(s)
    assert "- Symptom Onset: yesterday" in prompt
    assert "Duration" not in prompt
    assert "- Allergies: penicillin" in prompt
    assert "- Patient is pregnant" in prompt


def test_report_data_block_is_pretty_printed(symptoms):
    prompt = build_prompt(symptoms, {"lab_values": [{"test": "Hb", "value": "9.1"}]})
    assert "MEDICAL REPORT DATA:" in prompt
    assert '  "lab_values": [' in prompt


def test_prompt_is_deterministic(symptoms):
    assert build_prompt(symptoms, {"a": 1}) == build_prompt(symptoms, {"a": 1})


def test_prompt_requests_json_and_four_levels(symptoms):
    prompt = build_prompt(symptoms)
    for level in ("emergency", "urgent-visit", "see-doctor", "self-care"):
        assert level in prompt
