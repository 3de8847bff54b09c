import pytest

from pipelines.analysis import FALLBACK_MODEL_NAME
from pipelines.schemas import SymptomInput
from storage import db
from storage import session_manager as sm

from tests.conftest import FakeProvider


@pytest.fixture
def consented_user():
    sm.give_consent("user-1", user_agent="pytest")
    return "user-1"


@pytest.fixture
def no_background_ocr(monkeypatch):
    queued = []
    monkeypatch.setattr(sm, "schedule_ocr", lambda file_id: queued.append(file_id))
    return queued


def test_consent_flow():
    assert sm.has_consent("u") is False
    record = sm.give_consent("u")
    assert record.consent_given is True
    assert record.consent_text == sm.CONSENT_TEXT
    assert sm.has_consent("u") is True
    sm.give_consent("u", consent_given=False)
    assert sm.has_consent("u") is False


@pytest.mark.parametrize(
    "name,mime,size",
    [
        ("scan.gif", "image/gif", 100),
        ("big.pdf", "application/pdf", sm.MAX_UPLOAD_BYTES + 1),
        ("empty.png", "image/png", 0),
    ],
)
def test_validate_upload_rejects(name, mime, size):
    with pytest.raises(ValueError):
        sm.validate_upload(name, mime, size)


def test_validate_upload_accepts_limit():
    sm.validate_upload("report.pdf", "application/pdf", sm.MAX_UPLOAD_BYTES)


def test_submit_requires_consent(symptoms):
    with pytest.raises(PermissionError):
        sm.submit_assessment("stranger", symptoms, providers=[])


def test_submit_assessment_stores_triage_and_audit(consented_user, symptoms, model_answer):
    session = sm.submit_assessment(
        consented_user, symptoms, providers=[FakeProvider("gemini", reply=model_answer)]
    )

    assert session.triage_level == "see-doctor"
    assert session.confidence_score == 0.72
    assert session.recommendations["what_to_do"] == ["Rest", "Drink fluids"]
    assert session.recommendations["indian_emergency_contacts"] == []

    [audit] = db.list_llm_audit(session.id)
    assert audit["model_used"] == "gemini-model"
    assert audit["tokens_used"] == 42
    assert "Fever with cough" in audit["prompt_data"]["prompt"]


def test_submit_with_all_providers_down_still_completes(consented_user, symptoms):
    session = sm.submit_assessment(
        consented_user, symptoms, providers=[FakeProvider("gemini", error="down")]
    )
    assert session.triage_level in ("emergency", "urgent-visit", "see-doctor", "self-care")
    assert db.list_llm_audit(session.id)[0]["model_used"] == FALLBACK_MODEL_NAME


def test_submit_with_upload_registers_file_and_queues_ocr(
    consented_user, symptoms, no_background_ocr
):
    session = sm.submit_assessment(
        consented_user,
        symptoms,
        upload=("cbc report.png", "image/png", b"\x89PNG fake"),
        providers=[],
    )

    [report] = sm.get_session_files(session.id)
    assert report.ocr_status == "pending"
    assert report.file_path.startswith("user-1/")
    assert report.file_path.endswith("-cbc_report.png")
    assert no_background_ocr == [report.id]


def test_bad_upload_creates_no_session(consented_user, symptoms, no_background_ocr):
    with pytest.raises(ValueError):
        sm.submit_assessment(consented_user, symptoms, upload=("x.gif", "image/gif", b"GIF"), providers=[])
    assert sm.get_history(consented_user) == []


def test_run_analysis_uses_completed_ocr_data(consented_user, symptoms, model_answer, no_background_ocr):
    session = sm.submit_assessment(
        consented_user, symptoms, upload=("r.png", "image/png", b"data"), providers=[]
    )
    [report] = sm.get_session_files(session.id)
    db.mark_ocr_completed(report.id, "Hb 9.1", {"diagnoses": ["anaemia"]})

    provider = FakeProvider("gemini", reply=model_answer)
    sm.run_analysis(session.id, providers=[provider])

    assert "anaemia" in provider.prompts[0]


def test_run_analysis_missing_session():
    with pytest.raises(LookupError):
        sm.run_analysis("missing", providers=[])


def test_wait_for_triage_returns_none_while_pending():
    row = db.create_session("u", {"symptoms_text": "Persistent cough at night", "severity": "mild", "age": 30})
    assert sm.wait_for_triage(row["id"], interval=0.01, timeout=0.05) is None


def test_wait_for_triage_returns_completed_session(consented_user, symptoms):
    session = sm.submit_assessment(consented_user, symptoms, providers=[])
    done = sm.wait_for_triage(session.id, interval=0.01, timeout=1)
    assert done is not None and not done.is_pending


def test_wait_for_triage_unknown_session():
    with pytest.raises(LookupError):
        sm.wait_for_triage("missing", interval=0.01, timeout=0.01)


def test_history_is_per_user(consented_user, symptoms):
    sm.submit_assessment(consented_user, symptoms, providers=[])
    sm.give_consent("user-2")
    sm.submit_assessment(
        "user-2",
        SymptomInput(symptoms_text="Itchy rash on both hands", severity="mild", age=25),
        providers=[],
    )
    assert len(sm.get_history(consented_user)) == 1
    assert len(sm.get_history("user-2")) == 1


def test_audit_log_is_typed_and_decrypted(consented_user, symptoms, model_answer):
    session = sm.submit_assessment(
        consented_user, symptoms, providers=[FakeProvider("gemini", reply=model_answer)]
    )
    [entry] = sm.get_audit_log(session.id)
    assert entry.session_id == session.id
    assert entry.user_id == consented_user
    assert entry.response_data["result"]["triage_level"] == "see-doctor"
    assert entry.response_data["raw"] == model_answer


def test_same_file_uploaded_twice_at_once(consented_user, symptoms, no_background_ocr, monkeypatch):
    monkeypatch.setattr("storage.blob_store.time.time", lambda: 1_700_000_000.0)
    upload = ("scan.png", "image/png", b"\x89PNG fake")

    first = sm.submit_assessment(consented_user, symptoms, upload=upload, providers=[])
    second = sm.submit_assessment(consented_user, symptoms, upload=upload, providers=[])

    [a] = sm.get_session_files(first.id)
    [b] = sm.get_session_files(second.id)
    assert a.file_path != b.file_path
    assert not second.is_pending
