import json

import pytest
from fastapi.testclient import TestClient

from functions.server import app, get_ocr_client, get_providers
from models.llm_clients import LLMError, LLMReply
from storage import db
from storage.blob_store import BlobStore

from tests.conftest import FakeProvider

SYMPTOMS = {
    "symptoms_text": "Fever with cough and sore throat since yesterday",
    "severity": "moderate",
    "age": 30,
    "onset": "",
    "is_pregnant": False,
}


@pytest.fixture
def client():
    yield TestClient(app)
    app.dependency_overrides.clear()


def _use_providers(*providers):
    app.dependency_overrides[get_providers] = lambda: list(providers)


def test_health(client):
    assert client.get("/").json()["status"] == "ok"


def test_cors_preflight_allows_supabase_style_headers(client):
    resp = client.options(
        "/functions/v1/analyze-symptoms",
        headers={
            "Origin": "http://localhost:5173",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "authorization, x-client-info, apikey, content-type",
        },
    )
    assert resp.status_code == 200
    assert resp.headers["access-control-allow-origin"] == "*"


def test_analyze_returns_normalised_result(client, model_answer):
    _use_providers(FakeProvider("gemini", reply=model_answer))
    resp = client.post("/functions/v1/analyze-symptoms", json={"symptoms": SYMPTOMS})

    assert resp.status_code == 200
    body = resp.json()
    assert body["triage_level"] == "see-doctor"
    assert body["confidence_score"] == 0.72
    assert body["recommendations"]["home_remedies"] == ["Warm salt water gargle"]
    assert "error" not in body


def test_analyze_updates_session_when_id_given(client, model_answer):
    session = db.create_session("user-1", SYMPTOMS)
    _use_providers(FakeProvider("gemini", reply=model_answer))

    resp = client.post(
        "/functions/v1/analyze-symptoms",
        json={"sessionId": session["id"], "symptoms": SYMPTOMS, "reportData": {"dates": ["2024-01-02"]}},
    )

    assert resp.status_code == 200
    stored = db.get_session(session["id"])
    assert stored["triage_level"] == "see-doctor"
    [audit] = db.list_llm_audit(session["id"])
    assert audit["prompt_data"]["report_data"] == {"dates": ["2024-01-02"]}


def test_analyze_with_providers_down_uses_rules(client):
    _use_providers(FakeProvider("gemini", error="down"), FakeProvider("openai", error="down"))
    resp = client.post("/functions/v1/analyze-symptoms", json={"symptoms": SYMPTOMS})
    assert resp.status_code == 200
    assert resp.json()["sources"] == ["rule-based safety net"]


@pytest.mark.parametrize(
    "payload",
    [
        {"symptoms": {**SYMPTOMS, "symptoms_text": "short"}},
        {"symptoms": {**SYMPTOMS, "age": 0}},
        {"nothing": True},
        {"sessionId": "missing", "symptoms": SYMPTOMS},
    ],
)
def test_analyze_errors_return_safe_default_with_200(client, payload):
    _use_providers()
    resp = client.post("/functions/v1/analyze-symptoms", json=payload)

    assert resp.status_code == 200
    body = resp.json()
    assert body["triage_level"] == "see-doctor"
    assert body["confidence_score"] == 0
    assert body["recommendations"]["medicines"] == []
    assert body["error"]


class _FakeOcr:
    def __init__(self, text=None, error=None):
        self.text, self.error = text, error

    def extract(self, base64_data, mime_type):
        if self.error:
            raise LLMError(self.error)
        return LLMReply(text=self.text, model="ocr-test")


@pytest.fixture
def pdf_file():
    session = db.create_session("user-1", SYMPTOMS)
    path = BlobStore().upload("user-1/1-lab.pdf", b"%PDF-1.4 fake")
    return db.create_report_file(session["id"], "user-1", "lab.pdf", path, "application/pdf", 13)


def test_process_ocr_success(client, pdf_file):
    reply = json.dumps({"extracted_text": "TSH 5.2", "structured_data": {"lab_values": []}})
    app.dependency_overrides[get_ocr_client] = lambda: _FakeOcr(text=reply)

    resp = client.post("/functions/v1/process-ocr", json={"fileId": pdf_file["id"]})

    assert resp.status_code == 200
    assert resp.json() == {
        "success": True,
        "data": {"extracted_text": "TSH 5.2", "structured_data": {"lab_values": []}},
    }
    assert db.get_report_file(pdf_file["id"])["ocr_status"] == "completed"


def test_process_ocr_failure_returns_500_and_marks_failed(client, pdf_file):
    app.dependency_overrides[get_ocr_client] = lambda: _FakeOcr(error="AI gateway configuration is missing")

    resp = client.post("/functions/v1/process-ocr", json={"fileId": pdf_file["id"]})

    assert resp.status_code == 500
    assert "configuration is missing" in resp.json()["error"]
    assert db.get_report_file(pdf_file["id"])["ocr_status"] == "failed"


def test_process_ocr_unknown_file(client):
    app.dependency_overrides[get_ocr_client] = lambda: _FakeOcr(text="x")
    resp = client.post("/functions/v1/process-ocr", json={"fileId": "missing"})
    assert resp.status_code == 500
