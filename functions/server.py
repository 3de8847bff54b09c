"""
functions/server.py

HTTP functions for the Apna Health assistant.

    POST /functions/v1/analyze-symptoms   symptom analysis (always 200)
    POST /functions/v1/process-ocr        OCR for one uploaded report
    GET  /                                health check

Run locally:
    uvicorn functions.server:app --reload --port 8000
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from models.ocr_client import OcrClient
from pipelines.analysis import Provider, analyze_symptoms
from pipelines.ocr import process_report_file
from pipelines.schemas import SymptomInput
from storage import db as _db
from storage import session_manager as _sm

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Apna Health Functions")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)


@app.on_event("startup")
def startup() -> None:
    _db.init_db()


# ---------------------------------------------------------------------------
# Request models and dependencies
# ---------------------------------------------------------------------------


class AnalyzeRequest(BaseModel):
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    symptoms: dict[str, Any]
    report_data: Optional[Any] = Field(default=None, alias="reportData")

    class Config:
        populate_by_name = True


class OcrRequest(BaseModel):
    file_id: str = Field(alias="fileId")

    class Config:
        populate_by_name = True


def get_providers() -> Optional[list[Provider]]:
    """``None`` means the default Gemini -> OpenAI chain."""
    return None


def get_ocr_client() -> OcrClient:
    return OcrClient()


def _safe_default(message: str) -> dict[str, Any]:
    return {
        "error": message,
        "triage_level": "see-doctor",
        "triage_reason": "Please consult a healthcare professional",
        "recommendations": {
            "medicines": [],
            "home_remedies": [],
            "what_to_do": [],
            "what_not_to_do": [],
        },
        "confidence_score": 0,
        "disclaimer": "This is an educational tool only.",
    }


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@app.get("/")
def root() -> dict[str, str]:
    return {"service": "apna-health-functions", "status": "ok"}


@app.post("/functions/v1/analyze-symptoms")
def analyze_symptoms_endpoint(
    body: dict[str, Any],
    providers: Optional[list[Provider]] = Depends(get_providers),
) -> JSONResponse:
    """
    Analyse symptoms and, when ``sessionId`` is given, store the triage on
    that session. Errors never surface as HTTP failures: the caller gets a
    conservative ``see-doctor`` answer with an ``error`` field instead.
    """
    try:
        request = AnalyzeRequest.model_validate(body)
        symptoms = SymptomInput.model_validate(request.symptoms)

        outcome = analyze_symptoms(symptoms, request.report_data, providers)

        if request.session_id:
            session = _db.get_session(request.session_id)
            if session is None:
                raise LookupError(f"Session {request.session_id} not found")
            _sm.save_outcome(
                request.session_id, session["user_id"], outcome, request.report_data
            )

        return JSONResponse(outcome.result.model_dump())
    except Exception as exc:
        logger.error("Error in analyze-symptoms: %s", exc)
        return JSONResponse(_safe_default(str(exc) or "Analysis failed"), status_code=200)


@app.post("/functions/v1/process-ocr")
def process_ocr_endpoint(
    body: OcrRequest,
    client: OcrClient = Depends(get_ocr_client),
) -> JSONResponse:
    try:
        data = process_report_file(body.file_id, client=client)
    except Exception as exc:
        logger.error("Error in process-ocr: %s", exc)
        return JSONResponse({"error": str(exc) or "OCR processing failed"}, status_code=500)
    return JSONResponse({"success": True, "data": data})


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("functions.server:app", host="0.0.0.0", port=8000)
