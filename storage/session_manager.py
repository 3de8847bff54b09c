"""
storage/session_manager.py

Business logic for the Apna Health assistant, shared by the Streamlit pages
and the HTTP functions.

Responsibilities
----------------
- Consent: append consent rows and answer "has this user consented?".
- Upload validation (JPG/PNG/PDF, at most 10 MB).
- Assessment submission: session row, optional report upload, background
  OCR, analysis chain, triage update and audit row.
- Polling helper for consumers that only hold a session id.

Everything returned to callers is a typed record from storage.models.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Sequence

from pipelines.analysis import AnalysisOutcome, Provider, analyze_symptoms
from pipelines.ocr import process_report_file
from pipelines.schemas import SymptomInput
from storage import db as _db
from storage.blob_store import BlobStore, make_object_path
from storage.models import ConsentRecord, LlmAuditEntry, ReportFileRecord, SessionRecord

logger = logging.getLogger(__name__)

CONSENT_TEXT = """I understand and acknowledge that:

1. This AI Health Assistant is a DEMONSTRATION TOOL for educational purposes only
2. This tool does NOT provide medical advice, diagnosis, or treatment
3. I should NOT use this tool for emergencies - call emergency services immediately
4. All information provided is for educational purposes and should not replace professional medical consultation
5. I will consult with qualified healthcare professionals for any medical concerns
6. The developers and operators of this tool are not liable for any decisions made based on its output
7. This is a hackathon project and not approved for clinical use
8. My data will be stored securely for the purpose of providing this service"""

ALLOWED_UPLOAD_TYPES = ("image/jpeg", "image/png", "image/jpg", "application/pdf")
MAX_UPLOAD_BYTES = 10 * 1024 * 1024

# OCR runs off the request path; results are picked up by later analyses.
_ocr_executor = ThreadPoolExecutor(max_workers=3, thread_name_prefix="ocr")


# ---------------------------------------------------------------------------
# Consent
# ---------------------------------------------------------------------------


def give_consent(
    user_id: str,
    consent_given: bool = True,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> ConsentRecord:
    row = _db.record_consent(
        user_id=user_id,
        consent_given=consent_given,
        consent_text=CONSENT_TEXT,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return ConsentRecord(**row)


def has_consent(user_id: str) -> bool:
    """True only if the user's newest consent row grants consent."""
    latest = _db.get_latest_consent(user_id)
    return bool(latest and latest["consent_given"])


# ---------------------------------------------------------------------------
# Uploads
# ---------------------------------------------------------------------------


def validate_upload(file_name: str, mime_type: str, size: int) -> None:
    """
    Raises:
        ValueError: with a user-facing message if the file is not acceptable.
    """
    if mime_type not in ALLOWED_UPLOAD_TYPES:
        raise ValueError("Please upload a JPG, PNG, or PDF file")
    if size > MAX_UPLOAD_BYTES:
        raise ValueError("File size must be less than 10MB")
    if size <= 0:
        raise ValueError(f"{file_name} is empty")


def attach_report(
    session: SessionRecord,
    file_name: str,
    mime_type: str,
    data: bytes,
    store: BlobStore | None = None,
) -> ReportFileRecord:
    """Validate, store and register one report file for *session*."""
    validate_upload(file_name, mime_type, len(data))
    store = store or BlobStore()
    path = store.upload(make_object_path(session.user_id, file_name), data)
    row = _db.create_report_file(
        session_id=session.id,
        user_id=session.user_id,
        file_name=file_name,
        file_path=path,
        file_type=mime_type,
        file_size=len(data),
    )
    return ReportFileRecord(**row)


def _run_ocr_quietly(file_id: str) -> None:
    try:
        process_report_file(file_id)
    except Exception as exc:
        # The file is already marked failed; nobody awaits this future.
        logger.error("Background OCR for file %s failed: %s", file_id, exc)


def schedule_ocr(file_id: str) -> Future:
    logger.info("Queued OCR for file %s", file_id)
    return _ocr_executor.submit(_run_ocr_quietly, file_id)


# ---------------------------------------------------------------------------
# Assessment
# ---------------------------------------------------------------------------


def collect_report_data(session_id: str) -> dict[str, Any] | None:
    """Structured OCR data from the session's completed files, or ``None``."""
    completed = [
        f for f in _db.list_files_for_session(session_id) if f["ocr_status"] == "completed"
    ]
    if not completed:
        return None
    if len(completed) == 1:
        return completed[0]["parsed_data"] or None
    return {f["file_name"]: f["parsed_data"] for f in completed}


def run_analysis(
    session_id: str,
    report_data: Any = None,
    providers: Sequence[Provider] | None = None,
) -> SessionRecord:
    """
    Analyse a stored session, persist the triage and write the audit row.

    *report_data* defaults to whatever OCR has completed for the session.

    Raises:
        LookupError: If the session does not exist.
    """
    row = _db.get_session(session_id)
    if row is None:
        raise LookupError(f"Session {session_id} not found")

    symptoms = SymptomInput(**{k: row[k] for k in SymptomInput.model_fields if k in row})
    if report_data is None:
        report_data = collect_report_data(session_id)

    outcome: AnalysisOutcome = analyze_symptoms(symptoms, report_data, providers)
    return save_outcome(session_id, row["user_id"], outcome, report_data)


def save_outcome(
    session_id: str,
    user_id: str,
    outcome: AnalysisOutcome,
    report_data: Any = None,
) -> SessionRecord:
    """Persist an analysis result on its session and write the audit row."""
    result = outcome.result
    updated = _db.update_session_triage(
        session_id,
        triage_level=result.triage_level,
        triage_reason=result.triage_reason,
        confidence_score=result.confidence_score,
        recommendations=result.recommendations.model_dump(),
    )
    _db.append_llm_audit(
        session_id=session_id,
        user_id=user_id,
        prompt_data={"prompt": outcome.prompt, "report_data": report_data},
        response_data={
            "raw": outcome.raw_response,
            "result": result.model_dump(),
            "errors": outcome.errors,
        },
        model_used=outcome.model_used,
        tokens_used=outcome.tokens_used,
    )
    return SessionRecord(**updated)


def submit_assessment(
    user_id: str,
    symptoms: SymptomInput,
    upload: tuple[str, str, bytes] | None = None,
    providers: Sequence[Provider] | None = None,
    store: BlobStore | None = None,
) -> SessionRecord:
    """
    Create a session from a validated form and analyse it.

    Args:
        user_id:   Current user.
        symptoms:  Validated form input.
        upload:    Optional ``(file_name, mime_type, data)``; OCR for it is
                   queued in the background and does not block the analysis.
        providers: Model providers override (tests, evaluation).
        store:     Blob store override.

    Raises:
        PermissionError: If the user has not consented.
        ValueError:      If the upload is rejected.
    """
    if not has_consent(user_id):
        raise PermissionError("Consent is required before submitting symptoms.")
    if upload is not None:
        file_name, mime_type, data = upload
        validate_upload(file_name, mime_type, len(data))

    session = SessionRecord(**_db.create_session(user_id, symptoms.model_dump()))

    if upload is not None:
        report = attach_report(session, *upload, store=store)
        schedule_ocr(report.id)

    return run_analysis(session.id, providers=providers)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def get_session(session_id: str) -> SessionRecord | None:
    row = _db.get_session(session_id)
    return SessionRecord(**row) if row else None


def wait_for_triage(
    session_id: str,
    interval: float = 1.0,
    timeout: float = 30.0,
) -> SessionRecord | None:
    """
    Poll until the session's triage fields are populated.

    Returns:
        The completed record, or ``None`` if *timeout* elapsed first. A
        ``None`` result means "still pending", not "failed".

    Raises:
        LookupError: If the session does not exist.
    """
    deadline = time.monotonic() + timeout
    while True:
        session = get_session(session_id)
        if session is None:
            raise LookupError(f"Session {session_id} not found")
        if not session.is_pending:
            return session
        if time.monotonic() >= deadline:
            logger.info("Triage for session %s still pending after %.1fs", session_id, timeout)
            return None
        time.sleep(interval)


def get_history(user_id: str, limit: int | None = 20) -> list[SessionRecord]:
    return [SessionRecord(**r) for r in _db.list_sessions_for_user(user_id, limit=limit)]


def get_session_files(session_id: str) -> list[ReportFileRecord]:
    return [ReportFileRecord(**r) for r in _db.list_files_for_session(session_id)]


def get_audit_log(session_id: str) -> list[LlmAuditEntry]:
    """Decrypted analysis audit rows for a session, oldest first."""
    return [LlmAuditEntry(**r) for r in _db.list_llm_audit(session_id)]
