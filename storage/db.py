"""
storage/db.py

SQLite backend for the Apna Health assistant.

Schema
------
symptom_sessions  one row per assessment; triage columns NULL until analysed
report_files      uploaded documents and their OCR state
consent_records   append-only consent history (newest row wins)
llm_audit_log     write-once record of every analysis call

The prompt and response payloads in llm_audit_log are encrypted by
storage.crypto before being persisted; everything else is stored in the clear.

Usage
-----
    from storage import db as _db
    _db.init_db()              # call once at app startup
"""

import json
import logging
import os
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from storage.crypto import decrypt_json, encrypt_json

logger = logging.getLogger(__name__)

TRIAGE_LEVELS = ("emergency", "urgent-visit", "see-doctor", "self-care")


class InvalidTransitionError(ValueError):
    """Raised when a report file's OCR status change is not pending -> terminal."""


# ---------------------------------------------------------------------------
# Database location
# ---------------------------------------------------------------------------

_PROJECT_ROOT = Path(__file__).resolve().parents[1]
_DEFAULT_DB_PATH = _PROJECT_ROOT / "data" / "apna_health.db"


def _db_path() -> Path:
    return Path(os.environ.get("APNA_DB_PATH") or _DEFAULT_DB_PATH)


def _connect() -> sqlite3.Connection:
    """
    Open (or create) the SQLite database and return a connection.

    Rows come back as :class:`sqlite3.Row`. ``check_same_thread=False`` lets
    the OCR worker threads open their own connections to the same file.
    """
    path = _db_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), check_same_thread=False, timeout=10)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA foreign_keys=ON;")
    return conn


# ---------------------------------------------------------------------------
# Schema initialisation
# ---------------------------------------------------------------------------

_DDL = """
CREATE TABLE IF NOT EXISTS symptom_sessions (
    id                  TEXT    PRIMARY KEY,
    user_id             TEXT    NOT NULL,
    symptoms_text       TEXT    NOT NULL,
    severity            TEXT,
    onset               TEXT,
    duration            TEXT,
    existing_conditions TEXT,
    current_medications TEXT,
    allergies           TEXT,
    age                 INTEGER,
    is_pregnant         INTEGER NOT NULL DEFAULT 0,
    triage_level        TEXT CHECK(triage_level IS NULL OR triage_level IN
                            ('emergency', 'urgent-visit', 'see-doctor', 'self-care')),
    triage_reason       TEXT,
    confidence_score    REAL,
    recommendations     TEXT,                  -- JSON
    created_at          TEXT    NOT NULL       -- ISO-8601 UTC
);

CREATE INDEX IF NOT EXISTS idx_sessions_user ON symptom_sessions(user_id, created_at);

CREATE TABLE IF NOT EXISTS report_files (
    id          TEXT    PRIMARY KEY,
    session_id  TEXT    NOT NULL REFERENCES symptom_sessions(id) ON DELETE CASCADE,
    user_id     TEXT    NOT NULL,
    file_name   TEXT    NOT NULL,
    file_path   TEXT    NOT NULL,              -- path inside the blob bucket
    file_type   TEXT    NOT NULL,
    file_size   INTEGER NOT NULL,
    ocr_status  TEXT    NOT NULL DEFAULT 'pending'
                    CHECK(ocr_status IN ('pending', 'completed', 'failed')),
    ocr_text    TEXT,
    parsed_data TEXT,                          -- JSON
    created_at  TEXT    NOT NULL
);

CREATE TABLE IF NOT EXISTS consent_records (
    id            TEXT    PRIMARY KEY,
    user_id       TEXT    NOT NULL,
    consent_given INTEGER NOT NULL,
    consent_text  TEXT    NOT NULL,
    ip_address    TEXT,
    user_agent    TEXT,
    created_at    TEXT    NOT NULL
);

CREATE TABLE IF NOT EXISTS llm_audit_log (
    id            TEXT    PRIMARY KEY,
    session_id    TEXT    NOT NULL REFERENCES symptom_sessions(id) ON DELETE CASCADE,
    user_id       TEXT    NOT NULL,
    prompt_data   TEXT    NOT NULL,            -- Fernet token
    response_data TEXT    NOT NULL,            -- Fernet token
    model_used    TEXT    NOT NULL,
    tokens_used   INTEGER,
    created_at    TEXT    NOT NULL
);
"""


def init_db() -> None:
    """
    Create all tables if they do not already exist.

    Safe to call multiple times.
    """
    with _connect() as conn:
        conn.executescript(_DDL)
    logger.info("Database initialised at %s", _db_path())


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _now() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(tz=timezone.utc).isoformat()


def _new_id() -> str:
    return str(uuid.uuid4())


def _loads(value: str | None) -> Any:
    return json.loads(value) if value else None


def _session_row(row: sqlite3.Row) -> dict[str, Any]:
    data = dict(row)
    data["is_pregnant"] = bool(data["is_pregnant"])
    data["recommendations"] = _loads(data["recommendations"])
    return data


def _file_row(row: sqlite3.Row) -> dict[str, Any]:
    data = dict(row)
    data["parsed_data"] = _loads(data["parsed_data"])
    return data


# ---------------------------------------------------------------------------
# Symptom sessions
# ---------------------------------------------------------------------------

def create_session(user_id: str, symptoms: dict[str, Any]) -> dict[str, Any]:
    """
    Insert a new symptom session with empty triage fields.

    Args:
        user_id:  Owner of the session.
        symptoms: Dict with the SymptomInput fields (``symptoms_text``,
                  ``severity``, ``onset``, ``duration``, ``existing_conditions``,
                  ``current_medications``, ``allergies``, ``age``,
                  ``is_pregnant``). Missing keys are stored as NULL.

    Returns:
        The created row as a dict.
    """
    if not symptoms.get("symptoms_text"):
        raise ValueError("symptoms_text is required")

    session_id = _new_id()
    now = _now()
    with _connect() as conn:
        conn.execute(
            """
            INSERT INTO symptom_sessions
                (id, user_id, symptoms_text, severity, onset, duration,
                 existing_conditions, current_medications, allergies,
                 age, is_pregnant, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                session_id,
                user_id,
                symptoms["symptoms_text"],
                symptoms.get("severity"),
                symptoms.get("onset"),
                symptoms.get("duration"),
                symptoms.get("existing_conditions"),
                symptoms.get("current_medications"),
                symptoms.get("allergies"),
                symptoms.get("age"),
                int(bool(symptoms.get("is_pregnant"))),
                now,
            ),
        )
    logger.info("Created session id=%s for user_id=%s", session_id, user_id)
    return get_session(session_id)


def get_session(session_id: str) -> dict[str, Any] | None:
    with _connect() as conn:
        row = conn.execute(
            "SELECT * FROM symptom_sessions WHERE id = ?", (session_id,)
        ).fetchone()
    return _session_row(row) if row else None


def list_sessions_for_user(user_id: str, limit: int | None = None) -> list[dict[str, Any]]:
    """Return the user's sessions, newest first."""
    sql = "SELECT * FROM symptom_sessions WHERE user_id = ? ORDER BY created_at DESC, rowid DESC"
    params: tuple[Any, ...] = (user_id,)
    if limit is not None:
        sql += " LIMIT ?"
        params += (limit,)
    with _connect() as conn:
        rows = conn.execute(sql, params).fetchall()
    return [_session_row(r) for r in rows]


def update_session_triage(
    session_id: str,
    triage_level: str,
    triage_reason: str,
    confidence_score: float,
    recommendations: dict[str, Any],
) -> dict[str, Any]:
    """
    Store the analysis result on a session.

    Raises:
        ValueError:  If *triage_level* is not one of the four levels or the
                     confidence is outside [0, 1].
        LookupError: If the session does not exist.
    """
    if triage_level not in TRIAGE_LEVELS:
        raise ValueError(
            f"Invalid triage_level {triage_level!r}. Must be one of {TRIAGE_LEVELS}."
        )
    if not 0.0 <= confidence_score <= 1.0:
        raise ValueError(f"confidence_score must be within [0, 1], got {confidence_score}")

    with _connect() as conn:
        cur = conn.execute(
            """
            UPDATE symptom_sessions
            SET triage_level = ?, triage_reason = ?, confidence_score = ?,
                recommendations = ?
            WHERE id = ?
            """,
            (
                triage_level,
                triage_reason,
                confidence_score,
                json.dumps(recommendations, ensure_ascii=False),
                session_id,
            ),
        )
        if cur.rowcount == 0:
            raise LookupError(f"Session {session_id} not found")
    logger.info("Stored triage for session %s: %s", session_id, triage_level)
    return get_session(session_id)


# ---------------------------------------------------------------------------
# Report files
# ---------------------------------------------------------------------------

def create_report_file(
    session_id: str,
    user_id: str,
    file_name: str,
    file_path: str,
    file_type: str,
    file_size: int,
) -> dict[str, Any]:
    """Register an uploaded document with ``ocr_status='pending'``."""
    file_id = _new_id()
    with _connect() as conn:
        conn.execute(
            """
            INSERT INTO report_files
                (id, session_id, user_id, file_name, file_path, file_type,
                 file_size, ocr_status, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, 'pending', ?)
            """,
            (file_id, session_id, user_id, file_name, file_path, file_type, file_size, _now()),
        )
    logger.info("Registered report file id=%s for session %s", file_id, session_id)
    return get_report_file(file_id)


def get_report_file(file_id: str) -> dict[str, Any] | None:
    with _connect() as conn:
        row = conn.execute("SELECT * FROM report_files WHERE id = ?", (file_id,)).fetchone()
    return _file_row(row) if row else None


def list_files_for_session(session_id: str) -> list[dict[str, Any]]:
    with _connect() as conn:
        rows = conn.execute(
            "SELECT * FROM report_files WHERE session_id = ? ORDER BY created_at, rowid",
            (session_id,),
        ).fetchall()
    return [_file_row(r) for r in rows]


def _finish_ocr(file_id: str, status: str, assignments: str, params: tuple[Any, ...]) -> dict[str, Any]:
    with _connect() as conn:
        cur = conn.execute(
            f"UPDATE report_files SET ocr_status = ?{assignments} "
            "WHERE id = ? AND ocr_status = 'pending'",
            (status, *params, file_id),
        )
        if cur.rowcount == 0:
            row = conn.execute(
                "SELECT ocr_status FROM report_files WHERE id = ?", (file_id,)
            ).fetchone()
            if row is None:
                raise LookupError(f"Report file {file_id} not found")
            raise InvalidTransitionError(
                f"Report file {file_id} cannot move from {row['ocr_status']} to {status}"
            )
    logger.info("Report file %s OCR status -> %s", file_id, status)
    return get_report_file(file_id)


def mark_ocr_completed(
    file_id: str,
    ocr_text: str,
    parsed_data: dict[str, Any] | None,
) -> dict[str, Any]:
    """
    Move a pending file to ``completed`` and store the OCR output.

    Raises:
        InvalidTransitionError: If the file is not pending.
        LookupError:            If the file does not exist.
    """
    return _finish_ocr(
        file_id,
        "completed",
        ", ocr_text = ?, parsed_data = ?",
        (ocr_text, json.dumps(parsed_data or {}, ensure_ascii=False)),
    )


def mark_ocr_failed(file_id: str) -> dict[str, Any]:
    """Move a pending file to ``failed``. Same errors as :func:`mark_ocr_completed`."""
    return _finish_ocr(file_id, "failed", "", ())


# ---------------------------------------------------------------------------
# Consent
# ---------------------------------------------------------------------------

def record_consent(
    user_id: str,
    consent_given: bool,
    consent_text: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> dict[str, Any]:
    """Append a consent row. Rows are never updated."""
    consent_id = _new_id()
    now = _now()
    with _connect() as conn:
        conn.execute(
            """
            INSERT INTO consent_records
                (id, user_id, consent_given, consent_text, ip_address, user_agent, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (consent_id, user_id, int(consent_given), consent_text, ip_address, user_agent, now),
        )
    logger.info("Recorded consent=%s for user_id=%s", consent_given, user_id)
    return {
        "id": consent_id,
        "user_id": user_id,
        "consent_given": consent_given,
        "consent_text": consent_text,
        "ip_address": ip_address,
        "user_agent": user_agent,
        "created_at": now,
    }


def get_latest_consent(user_id: str) -> dict[str, Any] | None:
    """Return the newest consent row for *user_id*, or ``None``."""
    with _connect() as conn:
        row = conn.execute(
            """
            SELECT * FROM consent_records
            WHERE user_id = ?
            ORDER BY created_at DESC, rowid DESC
            LIMIT 1
            """,
            (user_id,),
        ).fetchone()
    if row is None:
        return None
    data = dict(row)
    data["consent_given"] = bool(data["consent_given"])
    return data


# ---------------------------------------------------------------------------
# LLM audit log
# ---------------------------------------------------------------------------

def append_llm_audit(
    session_id: str,
    user_id: str,
    prompt_data: dict[str, Any],
    response_data: dict[str, Any],
    model_used: str,
    tokens_used: int | None = None,
) -> str:
    """
    Write one audit row. Prompt and response payloads are encrypted.

    Returns:
        The new row id.
    """
    audit_id = _new_id()
    with _connect() as conn:
        conn.execute(
            """
            INSERT INTO llm_audit_log
                (id, session_id, user_id, prompt_data, response_data,
                 model_used, tokens_used, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                audit_id,
                session_id,
                user_id,
                encrypt_json(prompt_data),
                encrypt_json(response_data),
                model_used,
                tokens_used,
                _now(),
            ),
        )
    logger.debug("Audit: session=%s model=%s tokens=%s", session_id, model_used, tokens_used)
    return audit_id


def list_llm_audit(session_id: str) -> list[dict[str, Any]]:
    """Return decrypted audit rows for a session, oldest first."""
    with _connect() as conn:
        rows = conn.execute(
            "SELECT * FROM llm_audit_log WHERE session_id = ? ORDER BY created_at, rowid",
            (session_id,),
        ).fetchall()
    entries = []
    for row in rows:
        data = dict(row)
        data["prompt_data"] = decrypt_json(data["prompt_data"])
        data["response_data"] = decrypt_json(data["response_data"])
        entries.append(data)
    return entries
