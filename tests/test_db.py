import sqlite3

import pytest

from storage import db
from storage.db import InvalidTransitionError


def _session(user_id="user-1", text="Headache and mild fever for two days"):
    return db.create_session(user_id, {"symptoms_text": text, "severity": "mild", "age": 30})


def _file(session):
    return db.create_report_file(
        session_id=session["id"],
        user_id=session["user_id"],
        file_name="cbc.png",
        file_path=f"{session['user_id']}/1-cbc.png",
        file_type="image/png",
        file_size=1234,
    )


def test_init_db_is_idempotent():
    db.init_db()
    db.init_db()


def test_new_session_has_pending_triage():
    s = _session()
    assert s["triage_level"] is None
    assert s["recommendations"] is None
    assert s["is_pregnant"] is False
    assert db.get_session(s["id"]) == s


def test_get_missing_session_returns_none():
    assert db.get_session("nope") is None


def test_update_session_triage_round_trips_recommendations():
    s = _session()
    recs = {"medicines": [], "what_to_do": ["Rest"]}
    updated = db.update_session_triage(s["id"], "self-care", "Mild symptoms", 0.6, recs)
    assert updated["triage_level"] == "self-care"
    assert updated["recommendations"] == recs
    assert updated["confidence_score"] == 0.6


@pytest.mark.parametrize("level", ["urgent", "critical", "", "EMERGENCY"])
def test_update_session_triage_rejects_unknown_levels(level):
    s = _session()
    with pytest.raises(ValueError):
        db.update_session_triage(s["id"], level, "x", 0.5, {})
    assert db.get_session(s["id"])["triage_level"] is None


def test_update_session_triage_rejects_out_of_range_confidence():
    s = _session()
    with pytest.raises(ValueError):
        db.update_session_triage(s["id"], "self-care", "x", 1.5, {})


def test_update_missing_session_raises_lookup_error():
    with pytest.raises(LookupError):
        db.update_session_triage("missing", "self-care", "x", 0.5, {})


def test_check_constraint_blocks_raw_writes():
    s = _session()
    with pytest.raises(sqlite3.IntegrityError):
        with db._connect() as conn:
            conn.execute("UPDATE symptom_sessions SET triage_level = 'urgent' WHERE id = ?", (s["id"],))


def test_list_sessions_newest_first_and_per_user():
    first = _session()
    second = _session()
    _session(user_id="someone-else")
    ids = [s["id"] for s in db.list_sessions_for_user("user-1")]
    assert set(ids) == {first["id"], second["id"]}
    assert ids[0] == second["id"]
    assert len(db.list_sessions_for_user("user-1", limit=1)) == 1


def test_report_file_starts_pending():
    f = _file(_session())
    assert f["ocr_status"] == "pending"
    assert f["parsed_data"] is None


def test_mark_ocr_completed_stores_text_and_data():
    f = _file(_session())
    done = db.mark_ocr_completed(f["id"], "Hb 9.1 g/dL", {"lab_values": [{"test": "Hb"}]})
    assert done["ocr_status"] == "completed"
    assert done["ocr_text"] == "Hb 9.1 g/dL"
    assert done["parsed_data"] == {"lab_values": [{"test": "Hb"}]}


@pytest.mark.parametrize("first", ["completed", "failed"])
@pytest.mark.parametrize("second", ["completed", "failed"])
def test_terminal_ocr_states_never_change(first, second):
    f = _file(_session())
    if first == "completed":
        db.mark_ocr_completed(f["id"], "text", {})
    else:
        db.mark_ocr_failed(f["id"])

    with pytest.raises(InvalidTransitionError):
        if second == "completed":
            db.mark_ocr_completed(f["id"], "other", {"x": 1})
        else:
            db.mark_ocr_failed(f["id"])

    row = db.get_report_file(f["id"])
    assert row["ocr_status"] == first
    if first == "completed":
        assert row["ocr_text"] == "text"


def test_mark_ocr_on_missing_file_raises_lookup_error():
    with pytest.raises(LookupError):
        db.mark_ocr_failed("missing")


def test_latest_consent_wins():
    assert db.get_latest_consent("u") is None
    db.record_consent("u", True, "terms")
    db.record_consent("u", False, "terms")
    assert db.get_latest_consent("u")["consent_given"] is False
    db.record_consent("u", True, "terms", user_agent="pytest")
    latest = db.get_latest_consent("u")
    assert latest["consent_given"] is True
    assert latest["user_agent"] == "pytest"


def test_audit_payloads_are_encrypted_at_rest():
    s = _session()
    db.append_llm_audit(s["id"], "user-1", {"prompt": "secret symptoms"}, {"raw": {"a": 1}}, "gemini", 12)

    with db._connect() as conn:
        raw = conn.execute("SELECT prompt_data FROM llm_audit_log").fetchone()["prompt_data"]
    assert "secret symptoms" not in raw

    [entry] = db.list_llm_audit(s["id"])
    assert entry["prompt_data"] == {"prompt": "secret symptoms"}
    assert entry["response_data"] == {"raw": {"a": 1}}
    assert entry["model_used"] == "gemini"
    assert entry["tokens_used"] == 12
