# app/renderers.py
from __future__ import annotations

import streamlit as st

from app.ui import OCR_STATUS_LABELS, card_close, card_open, emergency_banner, triage_badge
from pipelines.triage_rules import INDIAN_EMERGENCY_CONTACTS
from storage.models import ReportFileRecord, SessionRecord


def _bullets(items: list[str], empty: str) -> None:
    if items:
        for item in items:
            st.markdown(f"- {item}")
    else:
        st.caption(empty)


def render_triage(session: SessionRecord) -> None:
    """
    Render a completed session's triage and recommendations.

    Emergency results show only the call-to-action: no medicines and no
    home remedies.
    """
    recs = session.recommendations or {}
    level = session.triage_level

    if level == "emergency":
        contacts = recs.get("indian_emergency_contacts") or [
            c.model_dump() for c in INDIAN_EMERGENCY_CONTACTS
        ]
        emergency_banner(contacts)

    card_open("Triage summary")
    confidence = (
        f"Confidence: {session.confidence_score:.0%}" if session.confidence_score is not None else ""
    )
    st.markdown(
        f"""
<div style="display:flex; gap:12px; align-items:center; margin-top:6px;">
  {triage_badge(level)}
  <span class="ah-sub">{confidence}</span>
</div>
        """,
        unsafe_allow_html=True,
    )
    if session.triage_reason:
        st.markdown(session.triage_reason)
    card_close()

    if level != "emergency":
        c1, c2 = st.columns(2, gap="large")
        with c1:
            card_open("Medicines", "Over-the-counter options; check with a pharmacist first.")
            medicines = recs.get("medicines") or []
            if medicines:
                for med in medicines:
                    line = f"**{med['name']}**"
                    if med.get("dose"):
                        line += f" · {med['dose']}"
                    if med.get("notes"):
                        line += f"  \n{med['notes']}"
                    st.markdown(line)
            else:
                st.caption("No medicines suggested.")
            card_close()
        with c2:
            card_open("Home remedies")
            _bullets(recs.get("home_remedies") or [], "No home remedies suggested.")
            card_close()

    c3, c4 = st.columns(2, gap="large")
    with c3:
        card_open("What to do")
        _bullets(recs.get("what_to_do") or [], "Nothing listed.")
        card_close()
    with c4:
        card_open("What not to do")
        _bullets(recs.get("what_not_to_do") or [], "Nothing listed.")
        card_close()

    follow_up = recs.get("follow_up") or {}
    doctor = follow_up.get("suggested_doctor_type") or recs.get("doctor_specialization")
    if follow_up.get("when_to_see_provider") or doctor:
        card_open("Follow-up")
        if follow_up.get("when_to_see_provider"):
            st.markdown(follow_up["when_to_see_provider"])
        if doctor:
            st.markdown(f"Suggested doctor: **{doctor}**")
        card_close()

    if recs.get("disclaimer"):
        st.caption(f"⚠️ {recs['disclaimer']}")


def render_files(files: list[ReportFileRecord]) -> None:
    if not files:
        return
    card_open("Uploaded reports")
    for f in files:
        st.markdown(f"**{f.file_name}** · {OCR_STATUS_LABELS.get(f.ocr_status, f.ocr_status)}")
        if f.ocr_status == "completed" and f.ocr_text:
            with st.expander("Extracted text"):
                st.text(f.ocr_text)
    card_close()
