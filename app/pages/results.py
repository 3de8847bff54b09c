"""
app/pages/results.py

Results page
- Polls the active session until triage is stored
- Triage badge, emergency banner, recommendations
- OCR status of uploaded reports
- JSON / PDF download
"""

from __future__ import annotations

from datetime import datetime

import streamlit as st

from app.renderers import render_files, render_triage
from storage import session_manager as _sm
from storage.export import export_session_json, export_session_pdf

POLL_INTERVAL_SECONDS = 1.0
POLL_TIMEOUT_SECONDS = 20.0


def render() -> None:
    user = st.session_state.get("auth_user")
    if not user:
        st.session_state["current_page"] = "auth"
        st.rerun()
        return

    st.title("Results")
    st.caption(datetime.now().strftime("%A, %d %B %Y"))

    session_id = st.session_state.get("active_session_id")
    if not session_id:
        st.info("No assessment selected. Start a **New assessment** or pick one from **History**.")
        return

    session = _sm.get_session(session_id)
    if session is None or session.user_id != user["id"]:
        st.session_state["active_session_id"] = None
        st.warning("That assessment could not be found.")
        return

    if session.is_pending:
        with st.spinner("Waiting for analysis…"):
            session = _sm.wait_for_triage(
                session_id, interval=POLL_INTERVAL_SECONDS, timeout=POLL_TIMEOUT_SECONDS
            )
        if session is None:
            st.info("Your assessment is still being analysed. This page will refresh.")
            if st.button("Refresh"):
                st.rerun()
            return

    st.markdown(f"> {session.symptoms_text}")
    render_triage(session)
    render_files(_sm.get_session_files(session_id))

    st.divider()
    c1, c2, c3 = st.columns([1, 1, 1], gap="small")
    with c1:
        st.download_button(
            "Download (JSON)",
            data=(export_session_json(session_id, user["id"]) or "").encode("utf-8"),
            file_name=f"apna_health_{session_id[:8]}.json",
            mime="application/json",
            use_container_width=True,
        )
    with c2:
        st.download_button(
            "Download (PDF)",
            data=export_session_pdf(session_id, user["id"]) or b"",
            file_name=f"apna_health_{session_id[:8]}.pdf",
            mime="application/pdf",
            use_container_width=True,
        )
    with c3:
        if st.button("New assessment", type="primary", use_container_width=True):
            st.session_state["active_session_id"] = None
            st.session_state["current_page"] = "assess"
            st.rerun()
