"""
app/pages/history.py

Past assessments for the signed-in user, newest first.
"""

from __future__ import annotations

import streamlit as st

from app.ui import triage_badge
from storage import session_manager as _sm


def render() -> None:
    user = st.session_state.get("auth_user")
    if not user:
        st.session_state["current_page"] = "auth"
        st.rerun()
        return

    st.title("History")
    sessions = _sm.get_history(user["id"])
    if not sessions:
        st.info("No assessments yet.")
        return

    for s in sessions:
        with st.container(border=True):
            left, right = st.columns([4, 1])
            with left:
                st.markdown(
                    f"{triage_badge(s.triage_level)} "
                    f"<span class='ah-sub'>{s.created_at[:16].replace('T', ' ')} UTC</span>",
                    unsafe_allow_html=True,
                )
                preview = s.symptoms_text if len(s.symptoms_text) <= 120 else s.symptoms_text[:117] + "…"
                st.markdown(preview)
            with right:
                if st.button("Open", key=f"open_{s.id}", use_container_width=True):
                    st.session_state["active_session_id"] = s.id
                    st.session_state["current_page"] = "results"
                    st.rerun()
