"""
app/pages/consent.py

Terms & consent gate. Agreeing appends a consent record; the app unlocks
once the newest record for the user grants consent.
"""

from __future__ import annotations

import logging

import streamlit as st

from app.ui import card_close, card_open
from storage import session_manager as _sm

logger = logging.getLogger(__name__)


def render() -> None:
    user = st.session_state.get("auth_user")
    if not user:
        st.session_state["current_page"] = "auth"
        st.rerun()
        return

    st.title("Important: Terms & Consent")
    st.error(
        "**EMERGENCY DISCLAIMER:** If you are experiencing a medical emergency "
        "(chest pain, difficulty breathing, severe bleeding, loss of consciousness, etc.), "
        "call emergency services immediately. Do NOT use this tool."
    )

    card_open("Please read and acknowledge the following before using this service")
    st.text(_sm.CONSENT_TEXT)
    card_close()

    agreed = st.checkbox(
        "I have read and agree to the terms above. I understand this is an educational "
        "demonstration tool only and not a substitute for professional medical advice."
    )

    if st.button("I Agree - Continue to Health Assistant", type="primary", disabled=not agreed):
        try:
            _sm.give_consent(user["id"], user_agent=st.context.headers.get("User-Agent"))
        except Exception as exc:
            logger.error("Error recording consent: %s", exc)
            st.toast("Failed to record consent", icon="❌")
            return
        st.toast("Consent recorded successfully", icon="✅")
        st.session_state["current_page"] = "assess"
        st.rerun()
