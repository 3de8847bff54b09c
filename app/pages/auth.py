"""
app/pages/auth.py

Demo sign-in: an email address maps to a stable user id. There are no
passwords; this only separates one demo user's history from another's.
"""

from __future__ import annotations

import re
import uuid

import streamlit as st

from app.ui import card_close, card_open

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# Fixed namespace so the same email always yields the same id.
_USER_NAMESPACE = uuid.UUID("5d0f3a52-8d0b-4d0e-9a43-2c1f6f1b7a10")


def user_id_for_email(email: str) -> str:
    return str(uuid.uuid5(_USER_NAMESPACE, email.strip().lower()))


def render() -> None:
    st.title("Apna Health Assistant")
    st.caption("AI-assisted symptom triage with care guidance for India.")

    card_open("Sign in", "Use any email address. Demo accounts have no password.")
    with st.form("sign_in"):
        email = st.text_input("Email", placeholder="you@example.com")
        submitted = st.form_submit_button("Continue", type="primary")
    card_close()

    if submitted:
        email = email.strip().lower()
        if not _EMAIL_RE.match(email):
            st.toast("Please enter a valid email address", icon="⚠️")
            return
        st.session_state["auth_user"] = {"id": user_id_for_email(email), "email": email}
        st.session_state["current_page"] = "consent"
        st.toast("Signed in")
        st.rerun()
