"""
app/main.py

Apna Health Assistant: Streamlit entry point.
- Demo sign-in gate
- Consent gate (newest consent record decides)
- Assessment / Results / History navigation
- Global theme injection
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import streamlit as st
from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

load_dotenv(PROJECT_ROOT / ".env")

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

from app.pages import assess, auth, consent, history, results  # noqa: E402
from app.ui import inject_theme  # noqa: E402
from storage import db as _db  # noqa: E402
from storage import session_manager as _sm  # noqa: E402

# ---------------------------------------------------------------------------
# Page config
# ---------------------------------------------------------------------------
st.set_page_config(
    page_title="Apna Health Assistant",
    page_icon="🩺",
    layout="wide",
    initial_sidebar_state="expanded",
)


@st.cache_resource
def _init_storage() -> bool:
    _db.init_db()
    return True


_init_storage()

# ---------------------------------------------------------------------------
# Session defaults
# ---------------------------------------------------------------------------
if "auth_user" not in st.session_state:
    st.session_state["auth_user"] = None  # {"id", "email"} | None
if "current_page" not in st.session_state:
    st.session_state["current_page"] = "auth"
if "active_session_id" not in st.session_state:
    st.session_state["active_session_id"] = None


def _logout() -> None:
    st.session_state["auth_user"] = None
    st.session_state["active_session_id"] = None
    st.session_state["current_page"] = "auth"
    st.rerun()


inject_theme()

# ---------------------------------------------------------------------------
# Sidebar
# ---------------------------------------------------------------------------
st.sidebar.title("🩺 Apna Health")
st.sidebar.markdown("Describe your symptoms and get guidance on where to go next.")
st.sidebar.divider()

user = st.session_state["auth_user"]
if user:
    st.sidebar.success(f"**{user['email']}**")
    if st.sidebar.button("↩️ Sign out"):
        _logout()
else:
    st.sidebar.info("Not signed in")

st.sidebar.divider()

# ---------------------------------------------------------------------------
# Navigation
# ---------------------------------------------------------------------------
if not user:
    nav_options = [("Sign in", "auth")]
elif not _sm.has_consent(user["id"]):
    nav_options = [("Consent", "consent")]
else:
    nav_options = [
        ("New assessment", "assess"),
        ("Results", "results"),
        ("History", "history"),
    ]

labels = [x[0] for x in nav_options]
keys = [x[1] for x in nav_options]

try:
    current_idx = keys.index(st.session_state["current_page"])
except ValueError:
    current_idx = 0
    st.session_state["current_page"] = keys[0]

page_label = st.sidebar.radio("Navigate", options=labels, index=current_idx)
page_key = dict(nav_options)[page_label]
st.session_state["current_page"] = page_key

st.sidebar.divider()
st.sidebar.caption(
    "⚠️ Educational demo only. Not a substitute for professional medical advice.\n\n"
    "In an emergency call **112** or **108**."
)

# ---------------------------------------------------------------------------
# Page routing
# ---------------------------------------------------------------------------
_PAGES = {
    "auth": auth.render,
    "consent": consent.render,
    "assess": assess.render,
    "results": results.render,
    "history": history.render,
}

_PAGES[page_key]()
