# =========================
# app/ui.py
# =========================
from __future__ import annotations

import html

import streamlit as st

# triage level -> (css class, label)
TRIAGE_STYLES: dict[str, tuple[str, str]] = {
    "emergency": ("tl-emergency", "Emergency"),
    "urgent-visit": ("tl-urgent", "Urgent visit"),
    "see-doctor": ("tl-doctor", "See a doctor"),
    "self-care": ("tl-self", "Self-care"),
}

OCR_STATUS_LABELS = {
    "pending": "⏳ Reading report…",
    "completed": "✅ Report read",
    "failed": "⚠️ Could not read report",
}


def inject_theme() -> None:
    st.markdown(
        """
<style>
/* Hide Streamlit built-in multipage nav (we route ourselves) */
[data-testid="stSidebarNav"] { display: none !important; }

:root{
  --canvas: #F5F7FA;
  --card: #FFFFFF;
  --border: rgba(15,23,42,0.10);
  --muted: rgba(15,23,42,0.55);
  --text: rgba(15,23,42,0.92);
  --brand: #0D47A1;
}

.stApp { background: var(--canvas); }
div.block-container { padding-top: 2rem; padding-bottom: 2rem; }

section[data-testid="stSidebar"]{ background: #0B2545 !important; }
section[data-testid="stSidebar"] *{ color: #E8EEF6 !important; }

.stButton>button{ border-radius: 12px; }
.stButton>button[kind="primary"]{
  background: var(--brand) !important;
  border: 1px solid var(--brand) !important;
  color: white !important;
}

.ah-card{
  background: var(--card);
  border: 1px solid var(--border);
  border-radius: 16px;
  padding: 16px;
  margin-bottom: 12px;
}
.ah-title{ font-weight: 800; font-size: 16px; color: var(--text); }
.ah-sub{ color: var(--muted); font-size: 13px; }

/* Triage pills */
.tl-badge{
  display:inline-block;
  padding: 6px 12px;
  border-radius: 999px;
  font-size: 13px;
  font-weight: 800;
}
.tl-emergency{ background:#FDECEA; color:#B00020; }
.tl-urgent{ background:#FFF1E6; color:#E65100; }
.tl-doctor{ background:#FFF8E1; color:#8D6E00; }
.tl-self{ background:#E8F5E9; color:#2E7D32; }
.tl-pending{ background:#EEF2F7; color:rgba(15,23,42,0.70); }

.ah-emergency{
  background:#B00020; color:#FFFFFF;
  border-radius:16px; padding:18px; margin-bottom:12px;
  font-weight:700;
}
.ah-emergency a{ color:#FFFFFF !important; text-decoration: underline; }
</style>
        """,
        unsafe_allow_html=True,
    )


def _esc(x: str) -> str:
    """Escape any user/DB-provided strings before injecting into HTML."""
    return html.escape(str(x or ""), quote=True)


def card_open(title: str, subtitle: str = "") -> None:
    sub = f'<div class="ah-sub">{_esc(subtitle)}</div>' if subtitle else ""
    st.markdown(
        f'<div class="ah-card"><div class="ah-title">{_esc(title)}</div>{sub}',
        unsafe_allow_html=True,
    )


def card_close() -> None:
    st.markdown("</div>", unsafe_allow_html=True)


def triage_badge(level: str | None) -> str:
    """HTML pill for a triage level; ``None`` renders as pending."""
    cls, txt = TRIAGE_STYLES.get(level or "", ("tl-pending", "Analysing…"))
    return f'<span class="tl-badge {cls}">{_esc(txt)}</span>'


def emergency_banner(contacts: list[dict]) -> None:
    numbers = " · ".join(
        f'{_esc(c.get("name"))}: <a href="tel:{_esc(c.get("number"))}">{_esc(c.get("number"))}</a>'
        for c in contacts
    )
    st.markdown(
        f"""
<div class="ah-emergency">
  🚨 Your symptoms may need emergency care. Call emergency services now.
  <div style="margin-top:8px; font-weight:600;">{numbers}</div>
</div>
        """,
        unsafe_allow_html=True,
    )
