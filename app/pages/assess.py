"""
app/pages/assess.py

Symptom assessment form
- Structured symptom input (validated by SymptomInput)
- Optional medical report upload (JPG/PNG/PDF, max 10 MB), OCR'd in the background
- Submits, analyses, then opens Results
"""

from __future__ import annotations

import logging

import streamlit as st
from pydantic import ValidationError

from app.ui import card_close, card_open
from pipelines.schemas import SymptomInput
from storage import session_manager as _sm

logger = logging.getLogger(__name__)

SEVERITY_OPTIONS = {
    "Mild": "mild",
    "Moderate": "moderate",
    "Significant": "significant",
    "Severe": "severe",
    "Emergency-level": "emergency-level",
}

_FIELD_LABELS = {
    "symptoms_text": "Please describe your symptoms in at least 10 characters",
    "severity": "Please select severity",
    "age": "Please enter an age between 1 and 120",
}


def _first_error(exc: ValidationError) -> str:
    err = exc.errors()[0]
    field = str(err["loc"][0]) if err.get("loc") else ""
    return _FIELD_LABELS.get(field, err.get("msg", "Invalid input"))


def render() -> None:
    user = st.session_state.get("auth_user")
    if not user:
        st.session_state["current_page"] = "auth"
        st.rerun()
        return

    st.title("Describe your symptoms")
    st.caption("The more detail you give, the better the guidance.")

    with st.form("symptom_form"):
        card_open("Symptoms")
        symptoms_text = st.text_area(
            "What are you experiencing? *",
            placeholder="e.g. fever since yesterday with sore throat and body ache",
            height=140,
        )
        c1, c2, c3 = st.columns(3)
        with c1:
            severity_label = st.selectbox(
                "Severity *", options=list(SEVERITY_OPTIONS), index=None, placeholder="Select"
            )
        with c2:
            onset = st.text_input("When did it start?", placeholder="e.g. 2 days ago")
        with c3:
            duration = st.text_input("How long does it last?", placeholder="e.g. constant")
        card_close()

        card_open("About you")
        c4, c5 = st.columns([1, 2])
        with c4:
            age = st.number_input("Age *", min_value=0, max_value=130, value=None, step=1)
            is_pregnant = st.checkbox("Currently pregnant")
        with c5:
            existing_conditions = st.text_input("Existing conditions", placeholder="e.g. diabetes, asthma")
            current_medications = st.text_input("Current medications")
            allergies = st.text_input("Allergies")
        card_close()

        card_open("Medical report (optional)", "JPG, PNG or PDF up to 10 MB.")
        uploaded = st.file_uploader("Upload report", type=["jpg", "jpeg", "png", "pdf"])
        card_close()

        submitted = st.form_submit_button("Analyse symptoms", type="primary", use_container_width=True)

    if not submitted:
        return

    try:
        symptoms = SymptomInput(
            symptoms_text=symptoms_text,
            severity=SEVERITY_OPTIONS.get(severity_label or "", ""),
            age=age,
            onset=onset,
            duration=duration,
            existing_conditions=existing_conditions,
            current_medications=current_medications,
            allergies=allergies,
            is_pregnant=is_pregnant,
        )
    except ValidationError as exc:
        st.toast(_first_error(exc), icon="⚠️")
        return

    upload = None
    if uploaded is not None:
        data = uploaded.getvalue()
        try:
            _sm.validate_upload(uploaded.name, uploaded.type, len(data))
        except ValueError as exc:
            st.toast(str(exc), icon="⚠️")
            return
        upload = (uploaded.name, uploaded.type, data)

    with st.spinner("Analysing your symptoms…"):
        try:
            session = _sm.submit_assessment(user["id"], symptoms, upload=upload)
        except Exception as exc:
            logger.error("Error submitting form: %s", exc)
            st.toast(str(exc) or "Failed to submit symptoms", icon="❌")
            return

    st.session_state["active_session_id"] = session.id
    st.session_state["current_page"] = "results"
    st.toast("Analysis completed!", icon="✅")
    st.rerun()
