"""
storage/export.py

Session export: a JSON string or PDF bytes for one symptom assessment,
including its uploaded report files and their OCR state.

Only the session owner may export it.

Dependencies
------------
- reportlab  (PDF generation)
- storage.db (data access)
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from io import BytesIO
from typing import Any
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from pipelines.schemas import DEFAULT_DISCLAIMER
from storage import db as _db

logger = logging.getLogger(__name__)

_LEVEL_COLOURS = {
    "emergency": "#b00020",
    "urgent-visit": "#e65100",
    "see-doctor": "#f9a825",
    "self-care": "#2e7d32",
}


# ---------------------------------------------------------------------------
# Shared data fetch
# ---------------------------------------------------------------------------


def _build_export_bundle(session_id: str, user_id: str) -> dict[str, Any] | None:
    """Return ``None`` if the session is missing or not owned by *user_id*."""
    session = _db.get_session(session_id)
    if session is None:
        return None
    if session["user_id"] != user_id:
        logger.warning("Export denied: user %s does not own session %s", user_id, session_id)
        return None

    files = _db.list_files_for_session(session_id)
    return {
        "export_generated_at": datetime.now(tz=timezone.utc).isoformat(),
        "session": session,
        "report_files": [
            {
                "file_name": f["file_name"],
                "file_type": f["file_type"],
                "file_size": f["file_size"],
                "ocr_status": f["ocr_status"],
                "ocr_text": f["ocr_text"],
                "parsed_data": f["parsed_data"],
            }
            for f in files
        ],
        "disclaimer": DEFAULT_DISCLAIMER,
    }


# ---------------------------------------------------------------------------
# JSON export
# ---------------------------------------------------------------------------


def export_session_json(session_id: str, user_id: str) -> str | None:
    """
    Pretty-printed JSON for a session, or ``None`` if access is denied or
    the session does not exist.
    """
    bundle = _build_export_bundle(session_id, user_id)
    if bundle is None:
        return None
    logger.info("Exported session %s as JSON", session_id)
    return json.dumps(bundle, indent=2, ensure_ascii=False, default=str)


# ---------------------------------------------------------------------------
# PDF export
# ---------------------------------------------------------------------------


def _p(text: Any, style: ParagraphStyle) -> Paragraph:
    return Paragraph(escape(str(text)).replace("\n", "<br/>"), style)


def _bullets(items: list[str], style: ParagraphStyle) -> list[Paragraph]:
    return [_p(f"• {item}", style) for item in items]


def export_session_pdf(session_id: str, user_id: str) -> bytes | None:
    """
    Render a session summary as a PDF.

    Returns:
        PDF bytes, or ``None`` if access is denied or the session is missing.
    """
    bundle = _build_export_bundle(session_id, user_id)
    if bundle is None:
        return None

    session = bundle["session"]
    recs = session.get("recommendations") or {}
    level = session.get("triage_level")

    buf = BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=A4,
        leftMargin=inch,
        rightMargin=inch,
        topMargin=inch,
        bottomMargin=inch,
    )

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        "ApnaTitle",
        parent=styles["Title"],
        fontSize=18,
        textColor=colors.HexColor("#0d47a1"),
        spaceAfter=6,
    )
    heading_style = ParagraphStyle(
        "ApnaHeading",
        parent=styles["Heading2"],
        fontSize=12,
        textColor=colors.HexColor("#0d47a1"),
        spaceBefore=12,
        spaceAfter=4,
    )
    normal = styles["Normal"]
    small = ParagraphStyle("Small", parent=normal, fontSize=8, textColor=colors.grey)

    story: list[Any] = []

    # ---- Header ----
    story.append(_p("Apna Health Assistant: Symptom Assessment", title_style))
    story.append(_p(f"Generated: {bundle['export_generated_at']}", small))
    story.append(Spacer(1, 0.15 * inch))

    # ---- Assessment table ----
    story.append(_p("Assessment", heading_style))
    confidence = session.get("confidence_score")
    rows = [
        ["Field", "Value"],
        ["Submitted", session["created_at"]],
        ["Triage level", level or "pending"],
        ["Confidence", f"{confidence:.0%}" if confidence is not None else "-"],
        ["Severity", session.get("severity") or "-"],
        ["Age", str(session.get("age") or "-")],
        ["Onset", session.get("onset") or "-"],
        ["Duration", session.get("duration") or "-"],
    ]
    table = Table(rows, colWidths=[1.8 * inch, 4.4 * inch])
    style = [
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#0d47a1")),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#cccccc")),
        ("LEFTPADDING", (0, 0), (-1, -1), 6),
        ("TOPPADDING", (0, 0), (-1, -1), 4),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ]
    if level in _LEVEL_COLOURS:
        style.append(("TEXTCOLOR", (1, 2), (1, 2), colors.HexColor(_LEVEL_COLOURS[level])))
        style.append(("FONTNAME", (1, 2), (1, 2), "Helvetica-Bold"))
    table.setStyle(TableStyle(style))
    story.append(table)

    story.append(_p("Symptoms", heading_style))
    story.append(_p(session["symptoms_text"], normal))

    if session.get("triage_reason"):
        story.append(_p("Reason", heading_style))
        story.append(_p(session["triage_reason"], normal))

    # ---- Recommendations ----
    if level == "emergency":
        story.append(_p("Call emergency services now", heading_style))
        for contact in recs.get("indian_emergency_contacts", []):
            story.append(_p(f"{contact['name']}: {contact['number']}", normal))
    elif recs.get("medicines"):
        story.append(_p("Medicines", heading_style))
        for med in recs["medicines"]:
            line = med["name"]
            if med.get("dose"):
                line += f" ({med['dose']})"
            if med.get("notes"):
                line += f" - {med['notes']}"
            story.append(_p(f"• {line}", normal))

    if recs.get("home_remedies") and level != "emergency":
        story.append(_p("Home remedies", heading_style))
        story.extend(_bullets(recs["home_remedies"], normal))
    if recs.get("what_to_do"):
        story.append(_p("What to do", heading_style))
        story.extend(_bullets(recs["what_to_do"], normal))
    if recs.get("what_not_to_do"):
        story.append(_p("What not to do", heading_style))
        story.extend(_bullets(recs["what_not_to_do"], normal))

    follow_up = recs.get("follow_up") or {}
    if follow_up.get("when_to_see_provider") or recs.get("doctor_specialization"):
        story.append(_p("Follow-up", heading_style))
        if follow_up.get("when_to_see_provider"):
            story.append(_p(follow_up["when_to_see_provider"], normal))
        doctor = follow_up.get("suggested_doctor_type") or recs.get("doctor_specialization")
        if doctor:
            story.append(_p(f"Suggested doctor: {doctor}", normal))

    # ---- Files ----
    if bundle["report_files"]:
        story.append(_p("Uploaded reports", heading_style))
        file_rows = [["File", "Type", "OCR"]] + [
            [f["file_name"], f["file_type"], f["ocr_status"]] for f in bundle["report_files"]
        ]
        file_table = Table(file_rows, colWidths=[3.2 * inch, 1.6 * inch, 1.4 * inch])
        file_table.setStyle(
            TableStyle([
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#2d6a4f")),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, -1), 9),
                ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#cccccc")),
            ])
        )
        story.append(file_table)

    # ---- Disclaimer ----
    story.append(Spacer(1, 0.3 * inch))
    story.append(_p(recs.get("disclaimer") or bundle["disclaimer"], small))

    doc.build(story)
    logger.info("Exported session %s as PDF", session_id)
    return buf.getvalue()
