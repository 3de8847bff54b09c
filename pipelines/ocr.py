"""
pipelines/ocr.py

Side-channel OCR for uploaded medical reports.

process_report_file() is the whole job for one file: load the record,
download the blob, preprocess, send to the multimodal model, store the text
and structured data. Any failure leaves the file in ``failed`` state; there is
no retry.
"""

from __future__ import annotations

import base64
import logging
from typing import Any

from models.ocr_client import OcrClient
from pipelines.postprocess import parse_model_output
from pipelines.preprocess import prepare_document
from storage import db as _db
from storage.blob_store import BlobStore

logger = logging.getLogger(__name__)


def parse_ocr_output(text: str) -> tuple[str, dict[str, Any]]:
    """
    Split a model reply into ``(extracted_text, structured_data)``.

    Replies that are not a JSON object are kept verbatim as the text with
    empty structured data.
    """
    try:
        parsed = parse_model_output(text)
    except ValueError:
        logger.debug("OCR reply is not JSON; storing raw text.")
        return text, {}

    extracted = parsed.get("extracted_text")
    structured = parsed.get("structured_data")
    return (
        extracted if isinstance(extracted, str) else text,
        structured if isinstance(structured, dict) else {},
    )


def process_report_file(
    file_id: str,
    client: OcrClient | None = None,
    store: BlobStore | None = None,
) -> dict[str, Any]:
    """
    Run OCR for one report file and persist the outcome.

    Returns:
        ``{"extracted_text": ..., "structured_data": ...}``

    Raises:
        LookupError: If the file record does not exist.
        storage.db.InvalidTransitionError: If the file is no longer pending.
        Exception:  Whatever failed; the file has been marked ``failed``.
    """
    record = _db.get_report_file(file_id)
    if record is None:
        raise LookupError(f"Report file {file_id} not found")
    if record["ocr_status"] != "pending":
        raise _db.InvalidTransitionError(
            f"Report file {file_id} is already {record['ocr_status']}; OCR is not retried"
        )

    client = client or OcrClient()
    store = store or BlobStore()
    logger.info("Processing OCR for file %s (%s)", file_id, record["file_type"])

    try:
        raw = store.download(record["file_path"])
        data, mime_type = prepare_document(raw, record["file_type"])
        reply = client.extract(base64.b64encode(data).decode("ascii"), mime_type)
        extracted_text, structured_data = parse_ocr_output(reply.text)
        _db.mark_ocr_completed(file_id, extracted_text, structured_data)
    except Exception:
        logger.exception("OCR failed for file %s", file_id)
        current = _db.get_report_file(file_id)
        if current is not None and current["ocr_status"] == "pending":
            _db.mark_ocr_failed(file_id)
        raise

    logger.info("OCR completed for file %s (%d chars)", file_id, len(extracted_text))
    return {"extracted_text": extracted_text, "structured_data": structured_data}
