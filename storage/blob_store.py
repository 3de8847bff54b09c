"""
storage/blob_store.py

Filesystem-backed blob store for uploaded medical reports.

Objects live under ``<APNA_BLOB_DIR>/<bucket>/<path>``; paths use forward
slashes (``<user_id>/<timestamp>-<random>-<file name>``) and may not escape the bucket.
"""

from __future__ import annotations

import logging
import os
import re
import time
import uuid
from pathlib import Path

logger = logging.getLogger(__name__)

_PROJECT_ROOT = Path(__file__).resolve().parents[1]
_DEFAULT_BLOB_DIR = _PROJECT_ROOT / "data" / "blobs"

REPORTS_BUCKET = "medical-reports"


def _blob_root() -> Path:
    return Path(os.environ.get("APNA_BLOB_DIR") or _DEFAULT_BLOB_DIR)


def make_object_path(user_id: str, file_name: str) -> str:
    """Build ``<user_id>/<millis>-<random>-<safe name>`` for a new upload."""
    safe_name = re.sub(r"[^A-Za-z0-9._-]+", "_", Path(file_name).name).strip("._") or "upload"
    return f"{user_id}/{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}-{safe_name}"


class BlobStore:
    def __init__(self, bucket: str = REPORTS_BUCKET, root: Path | None = None) -> None:
        self.bucket = bucket
        self.root = (root or _blob_root()) / bucket

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if not target.is_relative_to(self.root.resolve()):
            raise ValueError(f"Blob path escapes bucket: {path!r}")
        return target

    def upload(self, path: str, data: bytes) -> str:
        """
        Store *data* at *path*.

        Raises:
            FileExistsError: if an object already exists at *path*.
        """
        target = self._resolve(path)
        if target.exists():
            raise FileExistsError(f"Blob already exists: {path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_name(target.name + ".tmp")
        tmp.write_bytes(data)
        tmp.replace(target)
        logger.info("Stored blob %s/%s (%d bytes)", self.bucket, path, len(data))
        return path

    def download(self, path: str) -> bytes:
        """Raises FileNotFoundError if the object does not exist."""
        target = self._resolve(path)
        if not target.is_file():
            raise FileNotFoundError(f"Blob not found: {self.bucket}/{path}")
        return target.read_bytes()

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()
