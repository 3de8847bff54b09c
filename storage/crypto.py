"""
storage/crypto.py

Fernet encryption for sensitive JSON columns (the LLM audit log's prompt and
response payloads, which contain the user's full symptom description and any
OCR'd report data).

Key lifecycle
-------------
APP_DATA_KEY must hold a URL-safe base64 32-byte key as produced by
``Fernet.generate_key()``. When it is unset, an in-memory key is generated
for the life of the process and a warning is logged; rows written with it
cannot be read after a restart.

Public API
----------
encrypt_json(data) -> str
decrypt_json(token) -> dict
"""

import json
import logging
import os
from functools import lru_cache
from typing import Any

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)

_ENV_KEY_NAME = "APP_DATA_KEY"


@lru_cache(maxsize=1)
def _get_fernet() -> Fernet:
    raw_key = os.environ.get(_ENV_KEY_NAME)
    if raw_key:
        logger.debug("Fernet key loaded from '%s'.", _ENV_KEY_NAME)
        return Fernet(raw_key.encode("utf-8"))

    logger.warning(
        "%s is not set; using a temporary in-memory key. Encrypted audit data "
        "will NOT be readable after this process exits.",
        _ENV_KEY_NAME,
    )
    return Fernet(Fernet.generate_key())


def encrypt_json(data: Any) -> str:
    """
    Serialise *data* to JSON and encrypt it.

    Returns:
        Fernet token as text, suitable for a SQLite TEXT column.
    """
    plaintext = json.dumps(data, ensure_ascii=False, default=str).encode("utf-8")
    return _get_fernet().encrypt(plaintext).decode("utf-8")


def decrypt_json(token: str) -> Any:
    """
    Reverse :func:`encrypt_json`.

    Raises:
        cryptography.fernet.InvalidToken: wrong key or corrupted token.
    """
    try:
        plaintext = _get_fernet().decrypt(token.encode("utf-8"))
    except InvalidToken:
        logger.error("Fernet decryption failed: wrong key or corrupted token.")
        raise
    return json.loads(plaintext.decode("utf-8"))
