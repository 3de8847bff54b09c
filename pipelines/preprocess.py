"""
pipelines/preprocess.py

Prepares uploaded report files before they are sent to the OCR model.
Images are converted to RGB, downscaled so the longest side is at most
MAX_SIDE, and re-encoded; PDFs pass through untouched.
"""

import io
import logging

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

MAX_SIDE: int = 2048

IMAGE_TYPES = ("image/jpeg", "image/jpg", "image/png")


def preprocess_image(image: Image.Image) -> Image.Image:
    """
    Prepare a PIL image for OCR.

    Steps:
      1. Convert to RGB (handles grayscale, RGBA, palette scans).
      2. Resize so the longest side is MAX_SIDE, preserving aspect ratio.

    Args:
        image: Input PIL Image in any mode.

    Returns:
        Preprocessed PIL Image in RGB mode.
    """
    if image.mode != "RGB":
        logger.debug("Converting image from mode=%s to RGB.", image.mode)
        image = image.convert("RGB")

    original_size = image.size  # (width, height)
    max_dim = max(original_size)
    if max_dim > MAX_SIDE:
        scale = MAX_SIDE / max_dim
        new_size = (
            max(1, int(original_size[0] * scale)),
            max(1, int(original_size[1] * scale)),
        )
        image = image.resize(new_size, Image.LANCZOS)
        logger.debug("Resized image from %s to %s.", original_size, new_size)

    return image


def prepare_document(data: bytes, mime_type: str) -> tuple[bytes, str]:
    """
    Return ``(bytes, mime_type)`` ready to be base64-encoded for the OCR call.

    Images come back as PNG; anything else is returned unchanged.

    Raises:
        ValueError: if an image file cannot be decoded.
    """
    if mime_type not in IMAGE_TYPES:
        return data, mime_type

    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise ValueError(f"Could not read the uploaded file as an image: {exc}") from exc

    out = io.BytesIO()
    preprocess_image(image).save(out, format="PNG")
    return out.getvalue(), "image/png"
