import io

import pytest
from PIL import Image

from pipelines.preprocess import MAX_SIDE, prepare_document, preprocess_image


def _encode(image, fmt):
    buf = io.BytesIO()
    image.save(buf, format=fmt)
    return buf.getvalue()


def test_large_image_is_downscaled_preserving_aspect():
    out = preprocess_image(Image.new("RGB", (4096, 1024)))
    assert out.size == (MAX_SIDE, 512)


def test_small_image_keeps_size_and_becomes_rgb():
    out = preprocess_image(Image.new("L", (300, 200)))
    assert out.mode == "RGB"
    assert out.size == (300, 200)


def test_jpeg_is_re_encoded_as_png():
    data, mime = prepare_document(_encode(Image.new("RGB", (50, 50), "red"), "JPEG"), "image/jpeg")
    assert mime == "image/png"
    assert data.startswith(b"\x89PNG")


def test_pdf_passes_through():
    raw = b"%PDF-1.4 whatever"
    assert prepare_document(raw, "application/pdf") == (raw, "application/pdf")


def test_corrupt_image_raises_value_error():
    with pytest.raises(ValueError):
        prepare_document(b"not an image", "image/png")


def test_very_thin_image_keeps_at_least_one_pixel():
    out = preprocess_image(Image.new("RGB", (4096, 1)))
    assert out.size == (MAX_SIDE, 1)
