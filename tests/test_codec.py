from __future__ import annotations

import numpy as np
import pytest

from app.backend.capture.codec import (
    MAX_UPLOAD_BYTES,
    assess_capture_quality,
    compress_image,
    decode_data_url,
    decode_image,
    encode_data_url,
    validate_image_upload,
)

from conftest import SKIN_BGR, blank_frame, striped_frame


def test_data_url_round_trip_keeps_geometry() -> None:
    url = encode_data_url(striped_frame(), quality=80)
    assert url.startswith("data:image/jpeg;base64,")
    assert decode_image(url).shape == (480, 640, 3)


def test_decode_data_url_mime_and_bare_base64() -> None:
    assert decode_data_url("data:image/png;base64,AAAA") == ("image/png", b"\x00\x00\x00")
    assert decode_data_url("AAAA")[0] == "image/jpeg"
    with pytest.raises(ValueError):
        decode_data_url("data:image/png;base64,")


def test_decode_garbage_raises_value_error() -> None:
    with pytest.raises(ValueError):
        decode_image(b"definitely not an image")


def test_compress_never_upscales() -> None:
    small = blank_frame(100, 200)
    assert compress_image(small) is small
    big = compress_image(blank_frame(1200, 1600))
    assert big.shape[:2] == (600, 800)


def test_upload_validation() -> None:
    assert validate_image_upload("image/webp", 1000) == (True, "")
    assert not validate_image_upload("image/gif", 1000)[0]
    assert not validate_image_upload("image/png", MAX_UPLOAD_BYTES + 1)[0]


def test_quality_check() -> None:
    columns = blank_frame()
    columns[:, ::2] = SKIN_BGR
    good = assess_capture_quality(columns)
    assert good.is_valid
    assert good.feedback == "Good hand positioning detected"

    dark = assess_capture_quality(blank_frame())
    assert not dark.is_valid
    assert dark.confidence == 40

    assert assess_capture_quality(np.zeros((0, 0, 3), dtype=np.uint8)).confidence == 0
