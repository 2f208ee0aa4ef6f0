import base64
import binascii
import os
import tempfile
from dataclasses import dataclass
from typing import List, Tuple, Union

import cv2
import numpy as np

MAX_UPLOAD_BYTES = 5 * 1024 * 1024
ALLOWED_IMAGE_TYPES = ("image/jpeg", "image/png", "image/webp")


def decode_data_url(data_url: str) -> Tuple[str, bytes]:
    """Split ``data:<mime>;base64,<payload>`` into (mime, bytes). Bare base64 is accepted as JPEG."""
    if data_url.startswith("data:"):
        header, _, encoded = data_url.partition(",")
        if not encoded:
            raise ValueError("data URL has no payload")
        mime = header[5:].split(";", 1)[0] or "application/octet-stream"
    else:
        mime, encoded = "image/jpeg", data_url
    try:
        return mime, base64.b64decode(encoded, validate=False)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"invalid base64 payload: {e}") from e


def decode_image(data: Union[str, bytes]) -> np.ndarray:
    if isinstance(data, str):
        _, data = decode_data_url(data)
    img = cv2.imdecode(np.frombuffer(data, np.uint8), cv2.IMREAD_COLOR)
    if img is None:
        raise ValueError("cv2.imdecode returned None")
    return img


def encode_jpeg(image: np.ndarray, quality: int = 90) -> bytes:
    ok, buf = cv2.imencode(".jpg", image, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not ok:
        raise ValueError("cv2.imencode failed")
    return buf.tobytes()


def encode_data_url(image: np.ndarray, quality: int = 90) -> str:
    return "data:image/jpeg;base64," + base64.b64encode(encode_jpeg(image, quality)).decode("ascii")


def compress_image(image: np.ndarray, max_side: int = 800) -> np.ndarray:
    h, w = image.shape[:2]
    ratio = min(max_side / w, max_side / h, 1.0)
    if ratio >= 1.0:
        return image
    size = (max(1, int(w * ratio)), max(1, int(h * ratio)))
    return cv2.resize(image, size, interpolation=cv2.INTER_AREA)


def validate_image_upload(mime: str, size: int) -> Tuple[bool, str]:
    if mime not in ALLOWED_IMAGE_TYPES:
        return False, "Invalid file type. Please use JPEG, PNG, or WebP images."
    if size > MAX_UPLOAD_BYTES:
        return False, "File size too large. Please use images smaller than 5MB."
    return True, ""


@dataclass(frozen=True)
class QualityCheck:
    is_valid: bool
    confidence: int
    feedback: str


def assess_capture_quality(image: np.ndarray) -> QualityCheck:
    """Contrast and detail check on a cropped still before it is sent anywhere."""
    if image is None or image.size == 0:
        return QualityCheck(False, 0, "Unable to analyze image")

    brightness = image[..., :3].astype(np.float32).mean(axis=2).ravel()
    # consecutive pixels in row-major order, same as scanning the raw buffer
    edge_ratio = float((np.abs(np.diff(brightness)) > 30).sum()) / brightness.size
    avg = float(brightness.mean())

    good_contrast = 50 < avg < 200
    enough_detail = edge_ratio > 0.1
    confidence = min((50 if good_contrast else 20) + (50 if enough_detail else 20), 100)
    ok = good_contrast and enough_detail
    return QualityCheck(
        ok,
        confidence,
        "Good hand positioning detected" if ok else "Please position your hand more clearly in the frame",
    )


def frames_from_video_bytes(data: bytes, every_n: int = 5, limit: int = 60) -> List[np.ndarray]:
    """Decode a short clip (webm/mp4) into every n-th frame, via a temp file for OpenCV."""
    fd, path = tempfile.mkstemp(suffix=".video")
    frames: List[np.ndarray] = []
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        cap = cv2.VideoCapture(path)
        try:
            idx = 0
            while len(frames) < limit:
                ok, frame = cap.read()
                if not ok:
                    break
                if idx % every_n == 0:
                    frames.append(frame)
                idx += 1
        finally:
            cap.release()
    finally:
        os.remove(path)
    return frames
