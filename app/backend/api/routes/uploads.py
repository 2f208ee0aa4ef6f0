import logging

from fastapi import APIRouter, Depends, HTTPException
from starlette.concurrency import run_in_threadpool

from app.backend.api.deps import get_gateway, get_settings, get_uploads
from app.backend.api.schemas.analysis import VerdictOut
from app.backend.api.schemas.upload import QualityOut, UploadIn, UploadOut
from app.backend.capture.analyzer import FramePixelAnalyzer
from app.backend.capture.codec import (
    assess_capture_quality,
    decode_data_url,
    decode_image,
    encode_data_url,
    frames_from_video_bytes,
    validate_image_upload,
)
from app.backend.capture.pipeline import representative_frame
from app.backend.config import Settings
from app.backend.evaluation.gateway import EvaluationGateway
from app.backend.uploads import UploadError, UploadStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/uploads", tags=["uploads"])

MAX_VIDEO_BYTES = 50 * 1024 * 1024


def _decode(payload: UploadIn):
    if not payload.file:
        raise HTTPException(400, "No file data provided")
    try:
        return decode_data_url(payload.file)
    except ValueError as e:
        raise HTTPException(400, str(e))


def _local_fallback(payload: UploadIn, resource: str, error: Exception) -> UploadOut:
    logger.warning("%s upload failed, returning local copy: %s", resource.capitalize(), error)
    return UploadOut(
        url=payload.file,
        provider="local-data-url",
        fallback=True,
        message=f"Upload failed, using local {resource}",
    )


@router.post("/image", response_model=UploadOut)
def upload_image(
    payload: UploadIn,
    uploads: UploadStore = Depends(get_uploads),
):
    mime, data = _decode(payload)
    ok, reason = validate_image_upload(mime, len(data))
    if not ok:
        raise HTTPException(400, reason)
    try:
        image = decode_image(data)
    except ValueError:
        raise HTTPException(400, "Image could not be decoded")
    check = assess_capture_quality(image)
    quality = QualityOut(is_valid=check.is_valid, confidence=check.confidence, feedback=check.feedback)

    try:
        saved = uploads.save_image(payload.file, payload.set_id, payload.question_id, payload.user_id)
    except (UploadError, OSError) as e:
        out = _local_fallback(payload, "image", e)
        out.quality = quality
        return out
    return UploadOut(url=saved.url, public_id=saved.public_id, provider=saved.provider, quality=quality)


@router.post("/video", response_model=UploadOut)
async def upload_video(
    payload: UploadIn,
    uploads: UploadStore = Depends(get_uploads),
    gateway: EvaluationGateway = Depends(get_gateway),
    settings: Settings = Depends(get_settings),
):
    mime, data = _decode(payload)
    if not mime.startswith("video/"):
        raise HTTPException(400, "Invalid file type. Please record a WebM or MP4 clip.")
    if len(data) > MAX_VIDEO_BYTES:
        raise HTTPException(400, "Video too large. Please keep clips under 50MB.")

    verdict = None
    if payload.expected_answer:
        # a clip is judged on its steadiest, most hand-like frame
        analyzer = FramePixelAnalyzer(settings.analyzer)
        frame = await run_in_threadpool(lambda: representative_frame(frames_from_video_bytes(data), analyzer))
        still = encode_data_url(frame, settings.crop.jpeg_quality) if frame is not None else ""
        verdict = VerdictOut.from_verdict(
            await run_in_threadpool(gateway.evaluate, still, payload.expected_answer, payload.question_text)
        )

    try:
        saved = await run_in_threadpool(
            uploads.save_video, payload.file, payload.set_id, payload.question_id, payload.user_id
        )
    except (UploadError, OSError) as e:
        out = _local_fallback(payload, "video", e)
        out.verdict = verdict
        return out
    return UploadOut(url=saved.url, public_id=saved.public_id, provider=saved.provider, verdict=verdict)
