from __future__ import annotations

import asyncio
import concurrent.futures
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from app.backend.capture.analyzer import FramePixelAnalyzer, HandBounds
from app.backend.capture.camera import MediaDeviceSession, open_camera
from app.backend.capture.codec import compress_image, encode_data_url
from app.backend.capture.cropper import CaptureCropper
from app.backend.capture.stability import HandStabilityDetector
from app.backend.config import Settings
from app.backend.evaluation.gateway import EvaluationGateway
from app.backend.evaluation.policy import EvaluationVerdict
from app.backend.uploads import UploadStore, upload_best_effort

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CapturedArtifact:
    image: str                      # JPEG data URL
    hand_detected: bool
    bounds: Optional[HandBounds] = None
    upload_url: Optional[str] = None
    size: int = 0


def detect_hand_bounds(frame: np.ndarray, analyzer: Optional[FramePixelAnalyzer] = None) -> HandBounds:
    return (analyzer or FramePixelAnalyzer()).hand_bounds(frame)


def capture_with_hand_detection(
    frame: np.ndarray,
    analyzer: FramePixelAnalyzer,
    cropper: CaptureCropper,
    quality: int = 90,
) -> CapturedArtifact:
    try:
        bounds = detect_hand_bounds(frame, analyzer)
    except (ValueError, IndexError):
        logger.warning("Hand bounds detection failed, using center crop", exc_info=True)
        bounds = None

    still = compress_image(cropper.crop(frame, bounds))
    return CapturedArtifact(
        image=encode_data_url(still, quality),
        hand_detected=bounds is not None and bounds.confidence > 0.3,
        bounds=bounds,
        size=int(still.shape[0]),
    )


def representative_frame(frames: Sequence[np.ndarray], analyzer: FramePixelAnalyzer) -> Optional[np.ndarray]:
    """Best frame of a clip for single-image evaluation: most confident hand, else the middle one."""
    if not frames:
        return None
    best, best_conf = None, -1
    for frame in frames:
        analysis = analyzer.analyze(frame)
        if analysis.present and analysis.confidence > best_conf:
            best, best_conf = frame, analysis.confidence
    return best if best is not None else frames[len(frames) // 2]


@dataclass(frozen=True)
class AttemptResult:
    artifact: Optional[CapturedArtifact]
    verdict: EvaluationVerdict
    timed_out: bool = False


class CaptureFlow:
    """
    One camera attempt: open, wait for a steady hand, grab and crop a still,
    upload it best-effort and evaluate it. Camera, polling and executor are
    always released on exit, including on errors and cancellation.
    """

    def __init__(
        self,
        settings: Settings,
        gateway: EvaluationGateway,
        uploads: Optional[UploadStore] = None,
        session: Optional[MediaDeviceSession] = None,
    ):
        self.settings = settings
        self.gateway = gateway
        self.uploads = uploads
        self.session = session or MediaDeviceSession()
        self.analyzer = FramePixelAnalyzer(settings.analyzer)
        self.cropper = CaptureCropper(settings.crop)

    async def attempt(
        self,
        expected_letter: str,
        question_text: str = "",
        set_id: int = 0,
        question_id: int = 0,
        timeout_s: float = 20.0,
    ) -> AttemptResult:
        loop = asyncio.get_running_loop()
        # camera and analysis stay on one worker thread, as OpenCV capture objects are not thread-safe
        executor = concurrent.futures.ThreadPoolExecutor(max_workers=1)
        triggered = asyncio.Event()
        detector = HandStabilityDetector(
            self.analyzer,
            self.settings.stability,
            on_detected=triggered.set,
            on_lost=lambda: logger.info("Hand left the frame"),
        )
        handle = None
        try:
            await loop.run_in_executor(executor, open_camera, self.session, self.settings.camera)

            async def read_frame():
                return await loop.run_in_executor(executor, self.session.read)

            handle = detector.start(read_frame, executor=executor)
            timed_out = False
            try:
                await asyncio.wait_for(triggered.wait(), timeout=timeout_s)
            except asyncio.TimeoutError:
                timed_out = True
                logger.info("No steady hand within %.0fs, capturing current frame", timeout_s)

            handle.cancel()
            frame = await loop.run_in_executor(executor, self.session.read)
        finally:
            if handle is not None:
                handle.cancel()
            await loop.run_in_executor(executor, self.session.stop)
            executor.shutdown(wait=False)

        if frame is None:
            return AttemptResult(None, self.gateway.fallback(expected_letter), timed_out)

        artifact = capture_with_hand_detection(frame, self.analyzer, self.cropper, self.settings.crop.jpeg_quality)
        upload_url = await loop.run_in_executor(
            None, upload_best_effort, self.uploads, artifact.image, set_id, question_id
        )
        if upload_url:
            artifact = CapturedArtifact(artifact.image, artifact.hand_detected, artifact.bounds, upload_url, artifact.size)

        verdict = await loop.run_in_executor(
            None, self.gateway.evaluate, artifact.image, expected_letter, question_text
        )
        return AttemptResult(artifact, verdict, timed_out)
