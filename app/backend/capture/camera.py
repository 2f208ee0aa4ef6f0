import logging
import os
import sys
import time
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Union

import cv2
import numpy as np

from app.backend.config import CameraConfig

logger = logging.getLogger(__name__)

# OpenCV has no facing-mode notion: by convention index 0 is the front camera
FACING_MODE_INDEX = {"user": 0, "environment": 1}


class CameraErrorCategory(str, Enum):
    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    BUSY = "busy"
    METADATA_TIMEOUT = "metadata_timeout"


class CameraError(Exception):
    category: CameraErrorCategory
    retryable = False
    action = "Upload a photo of your hand sign instead, or skip this question."

    def __init__(self, message: str, source=None):
        super().__init__(message)
        self.message = message
        self.source = source

    def to_dict(self) -> dict:
        return {
            "category": self.category.value,
            "message": self.message,
            "action": self.action,
            "retryable": self.retryable,
        }


class CameraPermissionError(CameraError):
    category = CameraErrorCategory.PERMISSION_DENIED
    action = "Grant camera access and retry, or upload a photo instead."


class CameraNotFoundError(CameraError):
    category = CameraErrorCategory.NOT_FOUND
    action = "Connect a camera or pick another device, or upload a photo instead."


class CameraBusyError(CameraError):
    category = CameraErrorCategory.BUSY
    retryable = True
    action = "Close other apps using the camera and retry, or upload a photo instead."


class CameraMetadataTimeout(CameraError):
    category = CameraErrorCategory.METADATA_TIMEOUT
    retryable = True
    action = "Retry opening the camera, or upload a photo instead."


class MediaDeviceSession:
    """
    One camera stream bound to one consumer.

    start() opens the device and blocks until it delivers a frame with
    non-zero dimensions; stop() releases the device and may be called any
    number of times from any state.
    """

    def __init__(
        self,
        capture_factory: Callable = cv2.VideoCapture,
        device_root: Optional[Union[str, Path]] = "/dev",
        poll_s: float = 0.05,
    ):
        self._capture_factory = capture_factory
        self._device_root = Path(device_root) if device_root else None
        self._poll_s = poll_s
        self._cap = None
        self._source = None
        self.active = False
        self.frame_size = (0, 0)  # (width, height)

    @staticmethod
    def resolve_source(config: CameraConfig) -> Union[int, str]:
        # explicit device wins over facing mode
        if config.device_id is not None and config.device_id != "":
            device = config.device_id
            if isinstance(device, str) and device.isdigit():
                return int(device)
            return device
        return FACING_MODE_INDEX.get(config.facing_mode, 0)

    def _check_device(self, source: Union[int, str]) -> None:
        if self._device_root is None or not sys.platform.startswith("linux"):
            return
        if isinstance(source, int):
            path = self._device_root / f"video{source}"
        elif source.startswith("/dev/"):
            path = Path(source)
        else:
            # URLs and files are opened as-is by OpenCV
            return

        if not path.exists():
            raise CameraNotFoundError(f"No camera found at {path}", source)
        if not os.access(path, os.R_OK | os.W_OK):
            raise CameraPermissionError(f"Camera access denied for {path}", source)

    def start(self, config: Optional[CameraConfig] = None) -> "MediaDeviceSession":
        config = config or CameraConfig()
        if self.active or self._cap is not None:
            self.stop()

        source = self.resolve_source(config)
        self._check_device(source)

        cap = self._capture_factory(source)
        if cap is None or not cap.isOpened():
            if cap is not None:
                cap.release()
            raise CameraBusyError(f"Camera {source!r} could not be opened (in use?)", source)

        cap.set(cv2.CAP_PROP_FRAME_WIDTH, config.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, config.height)
        self._cap = cap
        self._source = source

        try:
            self._wait_for_metadata(config.metadata_timeout_s)
        except CameraError:
            self.stop()
            raise

        self.active = True
        logger.info("Camera %r started at %dx%d", source, *self.frame_size)
        return self

    def _wait_for_metadata(self, timeout_s: float) -> None:
        deadline = time.monotonic() + timeout_s
        while True:
            ok, frame = self._cap.read()
            if ok and frame is not None and frame.ndim >= 2 and frame.shape[0] > 0 and frame.shape[1] > 0:
                self.frame_size = (int(frame.shape[1]), int(frame.shape[0]))
                return
            if time.monotonic() >= deadline:
                raise CameraMetadataTimeout(
                    f"Camera {self._source!r} delivered no frame within {timeout_s:.1f}s", self._source
                )
            time.sleep(self._poll_s)

    def read(self) -> Optional[np.ndarray]:
        if not self.active or self._cap is None:
            return None
        ok, frame = self._cap.read()
        if not ok or frame is None:
            return None
        return frame

    def stop(self) -> None:
        cap, self._cap = self._cap, None
        was_active = self.active
        self.active = False
        self.frame_size = (0, 0)
        if cap is not None:
            try:
                cap.release()
            except cv2.error:
                logger.warning("Camera %r release failed", self._source, exc_info=True)
        if was_active:
            logger.info("Camera %r stopped", self._source)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.stop()
        return False


def open_camera(session: MediaDeviceSession, config: CameraConfig, retries: int = 1) -> MediaDeviceSession:
    """Start the session, retrying transient failures (busy, no metadata) once."""
    attempt = 0
    while True:
        try:
            return session.start(config)
        except CameraError as e:
            if not e.retryable or attempt >= retries:
                logger.warning("Camera start failed (%s): %s", e.category.value, e.message)
                raise
            attempt += 1
            logger.info("Camera start failed (%s), retrying", e.category.value)
