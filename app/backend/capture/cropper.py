from dataclasses import dataclass
from typing import Optional

import numpy as np

from app.backend.capture.analyzer import HandBounds
from app.backend.config import CropConfig


@dataclass(frozen=True)
class CropBox:
    x: int
    y: int
    size: int


class CaptureCropper:
    def __init__(self, config: Optional[CropConfig] = None):
        self.config = config or CropConfig()

    def center_box(self, frame_w: int, frame_h: int, fraction: float) -> CropBox:
        size = max(1, int(min(frame_w, frame_h) * fraction))
        return CropBox((frame_w - size) // 2, (frame_h - size) // 2, size)

    def crop_box(self, frame_w: int, frame_h: int, bounds: HandBounds) -> CropBox:
        if frame_w <= 0 or frame_h <= 0:
            raise ValueError("empty frame")

        cfg = self.config
        # near-full-frame bounds are a fallback region, not a hand: ignore their position
        if bounds.width >= frame_w * cfg.broad_fraction or bounds.height >= frame_h * cfg.broad_fraction:
            return self.center_box(frame_w, frame_h, cfg.center_fraction)

        pad = cfg.padding
        x = max(0.0, bounds.x - pad)
        y = max(0.0, bounds.y - pad)
        w = min(frame_w - x, bounds.width + pad * 2)
        h = min(frame_h - y, bounds.height + pad * 2)

        size = min(max(w, h), frame_w, frame_h)
        x = x - (size - w) / 2
        y = y - (size - h) / 2

        x = min(max(0.0, x), frame_w - size)
        y = min(max(0.0, y), frame_h - size)

        size = max(1, int(size))
        return CropBox(int(round(min(x, frame_w - size))), int(round(min(y, frame_h - size))), size)

    def crop(self, frame: np.ndarray, bounds: Optional[HandBounds]) -> np.ndarray:
        h, w = frame.shape[:2]
        if bounds is None:
            box = self.center_box(w, h, self.config.fallback_fraction)
        else:
            box = self.crop_box(w, h, bounds)
        return frame[box.y:box.y + box.size, box.x:box.x + box.size].copy()
