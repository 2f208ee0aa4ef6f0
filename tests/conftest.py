from __future__ import annotations

import numpy as np
import pytest

from app.backend.config import Settings, StabilityConfig

# BGR for RGB (180, 120, 90): inside the lighter skin band
SKIN_BGR = (90, 120, 180)


def blank_frame(h: int = 480, w: int = 640, value: int = 20) -> np.ndarray:
    return np.full((h, w, 3), value, dtype=np.uint8)


def striped_frame(
    y0: int = 240,
    y1: int = 480,
    x0: int = 0,
    x1: int = 640,
    h: int = 480,
    w: int = 640,
    period: int = 18,
) -> np.ndarray:
    """Dark frame with horizontal skin stripes in a box: skin plus strong vertical edges, like fingers."""
    frame = blank_frame(h, w)
    for y in range(y0, y1):
        if (y - y0) % period < period // 2:
            frame[y, x0:x1] = SKIN_BGR
    return frame


@pytest.fixture
def hand_frame() -> np.ndarray:
    return striped_frame()


@pytest.fixture
def fast_settings(tmp_path) -> Settings:
    return Settings(
        database_url="sqlite://",
        media_dir=str(tmp_path / "media"),
        public_base_url="http://testserver",
        stability=StabilityConfig(check_interval_ms=0),
    )
