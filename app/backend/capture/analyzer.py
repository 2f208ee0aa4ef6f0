from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from app.backend.config import AnalyzerConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Region:
    x: int
    y: int
    size: int
    score: float
    skin: int
    edges: int
    fingers: int
    total: int


@dataclass(frozen=True)
class HandBounds:
    x: float
    y: float
    width: float
    height: float
    confidence: float  # 0..1


@dataclass(frozen=True)
class FrameAnalysis:
    present: bool
    confidence: int  # 0..100
    skin_pixels: int = 0
    edge_pixels: int = 0
    finger_patterns: int = 0
    total_pixels: int = 0
    best_region: Optional[Region] = None
    regions: List[Region] = field(default_factory=list, repr=False)
    criteria: dict = field(default_factory=dict)

    @property
    def raw_counts(self) -> dict:
        return {
            "skinPixels": self.skin_pixels,
            "edgePixels": self.edge_pixels,
            "fingerPatterns": self.finger_patterns,
            "totalPixels": self.total_pixels,
        }


def skin_mask(r: np.ndarray, g: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Two disjoint-ish bands: typical (lighter) hand skin and darker skin."""
    r = r.astype(np.int32)
    g = g.astype(np.int32)
    b = b.astype(np.int32)
    brightness = (r + g + b) / 3.0

    lighter = (
        (r > 80) & (r < 220) & (g > 50) & (g < 180) & (b > 30) & (b < 140)
        & (r > g) & (r > b) & ((r - g) > 10) & ((r - b) > 20)
        & (brightness > 90) & (brightness < 190)
    )
    darker = (
        (r > 60) & (r < 150) & (g > 45) & (g < 120) & (b > 25) & (b < 90)
        & (r > g) & (r > b) & (np.abs(r - g) < 40)
        & (brightness > 70) & (brightness < 130)
    )
    return lighter | darker


class FramePixelAnalyzer:
    """
    Heuristic hand-presence scorer for a single BGR frame.

    The frame below the face-exclusion line is scanned in half-overlapping
    square tiles. Inside a tile every ``step``-th pixel is classified as skin,
    and its red channel is compared with the pixel ``step`` below and ``step``
    to the right: a strong vertical change that beats the horizontal one is
    counted as a finger pattern. Presence needs ``criteria_required`` of five
    criteria, so a face alone rarely passes.
    """

    def __init__(self, config: Optional[AnalyzerConfig] = None):
        self.config = config or AnalyzerConfig()

    def _scan_region(self, rgb, x0: int, y0: int) -> Region:
        cfg = self.config
        size, step = cfg.region_size, cfg.step
        h, w = rgb.shape[:2]

        ys = np.arange(y0, min(y0 + size, h), step)
        xs = np.arange(x0, min(x0 + size, w), step)
        sample = rgb[np.ix_(ys, xs)]
        red = sample[..., 0].astype(np.int32)

        skin = int(skin_mask(red, sample[..., 1], sample[..., 2]).sum())
        total = int(ys.size * xs.size)

        # neighbours must exist inside the frame; first row/column of the tile has no "previous"
        ey = ys[(ys > y0 + step) & (ys + step < h)]
        ex = xs[(xs > x0 + step) & (xs + step < w)]
        edges = fingers = 0
        if ey.size and ex.size:
            r = rgb[..., 0].astype(np.int32)
            centre = r[np.ix_(ey, ex)]
            vertical = np.abs(centre - r[np.ix_(ey + step, ex)])
            horizontal = np.abs(centre - r[np.ix_(ey, ex + step)])
            fingers = int(((vertical > horizontal) & (vertical > cfg.finger_edge_threshold)).sum())
            edges = int(((vertical > cfg.edge_threshold) | (horizontal > cfg.edge_threshold)).sum())

        score = 0.0
        if total:
            score = (skin / total) * 200 + (edges / total) * 150 + (fingers / total) * 400
        return Region(x0, y0, size, score, skin, edges, fingers, total)

    def analyze(self, frame: np.ndarray) -> FrameAnalysis:
        if frame is None or frame.ndim != 3 or frame.shape[2] < 3:
            return FrameAnalysis(present=False, confidence=0)

        cfg = self.config
        rgb = frame[..., 2::-1]  # BGR -> RGB view
        h, w = rgb.shape[:2]
        size, half = cfg.region_size, max(1, cfg.region_size // 2)
        face_zone = int(h * cfg.face_exclusion)

        regions: List[Region] = []
        best: Optional[Region] = None
        for y0 in range(face_zone, h - size, half):
            for x0 in range(0, w - size, half):
                region = self._scan_region(rgb, x0, y0)
                regions.append(region)
                if region.score > (best.score if best else 0.0):
                    best = region

        total = sum(r.total for r in regions)
        if not total:
            return FrameAnalysis(present=False, confidence=0, regions=regions)

        skin = sum(r.skin for r in regions)
        edges = sum(r.edges for r in regions)
        fingers = sum(r.fingers for r in regions)
        skin_ratio, edge_ratio, finger_ratio = skin / total, edges / total, fingers / total
        best_score = best.score if best else 0.0

        criteria = {
            "skin": skin_ratio > cfg.min_skin_ratio,
            "edges": edge_ratio > cfg.min_edge_ratio,
            "fingers": finger_ratio > cfg.min_finger_ratio,
            "region": best_score > cfg.min_region_score,
            "hand_zone": best is not None and best.y > h * cfg.face_exclusion,
        }
        present = sum(criteria.values()) >= cfg.criteria_required

        region_bonus = 15 if best_score > 30 else 0
        confidence = min(
            min(skin_ratio * 600, 25)
            + min(edge_ratio * 800, 20)
            + min(finger_ratio * 1500, 30)
            + min(best_score * 0.8, 25)
            + region_bonus,
            100,
        )

        logger.debug(
            "hand scan skin=%.4f edge=%.4f finger=%.4f best=%.1f present=%s conf=%.1f",
            skin_ratio, edge_ratio, finger_ratio, best_score, present, confidence,
        )

        return FrameAnalysis(
            present=present,
            confidence=int(round(confidence)),
            skin_pixels=skin,
            edge_pixels=edges,
            finger_patterns=fingers,
            total_pixels=total,
            best_region=best,
            regions=regions,
            criteria=criteria,
        )

    def hand_bounds(self, frame: np.ndarray, analysis: Optional[FrameAnalysis] = None,
                    min_confidence: int = 40) -> HandBounds:
        """
        Bounds of the likely hand: union of tiles scoring at least half the best
        tile. Without a confident detection the lower 75% of the frame is
        returned, which the cropper treats as "too broad" and center-crops.
        """
        h, w = frame.shape[:2]
        analysis = analysis or self.analyze(frame)

        best = analysis.best_region
        if analysis.present and analysis.confidence > min_confidence and best is not None:
            strong = [
                r for r in analysis.regions
                if r.score >= best.score * 0.5 and r.score > self.config.min_region_score
            ] or [best]
            x0 = min(r.x for r in strong)
            y0 = min(r.y for r in strong)
            x1 = min(w, max(r.x + r.size for r in strong))
            y1 = min(h, max(r.y + r.size for r in strong))
            return HandBounds(x0, y0, x1 - x0, y1 - y0, analysis.confidence / 100.0)

        return HandBounds(0, h * 0.25, w, h * 0.75, 0.3)
