from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional

import numpy as np

from app.backend.capture.analyzer import FrameAnalysis, FramePixelAnalyzer
from app.backend.config import StabilityConfig

logger = logging.getLogger(__name__)


class DetectionPhase(str, Enum):
    IDLE = "idle"
    DETECTING = "detecting"
    STABLE = "stable"
    LOST = "lost"


@dataclass
class DetectionState:
    stable_frames: int = 0
    consecutive: int = 0
    confidence: int = 0
    last_detection_time: float = 0.0
    detecting: bool = True
    phase: DetectionPhase = DetectionPhase.DETECTING
    triggered: bool = False


@dataclass(frozen=True)
class DetectionStatus:
    stable_frames: int
    confidence: int
    detecting: bool
    phase: DetectionPhase
    triggered: bool

    def to_dict(self) -> dict:
        return {
            "stableFrames": self.stable_frames,
            "confidence": self.confidence,
            "detecting": self.detecting,
            "phase": self.phase.value,
            "triggered": self.triggered,
        }


class CancellationToken:
    def __init__(self):
        self._cancelled = False
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def add_callback(self, cb: Callable[[], None]) -> None:
        if self._cancelled:
            cb()
        else:
            self._callbacks.append(cb)

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for cb in callbacks:
            cb()


class HandStabilityDetector:
    """
    Aggregates per-frame analyses into a "hand is held still" trigger.

    observe() is the whole state machine and is usable without any event
    loop; start() drives it from an async frame source on a fixed interval.
    on_detected fires at most once until reset(); on_lost fires only when a
    tracked hand drops out, not on every weak poll.
    """

    def __init__(
        self,
        analyzer: Optional[FramePixelAnalyzer] = None,
        config: Optional[StabilityConfig] = None,
        on_detected: Optional[Callable[[], None]] = None,
        on_lost: Optional[Callable[[], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.analyzer = analyzer or FramePixelAnalyzer()
        self.config = config or StabilityConfig()
        self.on_detected = on_detected
        self.on_lost = on_lost
        self._clock = clock
        self.state = DetectionState()
        self._subscribers: List[asyncio.Queue] = []

    # --- status stream ---

    def subscribe(self, maxsize: int = 1) -> asyncio.Queue:
        # maxsize=1 keeps only the latest status for slow consumers
        q: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._subscribers.append(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        if q in self._subscribers:
            self._subscribers.remove(q)

    def _publish(self, status: DetectionStatus) -> None:
        for q in list(self._subscribers):
            if q.full():
                try:
                    q.get_nowait()
                except asyncio.QueueEmpty:
                    pass
            q.put_nowait(status)

    def status(self) -> DetectionStatus:
        s = self.state
        return DetectionStatus(s.stable_frames, s.confidence, s.detecting, s.phase, s.triggered)

    # --- state machine ---

    def reset(self) -> None:
        self.state = DetectionState()

    def observe(self, analysis: FrameAnalysis) -> DetectionStatus:
        s = self.state
        if not s.detecting:
            return self.status()

        cfg = self.config
        fire = lost = False
        if analysis.present and analysis.confidence >= cfg.confidence_threshold:
            s.stable_frames += 1
            s.consecutive += 1
            s.confidence = analysis.confidence
            s.last_detection_time = self._clock()
            if s.phase in (DetectionPhase.LOST, DetectionPhase.IDLE):
                s.phase = DetectionPhase.DETECTING

            fire = (
                not s.triggered
                and s.stable_frames >= cfg.required_stable_frames
                and s.consecutive >= cfg.min_consecutive
            )
            if fire:
                s.triggered = True
                s.phase = DetectionPhase.STABLE
                logger.info("Hand stable for %d frames (confidence %d%%)", s.stable_frames, s.confidence)
        else:
            was_tracking = s.stable_frames > 0
            s.stable_frames = 0
            s.consecutive = 0
            s.confidence = analysis.confidence
            lost = was_tracking and s.phase != DetectionPhase.LOST
            if lost:
                s.phase = DetectionPhase.LOST
                logger.debug("Hand lost (confidence %d%%), counters reset", analysis.confidence)

        status = self.status()
        self._publish(status)

        if fire and self.on_detected:
            self.on_detected()
        if lost and self.on_lost:
            self.on_lost()
        return status

    def observe_frame(self, frame: np.ndarray) -> DetectionStatus:
        return self.observe(self.analyzer.analyze(frame))

    # --- polling loop ---

    def start(
        self,
        read_frame: Callable[[], Awaitable[Optional[np.ndarray]]],
        token: Optional[CancellationToken] = None,
        executor=None,
    ) -> "PollingHandle":
        token = token or CancellationToken()
        task = asyncio.get_running_loop().create_task(self._run(read_frame, token, executor))
        return PollingHandle(self, token, task)

    async def _run(self, read_frame, token: CancellationToken, executor) -> None:
        loop = asyncio.get_running_loop()
        interval = max(0.0, self.config.check_interval_ms / 1000.0)
        logger.info(
            "Starting hand detection: frames=%d threshold=%d interval=%dms",
            self.config.required_stable_frames,
            self.config.confidence_threshold,
            self.config.check_interval_ms,
        )
        while not token.cancelled and self.state.detecting:
            started = loop.time()
            try:
                frame = await read_frame()
                if frame is not None and not token.cancelled:
                    analysis = await loop.run_in_executor(executor, self.analyzer.analyze, frame)
                    if not token.cancelled:
                        self.observe(analysis)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Hand detection poll failed")

            await asyncio.sleep(max(0.0, interval - (loop.time() - started)))


class PollingHandle:
    """Disposer for a running poll loop; calling it more than once is harmless."""

    def __init__(self, detector: HandStabilityDetector, token: CancellationToken, task: asyncio.Task):
        self.detector = detector
        self.token = token
        self.task = task

    def cancel(self) -> None:
        if self.token.cancelled and self.task.done():
            return
        self.token.cancel()
        self.detector.state.detecting = False
        if not self.task.done():
            self.task.cancel()
            logger.info("Stopping hand detection")

    __call__ = cancel

    async def wait(self) -> None:
        try:
            await self.task
        except asyncio.CancelledError:
            pass
