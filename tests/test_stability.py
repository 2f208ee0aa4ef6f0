from __future__ import annotations

import asyncio

from app.backend.capture.analyzer import FrameAnalysis
from app.backend.capture.stability import (
    CancellationToken,
    DetectionPhase,
    HandStabilityDetector,
)
from app.backend.config import StabilityConfig

from conftest import blank_frame, striped_frame

HAND = FrameAnalysis(present=True, confidence=80)
WEAK = FrameAnalysis(present=True, confidence=20)
NONE = FrameAnalysis(present=False, confidence=0)


def _detector(**kwargs):
    events = {"detected": 0, "lost": 0}

    def detected():
        events["detected"] += 1

    def lost():
        events["lost"] += 1

    detector = HandStabilityDetector(
        config=StabilityConfig(**kwargs), on_detected=detected, on_lost=lost
    )
    return detector, events


def test_triggers_after_required_frames() -> None:
    detector, events = _detector()
    for _ in range(5):
        detector.observe(HAND)
    assert events["detected"] == 0
    status = detector.observe(HAND)
    assert events["detected"] == 1
    assert status.triggered
    assert status.phase == DetectionPhase.STABLE


def test_trigger_fires_once_until_reset() -> None:
    detector, events = _detector()
    for _ in range(12):
        detector.observe(HAND)
    assert events["detected"] == 1

    detector.reset()
    for _ in range(6):
        detector.observe(HAND)
    assert events["detected"] == 2


def test_single_failing_poll_resets_progress() -> None:
    detector, events = _detector()
    for _ in range(5):
        detector.observe(HAND)
    status = detector.observe(WEAK)
    assert status.stable_frames == 0
    assert status.phase == DetectionPhase.LOST
    assert events["lost"] == 1

    for _ in range(5):
        detector.observe(HAND)
    assert events["detected"] == 0
    detector.observe(HAND)
    assert events["detected"] == 1


def test_lost_only_fires_on_transition() -> None:
    detector, events = _detector()
    for _ in range(4):
        detector.observe(NONE)
    assert events["lost"] == 0

    detector.observe(HAND)
    detector.observe(NONE)
    detector.observe(NONE)
    assert events["lost"] == 1


def test_confidence_threshold_is_inclusive() -> None:
    detector, events = _detector(required_stable_frames=1, min_consecutive=1, confidence_threshold=35)
    detector.observe(FrameAnalysis(present=True, confidence=35))
    assert events["detected"] == 1


def test_absent_frame_with_high_confidence_does_not_count() -> None:
    detector, _ = _detector()
    status = detector.observe(FrameAnalysis(present=False, confidence=90))
    assert status.stable_frames == 0


def test_status_serialises_camel_case() -> None:
    detector, _ = _detector()
    d = detector.observe(HAND).to_dict()
    assert d == {"stableFrames": 1, "confidence": 80, "detecting": True, "phase": "detecting", "triggered": False}


def test_cancellation_token_runs_callbacks_once() -> None:
    token = CancellationToken()
    calls = []
    token.add_callback(lambda: calls.append(1))
    token.cancel()
    token.cancel()
    token.add_callback(lambda: calls.append(2))
    assert calls == [1, 2]
    assert token.cancelled


def test_polling_loop_triggers_and_disposer_is_idempotent() -> None:
    frame = striped_frame()

    async def scenario():
        fired = asyncio.Event()
        detector = HandStabilityDetector(config=StabilityConfig(check_interval_ms=1), on_detected=fired.set)
        updates = detector.subscribe()

        async def read_frame():
            return frame

        handle = detector.start(read_frame)
        await asyncio.wait_for(fired.wait(), timeout=10)
        handle.cancel()
        handle()
        await handle.wait()
        return detector, updates, handle

    detector, updates, handle = asyncio.run(scenario())
    assert detector.state.triggered
    assert not detector.state.detecting
    assert handle.token.cancelled
    assert updates.qsize() == 1


def test_polling_loop_survives_read_errors() -> None:
    calls = {"n": 0}

    async def scenario():
        detector = HandStabilityDetector(config=StabilityConfig(check_interval_ms=1))

        async def read_frame():
            calls["n"] += 1
            if calls["n"] == 1:
                raise RuntimeError("camera hiccup")
            return blank_frame()

        handle = detector.start(read_frame)
        while calls["n"] < 3:
            await asyncio.sleep(0.01)
        handle.cancel()
        await handle.wait()
        return detector

    detector = asyncio.run(scenario())
    assert calls["n"] >= 3
    assert detector.state.stable_frames == 0
