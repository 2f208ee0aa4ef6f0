from __future__ import annotations

import base64

import cv2
from fastapi.testclient import TestClient

from app.backend.api.app import create_app
from app.backend.evaluation.policy import RawJudgment

from conftest import blank_frame, striped_frame


def _data_url(frame) -> str:
    ok, buf = cv2.imencode(".jpg", frame)
    assert ok
    return "data:image/jpeg;base64," + base64.b64encode(buf.tobytes()).decode("ascii")


def _receive(ws) -> dict:
    while True:
        msg = ws.receive_json()
        if msg.get("type") != "ping":
            return msg


class StubVision:
    configured = True

    def judge(self, image, expected_letter, question_text=""):
        assert image.startswith("data:image/jpeg;base64,")
        return RawJudgment(True, 88, expected_letter, "clear handshape", "well done")


def test_capture_stream_triggers_capture_and_verdict(fast_settings) -> None:
    app = create_app(fast_settings)
    app.state.gateway.client = StubVision()
    hand = _data_url(striped_frame())

    with TestClient(app) as client, client.websocket_connect("/ws/capture") as ws:
        ws.send_json({"type": "config", "expectedLetter": "Y", "questionText": "Show Y"})

        statuses = []
        for _ in range(6):
            ws.send_json({"type": "frame", "data": hand})
            statuses.append(_receive(ws))

        assert [s["stableFrames"] for s in statuses] == [1, 2, 3, 4, 5, 6]
        assert statuses[-1]["triggered"] is True

        captured = _receive(ws)
        assert captured["type"] == "captured"
        assert captured["image"].startswith("data:image/jpeg;base64,")

        verdict = _receive(ws)
        assert verdict["type"] == "verdict"
        assert verdict["isCorrect"] is True
        assert verdict["detectedLetter"] == "Y"
        assert verdict["fallback"] is False


def test_lost_hand_resets_and_reset_rearms(fast_settings) -> None:
    hand = _data_url(striped_frame())
    empty = _data_url(blank_frame())

    with TestClient(create_app(fast_settings)) as client, client.websocket_connect("/ws/capture") as ws:
        for _ in range(3):
            ws.send_json({"type": "frame", "data": hand})
            _receive(ws)
        ws.send_json({"type": "frame", "data": empty})
        lost = _receive(ws)
        assert lost["stableFrames"] == 0
        assert lost["phase"] == "lost"

        ws.send_json({"type": "frame", "data": "data:image/jpeg;base64,bm90IGFuIGltYWdl"})
        ws.send_json({"type": "reset"})
        reset = _receive(ws)
        assert reset == {
            "type": "status", "stableFrames": 0, "confidence": 0,
            "detecting": True, "phase": "detecting", "triggered": False,
        }


def test_binary_and_garbage_messages_are_skipped(fast_settings) -> None:
    with TestClient(create_app(fast_settings)) as client, client.websocket_connect("/ws/capture") as ws:
        ws.send_bytes(b"\x00\x01")
        ws.send_text("not json")
        ws.send_json(["not", "an", "object"])
        ws.send_json({"type": "reset"})
        reset = _receive(ws)
        assert reset["type"] == "status"
        assert reset["stableFrames"] == 0

        ws.send_json({"type": "frame", "data": _data_url(striped_frame())})
        status = _receive(ws)
        assert status["type"] == "status"
        assert status["stableFrames"] == 1
