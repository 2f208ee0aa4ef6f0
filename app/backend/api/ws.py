from fastapi import APIRouter, WebSocket, WebSocketDisconnect
import asyncio
import json
import time
import logging
import concurrent.futures

from app.backend.capture.analyzer import FramePixelAnalyzer
from app.backend.capture.codec import decode_image
from app.backend.capture.cropper import CaptureCropper
from app.backend.capture.pipeline import capture_with_hand_detection
from app.backend.capture.stability import HandStabilityDetector

router = APIRouter()

PING_INTERVAL_S = 10.0

logger = logging.getLogger("capture_ws")


@router.websocket("/ws/capture")
async def capture_ws(ws: WebSocket):
    await ws.accept()

    settings = ws.app.state.settings
    gateway = ws.app.state.gateway
    debug_ws = settings.ws_debug

    alive = True
    target = {"letter": "", "question": ""}

    # one slot => always the latest frame, never a backlog
    q: asyncio.Queue[str] = asyncio.Queue(maxsize=1)

    analyzer = FramePixelAnalyzer(settings.analyzer)
    cropper = CaptureCropper(settings.crop)
    fired = asyncio.Event()
    detector = HandStabilityDetector(analyzer, settings.stability, on_detected=fired.set)

    frames_in = 0
    frames_dropped = 0
    decode_ok = 0
    decode_err = 0
    analyzed = 0
    last_debug = 0.0

    async def send(payload: dict):
        nonlocal alive
        try:
            await ws.send_json(payload)
        except (WebSocketDisconnect, RuntimeError):
            alive = False

    async def receiver():
        nonlocal alive, frames_in, frames_dropped
        try:
            while alive:
                message = await ws.receive()
                if message["type"] == "websocket.disconnect":
                    break
                text = message.get("text")
                if text is None:
                    logger.debug("Ignoring binary message")
                    continue
                try:
                    msg = json.loads(text)
                except ValueError:
                    logger.debug("Ignoring non-JSON message")
                    continue
                if not isinstance(msg, dict):
                    continue
                kind = msg.get("type")

                if kind == "config":
                    target["letter"] = str(msg.get("expectedLetter") or "")
                    target["question"] = str(msg.get("questionText") or "")
                elif kind == "reset":
                    detector.reset()
                    fired.clear()
                    await send({"type": "status", **detector.status().to_dict()})
                elif kind == "frame" and isinstance(msg.get("data"), str):
                    frames_in += 1
                    if q.full():
                        frames_dropped += 1
                        q.get_nowait()
                    q.put_nowait(msg["data"])
        except WebSocketDisconnect:
            pass
        finally:
            alive = False

    async def pinger():
        last_ping = time.monotonic()
        while alive:
            now = time.monotonic()
            if (now - last_ping) > PING_INTERVAL_S:
                last_ping = now
                await send({"type": "ping"})
            await asyncio.sleep(0.25)

    # analysis runs on one worker thread, off the event loop
    loop = asyncio.get_running_loop()
    executor = concurrent.futures.ThreadPoolExecutor(max_workers=1)
    recv_task = asyncio.create_task(receiver())
    ping_task = asyncio.create_task(pinger())

    try:
        last_analysis = 0.0
        interval_s = max(0.0, settings.stability.check_interval_ms / 1000.0)

        while alive:
            try:
                data_url = await asyncio.wait_for(q.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue

            now = time.monotonic()
            if interval_s > 0 and (now - last_analysis) < interval_s:
                continue
            last_analysis = now

            try:
                frame = decode_image(data_url)
                decode_ok += 1
            except ValueError:
                decode_err += 1
                continue

            analysis = await loop.run_in_executor(executor, analyzer.analyze, frame)
            analyzed += 1
            status = detector.observe(analysis)
            await send({"type": "status", **status.to_dict()})

            if fired.is_set():
                fired.clear()
                artifact = await loop.run_in_executor(
                    executor, capture_with_hand_detection, frame, analyzer, cropper, settings.crop.jpeg_quality
                )
                await send({"type": "captured", "image": artifact.image, "handDetected": artifact.hand_detected})

                if target["letter"]:
                    verdict = await loop.run_in_executor(
                        None, gateway.evaluate, artifact.image, target["letter"], target["question"]
                    )
                    await send({"type": "verdict", **verdict.to_dict(), "fallback": verdict.fallback})

            if debug_ws and (now - last_debug) > 1.0:
                last_debug = now
                logger.info(
                    f"frames_in={frames_in} dropped={frames_dropped} "
                    f"decode_ok={decode_ok} decode_err={decode_err} "
                    f"analyzed={analyzed} stable={status.stable_frames} conf={status.confidence}"
                )

    except WebSocketDisconnect:
        pass
    finally:
        alive = False
        recv_task.cancel()
        ping_task.cancel()
        await asyncio.gather(recv_task, ping_task, return_exceptions=True)
        executor.shutdown(wait=False)
