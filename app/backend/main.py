import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

from app.backend.capture.camera import CameraError
from app.backend.capture.codec import decode_data_url
from app.backend.capture.pipeline import CaptureFlow
from app.backend.config import load_settings
from app.backend.evaluation.gateway import EvaluationGateway
from app.backend.evaluation.vision import GeminiVisionClient
from app.backend.uploads import CloudinaryUploadStore, LocalUploadStore

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Capture one ISL alphabet sign from a local camera and evaluate it.")
    p.add_argument("--letter", required=True, help="expected ISL letter (A-Z)")
    p.add_argument("--question", default="", help="question text passed to the evaluator")
    p.add_argument("--device", default=None, help="camera index or path, overrides --facing")
    p.add_argument("--facing", default=None, choices=["user", "environment"])
    p.add_argument("--timeout", type=float, default=20.0, help="seconds to wait for a steady hand")
    p.add_argument("--out", default=None, help="write the cropped still to this file")
    p.add_argument("--config", default=None, help="YAML thresholds file")
    p.add_argument("--upload", action="store_true", help="also persist the still via the upload store")
    return p


async def run(args) -> int:
    settings = load_settings(args.config)
    camera = settings.camera
    if args.device is not None:
        camera = replace(camera, device_id=args.device)
    if args.facing:
        camera = replace(camera, facing_mode=args.facing)
    settings = replace(settings, camera=camera)

    ev = settings.evaluation
    vision = None
    if settings.gemini_api_key:
        vision = GeminiVisionClient(settings.gemini_api_key, ev.models, ev.request_timeout_s, ev.rate_limit_backoff_s)

    uploads = None
    if args.upload:
        if settings.cloudinary_configured:
            uploads = CloudinaryUploadStore(
                settings.cloudinary_cloud_name, settings.cloudinary_api_key, settings.cloudinary_api_secret
            )
        else:
            uploads = LocalUploadStore(settings.media_dir, settings.public_base_url)

    flow = CaptureFlow(settings, EvaluationGateway(vision, ev), uploads)
    try:
        result = await flow.attempt(args.letter.strip().upper(), args.question, timeout_s=args.timeout)
    except CameraError as e:
        logger.error("Camera unavailable: %s", e)
        print(json.dumps({"error": e.to_dict()}, indent=2))
        return 2

    if args.out and result.artifact:
        _, data = decode_data_url(result.artifact.image)
        Path(args.out).write_bytes(data)
        logger.info("Saved capture to %s", args.out)

    print(json.dumps({
        "verdict": result.verdict.to_dict(),
        "fallback": result.verdict.fallback,
        "timedOut": result.timed_out,
        "handDetected": bool(result.artifact and result.artifact.hand_detected),
        "uploadUrl": result.artifact.upload_url if result.artifact else None,
    }, indent=2))
    return 0


def main(argv=None) -> int:
    logging.basicConfig(level=logging.INFO)
    args = build_parser().parse_args(argv)
    return asyncio.run(run(args))


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("Exit")
