import hashlib
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import requests

from app.backend.capture.codec import decode_data_url

logger = logging.getLogger(__name__)

CLOUDINARY_UPLOAD_URL = "https://api.cloudinary.com/v1_1/{cloud}/{resource}/upload"
FOLDER = "sign-language-exams"

_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "video/webm": ".webm",
    "video/mp4": ".mp4",
}


class UploadError(Exception):
    pass


@dataclass(frozen=True)
class UploadResult:
    url: str
    public_id: str
    provider: str
    fallback: bool = False


def artifact_name(set_id: int, question_id: int, user_id: Optional[str] = None) -> str:
    return f"set_{set_id}/question_{question_id}_{user_id or 'anonymous'}_{int(time.time() * 1000)}"


class UploadStore(ABC):
    provider = "abstract"

    @abstractmethod
    def save(self, data_url: str, name: str, resource: str = "image") -> UploadResult:
        ...

    def save_image(self, data_url: str, set_id: int, question_id: int, user_id: Optional[str] = None) -> UploadResult:
        return self.save(data_url, artifact_name(set_id, question_id, user_id), "image")

    def save_video(self, data_url: str, set_id: int, question_id: int, user_id: Optional[str] = None) -> UploadResult:
        return self.save(data_url, artifact_name(set_id, question_id, user_id), "video")


class LocalUploadStore(UploadStore):
    """Writes artifacts under ``media_dir`` and serves them from ``{base_url}/media``."""

    provider = "local"

    def __init__(self, media_dir, base_url: str):
        self.media_dir = Path(media_dir)
        self.base_url = base_url.rstrip("/")

    def save(self, data_url: str, name: str, resource: str = "image") -> UploadResult:
        try:
            mime, payload = decode_data_url(data_url)
        except ValueError as e:
            raise UploadError(str(e)) from e
        if not payload:
            raise UploadError("empty upload")

        rel = Path(FOLDER) / f"{name}{_EXTENSIONS.get(mime, '.bin')}"
        path = self.media_dir / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(payload)
        logger.info("Stored %s upload at %s (%d bytes)", resource, path, len(payload))
        return UploadResult(f"{self.base_url}/media/{rel.as_posix()}", rel.as_posix(), self.provider)


class CloudinaryUploadStore(UploadStore):
    provider = "cloudinary"

    def __init__(self, cloud_name: str, api_key: str, api_secret: str,
                 timeout_s: float = 60.0, http: Optional[requests.Session] = None):
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.timeout_s = timeout_s
        self.http = http or requests.Session()

    def sign(self, params: dict) -> str:
        to_sign = "&".join(f"{k}={params[k]}" for k in sorted(params))
        return hashlib.sha1((to_sign + self.api_secret).encode("utf-8")).hexdigest()

    def save(self, data_url: str, name: str, resource: str = "image") -> UploadResult:
        params = {"folder": FOLDER, "overwrite": "true", "public_id": name, "timestamp": str(int(time.time()))}
        form = dict(params, api_key=self.api_key, signature=self.sign(params), file=data_url)
        try:
            resp = self.http.post(
                CLOUDINARY_UPLOAD_URL.format(cloud=self.cloud_name, resource=resource),
                data=form,
                timeout=self.timeout_s,
            )
        except requests.RequestException as e:
            raise UploadError(f"Cloudinary request failed: {e}") from e
        if not resp.ok:
            raise UploadError(f"Cloudinary HTTP {resp.status_code}: {(resp.text or '')[:200]}")
        try:
            body = resp.json()
            return UploadResult(body["secure_url"], body["public_id"], self.provider)
        except (ValueError, KeyError) as e:
            raise UploadError("Malformed Cloudinary response") from e


def upload_best_effort(store: Optional[UploadStore], data_url: str, set_id: int, question_id: int,
                       user_id: Optional[str] = None, resource: str = "image") -> Optional[str]:
    """Persist an artifact; on failure log and return None so the local copy is still used."""
    if store is None or not data_url:
        return None
    try:
        if resource == "video":
            return store.save_video(data_url, set_id, question_id, user_id).url
        return store.save_image(data_url, set_id, question_id, user_id).url
    except (UploadError, OSError) as e:
        logger.warning("Upload of %s for set %s question %s failed: %s", resource, set_id, question_id, e)
        return None
