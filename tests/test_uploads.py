from __future__ import annotations

import hashlib

import pytest
import requests

from app.backend.uploads import (
    CloudinaryUploadStore,
    LocalUploadStore,
    UploadError,
    upload_best_effort,
)

PNG_URL = "data:image/png;base64,iVBORw0KGgo="


class FakeResponse:
    def __init__(self, status_code=200, body=None, text=""):
        self.status_code = status_code
        self._body = body
        self.text = text

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


class FakeHttp:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error:
            raise self.error
        return self.response


def test_local_store_writes_under_media_dir(tmp_path) -> None:
    store = LocalUploadStore(tmp_path, "http://host/")
    result = store.save_image(PNG_URL, 2, 7, "u9")
    assert result.provider == "local"
    assert result.public_id.startswith("sign-language-exams/set_2/question_7_u9_")
    assert result.public_id.endswith(".png")
    assert result.url == f"http://host/media/{result.public_id}"
    assert (tmp_path / result.public_id).read_bytes().startswith(b"\x89PNG")


def test_local_store_rejects_empty_payload(tmp_path) -> None:
    with pytest.raises(UploadError):
        LocalUploadStore(tmp_path, "http://host").save("data:image/png;base64,", "x")


def test_cloudinary_signs_request() -> None:
    http = FakeHttp(FakeResponse(body={"secure_url": "https://res/x.jpg", "public_id": "sign-language-exams/x"}))
    store = CloudinaryUploadStore("demo", "key", "secret", http=http)
    result = store.save_video("data:video/webm;base64,AAAA", 1, 1)

    url, kwargs = http.calls[0]
    assert url == "https://api.cloudinary.com/v1_1/demo/video/upload"
    form = kwargs["data"]
    signed = "&".join(f"{k}={form[k]}" for k in ("folder", "overwrite", "public_id", "timestamp"))
    assert form["signature"] == hashlib.sha1((signed + "secret").encode()).hexdigest()
    assert form["api_key"] == "key"
    assert result.url == "https://res/x.jpg"


def test_cloudinary_errors_become_upload_errors() -> None:
    for http in (
        FakeHttp(error=requests.ConnectionError("offline")),
        FakeHttp(FakeResponse(401, text="bad signature")),
        FakeHttp(FakeResponse(200, body={"unexpected": True})),
    ):
        with pytest.raises(UploadError):
            CloudinaryUploadStore("demo", "key", "secret", http=http).save(PNG_URL, "n")


def test_best_effort_swallows_failures_into_none(tmp_path) -> None:
    failing = CloudinaryUploadStore("demo", "key", "secret", http=FakeHttp(error=requests.Timeout("slow")))
    assert upload_best_effort(failing, PNG_URL, 1, 1) is None
    assert upload_best_effort(None, PNG_URL, 1, 1) is None
    assert upload_best_effort(LocalUploadStore(tmp_path, "http://h"), PNG_URL, 1, 1).startswith("http://h/media/")
