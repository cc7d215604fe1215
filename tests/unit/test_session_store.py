"""Tests for session folder persistence."""

import asyncio
import base64
import json

import httpx
import pytest
from PIL import Image

from imagefusion.core.session_store import METADATA_FILENAME, RESULT_FILENAME, SessionStore
from imagefusion.core.errors import PersistenceError
from imagefusion.core.generators import ImageResult

RESULT_URL = "https://images.example/generated/result.png"


def _save(store: SessionStore, image1: str, image2: str, result: ImageResult, **overrides):
    kwargs = {
        "client_address": "203.0.113.7",
        "style_key": "toy",
        "image1": image1,
        "image2": image2,
        "result": result,
        "metadata": {"style": "toy", "prompt": "create an image based on: a, b."},
    }
    kwargs.update(overrides)
    return asyncio.run(store.save(**kwargs))


class TestSave:
    def test_writes_all_artifacts(self, session_store, image1, image2, png_bytes):
        saved = _save(session_store, image1, image2, ImageResult(data=png_bytes))

        assert saved.directory.is_dir()
        assert saved.directory.parent == session_store.uploads_dir
        assert saved.image1_path.name == "image1.png"
        assert saved.image2_path.name == "image2.jpg"
        assert saved.result_path.name == RESULT_FILENAME
        assert (saved.directory / METADATA_FILENAME).exists()

    def test_directory_name(self, session_store, image1, image2, png_bytes):
        saved = _save(session_store, image1, image2, ImageResult(data=png_bytes))

        timestamp, slug, short_id = saved.directory_name.split("_")
        assert len(timestamp) == len("20261018-140322")
        assert slug == "toy"
        assert short_id == saved.session_id[:8]

    def test_unsafe_style_key_is_sanitised(self, session_store, image1, image2, png_bytes):
        saved = _save(
            session_store, image1, image2, ImageResult(data=png_bytes), style_key="../etc"
        )
        assert saved.directory.parent == session_store.uploads_dir
        assert "_etc_" in saved.directory_name

    def test_source_images_stored_as_submitted(self, session_store, image1, image2):
        saved = _save(session_store, image1, image2, ImageResult(url=RESULT_URL))

        with Image.open(saved.image2_path) as image:
            assert image.format == "JPEG"

    def test_result_url_is_downloaded(self, session_store, image1, image2, download_requests):
        saved = _save(session_store, image1, image2, ImageResult(url=RESULT_URL))

        assert [str(r.url) for r in download_requests] == [RESULT_URL]
        with Image.open(saved.result_path) as image:
            assert image.format == "PNG"

    def test_result_is_reencoded_as_png(self, session_store, image1, image2):
        jpeg = base64.b64decode(image2.split(",", 1)[1])

        saved = _save(session_store, image1, image2, ImageResult(data=jpeg))

        with Image.open(saved.result_path) as image:
            assert image.format == "PNG"

    def test_remote_source_is_recorded_not_fetched(
        self, session_store, image2, png_bytes, download_requests
    ):
        saved = _save(
            session_store,
            "https://example.com/photos/cat.jpg",
            image2,
            ImageResult(data=png_bytes),
        )

        assert download_requests == []
        assert saved.image1_path is None
        assert not list(saved.directory.glob("image1.*"))
        assert saved.metadata["sources"] == {"image1": "https://example.com/photos/cat.jpg"}
        assert saved.metadata["files"] == {"image2": "image2.jpg", "result": "result.png"}

    def test_redirecting_source_url_is_never_followed(self, temp_dir, image2, png_bytes):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            if request.url.host == "attacker.example":
                return httpx.Response(
                    302, headers={"location": "http://169.254.169.254/latest/meta-data/iam/creds"}
                )
            return httpx.Response(200, content=b"AWS_SECRET_ACCESS_KEY=leaked")

        store = SessionStore(temp_dir / "uploads", transport=httpx.MockTransport(handler))
        saved = _save(store, "https://attacker.example/cat.png", image2, ImageResult(data=png_bytes))

        assert seen == []
        for path in saved.directory.iterdir():
            assert b"AWS_SECRET_ACCESS_KEY" not in path.read_bytes()

    def test_metadata_document(self, session_store, image1, image2, png_bytes):
        saved = _save(session_store, image1, image2, ImageResult(data=png_bytes))

        with open(saved.directory / METADATA_FILENAME, encoding="utf-8") as handle:
            metadata = json.load(handle)

        assert metadata == saved.metadata
        assert metadata["session_id"] == saved.session_id
        assert metadata["session_dir"] == saved.directory_name
        assert metadata["client_address"] == "203.0.113.7"
        assert metadata["prompt"] == "create an image based on: a, b."
        assert metadata["files"] == {
            "image1": "image1.png",
            "image2": "image2.jpg",
            "result": "result.png",
        }

    def test_sessions_never_share_a_directory(self, session_store, image1, image2, png_bytes):
        first = _save(session_store, image1, image2, ImageResult(data=png_bytes))
        second = _save(session_store, image1, image2, ImageResult(data=png_bytes))

        assert first.directory != second.directory
        assert first.session_id != second.session_id


class TestSaveFailures:
    """A failed save leaves no directory behind."""

    def _assert_empty(self, store: SessionStore):
        assert list(store.uploads_dir.iterdir()) == []

    def test_invalid_base64(self, session_store, image2, png_bytes):
        with pytest.raises(PersistenceError):
            _save(session_store, "data:image/png;base64,abc", image2, ImageResult(data=png_bytes))
        self._assert_empty(session_store)

    def test_result_download_404(self, session_store, image1, image2):
        result = ImageResult(url="https://images.example/generated/missing")

        with pytest.raises(PersistenceError):
            _save(session_store, image1, image2, result)
        self._assert_empty(session_store)

    def test_result_not_an_image(self, session_store, image1, image2):
        with pytest.raises(PersistenceError):
            _save(session_store, image1, image2, ImageResult(data=b"not an image"))
        self._assert_empty(session_store)

    def test_inline_source_not_an_image(self, session_store, image2, png_bytes):
        payload = "data:image/png;base64," + base64.b64encode(b"<html>hi</html>").decode("ascii")

        with pytest.raises(PersistenceError, match="not a readable image"):
            _save(session_store, payload, image2, ImageResult(data=png_bytes))
        self._assert_empty(session_store)


class TestReadAndDelete:
    def test_load_metadata(self, session_store, image1, image2, png_bytes):
        saved = _save(session_store, image1, image2, ImageResult(data=png_bytes))

        assert session_store.load_metadata(saved.directory_name) == saved.metadata

    def test_load_metadata_missing(self, session_store):
        assert session_store.load_metadata("20261018-140322_toy_deadbeef") is None

    def test_load_metadata_corrupt(self, session_store):
        directory = session_store.uploads_dir / "broken"
        directory.mkdir()
        (directory / METADATA_FILENAME).write_text("{oops", encoding="utf-8")

        assert session_store.load_metadata("broken") is None

    def test_delete(self, session_store, image1, image2, png_bytes):
        saved = _save(session_store, image1, image2, ImageResult(data=png_bytes))

        assert session_store.delete(saved.directory_name) is True
        assert not saved.directory.exists()
        assert session_store.delete(saved.directory_name) is False

    @pytest.mark.parametrize("name", ["", ".", "..", "../data", "a/b", "/etc"])
    def test_paths_outside_uploads_are_rejected(self, session_store, name):
        assert session_store.session_path(name) is None
        assert session_store.delete(name) is False

    def test_public_url(self):
        assert SessionStore.public_url("abc") == "/uploads/abc/result.png"
        assert SessionStore.public_url("abc", "image1.png") == "/uploads/abc/image1.png"
