"""Shared pytest fixtures for Image Fusion tests.

No test talks to a real backend.  The chat backend and the image generators
are replaced by in-memory fakes that record every call, and remote image
downloads go through an ``httpx.MockTransport``.
"""

import base64
import io
import os
import shutil
import tempfile
from pathlib import Path
from typing import Generator

# Point the global configuration at a throwaway directory before any
# imagefusion module is imported.
_GLOBAL_ROOT = Path(tempfile.mkdtemp(prefix="imagefusion-tests-"))
os.environ.setdefault("IMAGEFUSION_UPLOADS_DIR", str(_GLOBAL_ROOT / "uploads"))
os.environ.setdefault("IMAGEFUSION_DATA_DIR", str(_GLOBAL_ROOT / "data"))

import httpx  # noqa: E402
import pytest  # noqa: E402
from PIL import Image  # noqa: E402

from imagefusion.core.activity_log import ActivityLog  # noqa: E402
from imagefusion.core.session_store import SessionStore  # noqa: E402
from imagefusion.core.catalog import ModelDefinition, Provider  # noqa: E402
from imagefusion.core.config import FusionConfig  # noqa: E402
from imagefusion.core.errors import BackendError  # noqa: E402
from imagefusion.core.generators import (  # noqa: E402
    GeneratorRegistry,
    ImageGeneratorBase,
    ImageResult,
)
from imagefusion.core.llm import ChatBackend  # noqa: E402
from imagefusion.core.pipeline import MergePipeline  # noqa: E402

RESULT_URL = "https://images.example/generated/result.png"


def make_png(color: str = "red", size: tuple[int, int] = (8, 8), fmt: str = "PNG") -> bytes:
    """Encode a small solid-colour image."""
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format=fmt)
    return buffer.getvalue()


def to_data_uri(data: bytes, mime: str = "image/png") -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


class FakeChatBackend(ChatBackend):
    """Chat backend returning canned text and recording calls.

    Attributes:
        descriptions: Maps image URL -> description.  Unknown images get a
            generic description.
        concept: Raw text returned by :meth:`complete`.
        failing_images: Image URLs for which :meth:`describe_image` raises.
        fail_complete: Whether :meth:`complete` raises.
    """

    def __init__(self) -> None:
        self.descriptions: dict[str, str] = {}
        self.concept = '"A lantern-eyed moss fox that brews storms in its tail."'
        self.failing_images: set[str] = set()
        self.fail_complete = False
        self.describe_calls: list[dict] = []
        self.complete_calls: list[dict] = []

    async def describe_image(self, image_url, instruction, max_tokens):
        self.describe_calls.append(
            {"image_url": image_url, "instruction": instruction, "max_tokens": max_tokens}
        )
        if image_url in self.failing_images:
            raise BackendError("Vision backend unavailable")
        return self.descriptions.get(image_url, f"An image ({len(self.describe_calls)}).")

    async def complete(self, system_prompt, user_prompt, max_tokens, temperature):
        self.complete_calls.append(
            {
                "system_prompt": system_prompt,
                "user_prompt": user_prompt,
                "max_tokens": max_tokens,
                "temperature": temperature,
            }
        )
        if self.fail_complete:
            raise BackendError("Concept backend unavailable")
        return self.concept


class FakeImageGenerator(ImageGeneratorBase):
    """Image generator returning a fixed result and recording calls."""

    def __init__(self, provider: Provider, result: ImageResult | None = None) -> None:
        self.provider = provider
        self.name = f"Fake {provider.value}"
        self.result = result or ImageResult(url=RESULT_URL)
        self.error: Exception | None = None
        self.calls: list[tuple[str, ModelDefinition]] = []

    async def generate(self, prompt, model):
        self.calls.append((prompt, model))
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path) -> FusionConfig:
    """Create a test configuration with temporary directories.

    Args:
        temp_dir: Temporary directory from fixture

    Returns:
        FusionConfig instance with admin credentials ``admin`` / ``secret``
    """
    return FusionConfig(
        _env_file=None,
        uploads_dir=temp_dir / "uploads",
        data_dir=temp_dir / "data",
        default_style="realistic",
        default_model="dall-e-3",
        admin_username="admin",
        admin_password="secret",
    )


@pytest.fixture
def png_bytes() -> bytes:
    """PNG bytes served for every mocked download."""
    return make_png("green")


@pytest.fixture
def image1() -> str:
    """First source image as a PNG data URI."""
    return to_data_uri(make_png("red"))


@pytest.fixture
def image2() -> str:
    """Second source image as a JPEG data URI."""
    return to_data_uri(make_png("blue", fmt="JPEG"), mime="image/jpeg")


@pytest.fixture
def download_requests() -> list[httpx.Request]:
    """Requests seen by the mocked download transport."""
    return []


@pytest.fixture
def mock_transport(png_bytes: bytes, download_requests: list) -> httpx.MockTransport:
    """Transport answering every GET with PNG bytes (404 for ``/missing``)."""

    def handler(request: httpx.Request) -> httpx.Response:
        download_requests.append(request)
        if request.url.path.endswith("/missing"):
            return httpx.Response(404)
        return httpx.Response(200, content=png_bytes, headers={"content-type": "image/png"})

    return httpx.MockTransport(handler)


@pytest.fixture
def session_store(test_config: FusionConfig, mock_transport) -> SessionStore:
    return SessionStore(test_config.uploads_dir, transport=mock_transport)


@pytest.fixture
def activity_log(test_config: FusionConfig) -> ActivityLog:
    return ActivityLog(test_config.activity_log_path, test_config.log_max_entries)


@pytest.fixture
def fake_chat(image1: str, image2: str) -> FakeChatBackend:
    chat = FakeChatBackend()
    chat.descriptions = {
        image1: "A red fox curled up in fresh snow.",
        image2: "A polished brass teapot on a wooden table.",
    }
    return chat


@pytest.fixture
def primary_generator() -> FakeImageGenerator:
    return FakeImageGenerator(Provider.PRIMARY)


@pytest.fixture
def secondary_generator() -> FakeImageGenerator:
    return FakeImageGenerator(Provider.SECONDARY, ImageResult(data=make_png("purple")))


@pytest.fixture
def pipeline(
    test_config,
    fake_chat,
    primary_generator,
    secondary_generator,
    session_store,
    activity_log,
) -> MergePipeline:
    """Merge pipeline wired to fakes and temporary storage."""
    registry = GeneratorRegistry()
    registry.register(primary_generator)
    registry.register(secondary_generator)
    return MergePipeline(
        config=test_config,
        chat=fake_chat,
        generators=registry,
        sessions=session_store,
        activity_log=activity_log,
    )


@pytest.fixture
def test_client(test_config, pipeline):
    """FastAPI TestClient whose app uses the fake pipeline."""
    from fastapi.testclient import TestClient

    from imagefusion.api.main import app

    with TestClient(app) as client:
        app.state.config = test_config
        app.state.pipeline = pipeline
        yield client
