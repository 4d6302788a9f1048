"""Shared pytest fixtures for Brick-Works tests."""

import io
import json
import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest
from PIL import Image

from brickworks.core.config import BrickworksConfig
from brickworks.core.generative import GenerationResponse, InlineImage
from brickworks.core.pipeline import BlueprintPipeline
from brickworks.core.pricing import CatalogPricingAuthority
from brickworks.core.session import SessionOrchestrator
from brickworks.core.validation import PartsValidator

CATALOG_URL_TEMPLATE = "https://catalog.test/part?P={piece_id}"

SAMPLE_PARTS_JSON = json.dumps(
    {
        "title": "Test",
        "partsList": [
            {
                "pieceId": "3001",
                "pieceName": "Brick",
                "color": "Red",
                "quantity": 2,
                "estimatedPrice": 0.1,
            }
        ],
        "totalPieces": 2,
        "estimatedCost": 0.2,
        "difficultyLevel": "Beginner",
        "buildTime": "10 min",
        "description": "d",
    }
)


def make_png(color: str = "red", size: tuple[int, int] = (8, 8)) -> bytes:
    """Render a solid-color PNG with Pillow."""
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def make_jpeg(color: str = "green", size: tuple[int, int] = (8, 8)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="JPEG")
    return buffer.getvalue()


def image_response(data: bytes, mime_type: str = "image/png") -> GenerationResponse:
    return GenerationResponse(images=[InlineImage(data=data, mime_type=mime_type)])


def text_response(text: str) -> GenerationResponse:
    return GenerationResponse(texts=[text])


class ScriptedGenerativeClient:
    """Generative client that replays queued responses in order.

    Queued exceptions are raised instead of returned.  Every call is recorded
    as ``(image, mime_type, prompt)``.
    """

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.calls = []

    def queue(self, *responses):
        self.responses.extend(responses)

    async def generate_content(self, image, mime_type, prompt):
        self.calls.append((image, mime_type, prompt))
        if not self.responses:
            raise AssertionError("No scripted response left")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


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
def test_config() -> BrickworksConfig:
    """Create a configuration that ignores the local .env file."""
    return BrickworksConfig(
        _env_file=None,
        gemini_api_key="test-key",
        catalog_url_template=CATALOG_URL_TEMPLATE,
    )


@pytest.fixture
def source_png() -> bytes:
    """The image a user uploads."""
    return make_png("red")


@pytest.fixture
def lego_png() -> bytes:
    """The image Stage A returns."""
    return make_png("blue", size=(16, 16))


@pytest.fixture
def scripted_client() -> ScriptedGenerativeClient:
    return ScriptedGenerativeClient()


@pytest.fixture
def catalog_authority() -> CatalogPricingAuthority:
    return CatalogPricingAuthority()


@pytest.fixture
def validator(catalog_authority) -> PartsValidator:
    return PartsValidator(catalog_authority, CATALOG_URL_TEMPLATE)


@pytest.fixture
def pipeline(scripted_client) -> BlueprintPipeline:
    return BlueprintPipeline(scripted_client)


@pytest.fixture
def session(pipeline, validator, test_config) -> SessionOrchestrator:
    return SessionOrchestrator(pipeline, validator, test_config)


@pytest.fixture
def api_client(scripted_client, validator):
    """FastAPI TestClient wired to the scripted generative client.

    Yields:
        ``TestClient`` with the application lifespan running.
    """
    from fastapi.testclient import TestClient

    from brickworks.api.main import app

    with TestClient(app) as client:
        app.state.pipeline = BlueprintPipeline(scripted_client)
        app.state.validator = validator
        yield client
