"""Unit tests for the session orchestrator state machine.

Tests cover:
- Image selection, clearing and size selection
- First conversion: success, fatal failure, progress reporting
- Resize: new sizes, skipped sizes, isolated failures
- Concurrency guard and reset while a run is in flight
- Demo image loading
"""

import asyncio

import httpx
import pytest

from brickworks.core.errors import (
    ConversionInProgressError,
    ImageGenerationError,
    InvalidImageError,
    SessionStateError,
)
from brickworks.core.models import Availability, BuildSize
from brickworks.core.pipeline import BlueprintPipeline
from brickworks.core.session import (
    DEMO_IMAGE_ERROR,
    UNKNOWN_ERROR,
    SessionOrchestrator,
    SessionState,
)
from conftest import (
    SAMPLE_PARTS_JSON,
    ScriptedGenerativeClient,
    image_response,
    make_jpeg,
    text_response,
)


def _script_success(client, lego_png, times=1):
    for _ in range(times):
        client.queue(image_response(lego_png), text_response(SAMPLE_PARTS_JSON))


def _ready_session(session, scripted_client, source_png, lego_png):
    _script_success(scripted_client, lego_png)
    session.select_image(source_png, "image/png", filename="photo.png")
    asyncio.run(session.convert())
    assert session.state == SessionState.READY
    return session


class GatedClient(ScriptedGenerativeClient):
    """Scripted client whose calls wait until ``release`` is set."""

    def __init__(self, responses):
        super().__init__(responses)
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def generate_content(self, image, mime_type, prompt):
        self.started.set()
        await self.release.wait()
        return await super().generate_content(image, mime_type, prompt)


class TestImageSelection:
    """Tests for selecting, clearing and sizing before conversion."""

    def test_initial_state(self, session, test_config):
        assert session.state == SessionState.IDLE
        assert session.image is None
        assert session.size == test_config.default_size
        assert session.current_blueprint is None
        assert not session.is_busy

    def test_select_image(self, session, source_png):
        session.select_image(source_png, "image/png", filename="photo.png")

        assert session.state == SessionState.IMAGE_SELECTED
        assert session.image.data == source_png
        assert session.image.mime_type == "image/png"
        assert session.image.filename == "photo.png"

    def test_detected_type_is_sent_to_generation(self, session, scripted_client, lego_png):
        """A JPEG declared as PNG reaches Stage A as image/jpeg."""
        _script_success(scripted_client, lego_png)
        session.select_image(make_jpeg(), "image/png", filename="photo.png")

        asyncio.run(session.convert())

        assert session.image.mime_type == "image/jpeg"
        assert scripted_client.calls[0][1] == "image/jpeg"

    def test_invalid_image_leaves_state(self, session):
        with pytest.raises(InvalidImageError):
            session.select_image(b"plain text", "text/plain")
        assert session.state == SessionState.IDLE
        assert session.image is None

    def test_replace_selected_image(self, session, source_png, lego_png):
        session.select_image(source_png, "image/png")
        session.select_image(lego_png, None)
        assert session.image.data == lego_png

    def test_clear_image(self, session, source_png):
        session.select_image(source_png, "image/png")
        session.clear_image()
        assert session.state == SessionState.IDLE
        assert session.image is None

    def test_clear_without_image(self, session):
        with pytest.raises(SessionStateError):
            session.clear_image()

    def test_select_size(self, session):
        session.select_size("Large")
        assert session.size == BuildSize.LARGE

    def test_select_invalid_size(self, session):
        with pytest.raises(ValueError):
            session.select_size("Huge")


class TestConvert:
    """Tests for the first conversion."""

    def test_success(self, session, scripted_client, source_png, lego_png):
        _script_success(scripted_client, lego_png)
        messages = []
        session.on_progress = messages.append
        session.select_image(source_png, "image/png")

        blueprint = asyncio.run(session.convert())

        assert session.state == SessionState.READY
        assert session.error is None
        assert session.progress_message == ""
        assert not session.is_busy
        assert len(session.store) == 1
        assert session.current_blueprint is blueprint
        assert blueprint.size == BuildSize.MEDIUM
        assert blueprint.is_validated
        assert blueprint.validated_parts[0].availability == Availability.AVAILABLE
        assert blueprint.real_total_cost == pytest.approx(0.28)
        assert messages == [
            "Preparing image...",
            "Generating Medium LEGO version...",
            "Analyzing LEGO image for parts...",
            "Validating parts with BrickLink...",
            "Complete!",
        ]

    def test_uses_selected_size(self, session, scripted_client, source_png, lego_png):
        _script_success(scripted_client, lego_png)
        session.select_size(BuildSize.MICRO)
        session.select_image(source_png, "image/png")

        blueprint = asyncio.run(session.convert())

        assert blueprint.size == BuildSize.MICRO

    def test_requires_image(self, session):
        with pytest.raises(SessionStateError):
            asyncio.run(session.convert())
        assert session.state == SessionState.IDLE

    def test_fatal_failure(self, session, scripted_client, source_png):
        scripted_client.queue(text_response("no image for you"))
        session.select_image(source_png, "image/png")

        assert asyncio.run(session.convert()) is None

        assert session.state == SessionState.ERROR
        assert "Medium LEGO image" in session.error
        assert session.progress_message == ""
        assert len(session.store) == 0
        assert not session.is_busy

    def test_failure_without_message(self, session, scripted_client, source_png):
        scripted_client.queue(RuntimeError())
        session.select_image(source_png, "image/png")

        asyncio.run(session.convert())

        assert session.state == SessionState.ERROR
        assert session.error == UNKNOWN_ERROR

    def test_recover_from_error(self, session, scripted_client, source_png, lego_png):
        scripted_client.queue(ImageGenerationError("boom"))
        session.select_image(source_png, "image/png")
        asyncio.run(session.convert())

        session.select_image(source_png, "image/png")
        _script_success(scripted_client, lego_png)
        asyncio.run(session.convert())

        assert session.state == SessionState.READY
        assert session.error is None

    def test_fallback_blueprint_is_still_priced(self, session, scripted_client, source_png,
                                                lego_png):
        scripted_client.queue(image_response(lego_png), text_response("no parts, sorry"))
        session.select_image(source_png, "image/png")

        blueprint = asyncio.run(session.convert())

        assert blueprint.is_fallback
        assert len(blueprint.validated_parts) == 3

    def test_ready_session_rejects_new_image(self, session, scripted_client, source_png,
                                             lego_png):
        _ready_session(session, scripted_client, source_png, lego_png)

        with pytest.raises(SessionStateError):
            session.select_image(source_png, "image/png")
        with pytest.raises(SessionStateError):
            session.select_size(BuildSize.LARGE)

    def test_concurrent_convert_rejected(self, validator, test_config, source_png, lego_png):
        async def scenario():
            client = GatedClient([image_response(lego_png), text_response(SAMPLE_PARTS_JSON)])

            session = SessionOrchestrator(BlueprintPipeline(client), validator, test_config)
            session.select_image(source_png, "image/png")

            task = asyncio.create_task(session.convert())
            await client.started.wait()

            assert session.state == SessionState.CONVERTING
            assert session.is_busy
            assert session.progress_message == "Generating Medium LEGO version..."
            with pytest.raises(ConversionInProgressError):
                await session.convert()
            with pytest.raises(ConversionInProgressError):
                session.select_image(source_png, "image/png")

            client.release.set()
            return session, await task

        session, blueprint = asyncio.run(scenario())

        assert blueprint is not None
        assert session.state == SessionState.READY


class TestResize:
    """Tests for generating additional size versions."""

    def test_new_size(self, session, scripted_client, source_png, lego_png):
        _ready_session(session, scripted_client, source_png, lego_png)
        first = session.current_blueprint
        _script_success(scripted_client, lego_png)

        large = asyncio.run(session.resize(BuildSize.LARGE))

        assert large.size == BuildSize.LARGE
        assert large.is_validated
        assert len(session.store) == 2
        assert session.store.current_index == 1
        assert session.store[0] is first
        assert session.state == SessionState.READY
        assert not session.is_resizing
        assert session.progress_message == ""
        # Resize starts from the original upload, not the earlier rendering.
        assert scripted_client.calls[-2][0] == source_png

    def test_existing_size_skipped(self, session, scripted_client, source_png, lego_png):
        _ready_session(session, scripted_client, source_png, lego_png)
        calls = len(scripted_client.calls)

        assert asyncio.run(session.resize("Medium")) is None

        assert len(scripted_client.calls) == calls
        assert len(session.store) == 1

    def test_failure_keeps_versions(self, session, scripted_client, source_png, lego_png):
        _ready_session(session, scripted_client, source_png, lego_png)
        scripted_client.queue(text_response("no image"))

        assert asyncio.run(session.resize(BuildSize.MICRO)) is None

        assert session.state == SessionState.READY
        assert "Micro LEGO image" in session.resize_error
        assert len(session.store) == 1
        assert session.store.current_index == 0
        assert not session.is_resizing

    def test_failure_without_message(self, session, scripted_client, source_png, lego_png):
        _ready_session(session, scripted_client, source_png, lego_png)
        scripted_client.queue(RuntimeError(""))

        asyncio.run(session.resize(BuildSize.LARGE))

        assert session.resize_error == "An unknown error occurred during resize."

    def test_next_resize_clears_error(self, session, scripted_client, source_png, lego_png):
        _ready_session(session, scripted_client, source_png, lego_png)
        scripted_client.queue(RuntimeError("boom"))
        asyncio.run(session.resize(BuildSize.LARGE))
        _script_success(scripted_client, lego_png)

        asyncio.run(session.resize(BuildSize.LARGE))

        assert session.resize_error is None
        assert len(session.store) == 2

    def test_requires_ready(self, session, source_png):
        session.select_image(source_png, "image/png")
        with pytest.raises(SessionStateError):
            asyncio.run(session.resize(BuildSize.LARGE))

    def test_select_version(self, session, scripted_client, source_png, lego_png):
        _ready_session(session, scripted_client, source_png, lego_png)
        _script_success(scripted_client, lego_png)
        asyncio.run(session.resize(BuildSize.LARGE))

        assert session.select_version(0)
        assert session.current_blueprint.size == BuildSize.MEDIUM
        assert not session.select_version(5)
        assert session.current_blueprint.size == BuildSize.MEDIUM


class TestReset:
    """Tests for reset."""

    def test_reset_ready_session(self, session, scripted_client, source_png, lego_png):
        _ready_session(session, scripted_client, source_png, lego_png)
        store = session.store

        session.reset()

        assert session.store is store
        assert session.state == SessionState.IDLE
        assert session.image is None
        assert len(session.store) == 0
        assert session.current_blueprint is None
        assert session.error is None

    def test_reset_from_error(self, session, scripted_client, source_png):
        scripted_client.queue(RuntimeError("boom"))
        session.select_image(source_png, "image/png")
        asyncio.run(session.convert())

        session.reset()

        assert session.state == SessionState.IDLE
        assert session.error is None

    def test_reset_during_conversion_discards_result(self, validator, test_config, source_png,
                                                     lego_png):
        async def scenario():
            client = GatedClient([image_response(lego_png), text_response(SAMPLE_PARTS_JSON)])

            session = SessionOrchestrator(BlueprintPipeline(client), validator, test_config)
            session.select_image(source_png, "image/png")

            task = asyncio.create_task(session.convert())
            await client.started.wait()
            session.reset()
            client.release.set()
            return session, await task

        session, result = asyncio.run(scenario())

        assert result is None
        assert session.state == SessionState.IDLE
        assert len(session.store) == 0
        assert session.progress_message == ""
        assert not session.is_busy


class TestDemoImage:
    """Tests for loading a demo image over HTTP."""

    def test_success(self, session, source_png):
        def handler(request):
            return httpx.Response(200, content=source_png, headers={"content-type": "image/png"})

        async def load():
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
                return await session.select_demo_image("https://demo.test/img/cat.png", client)

        assert asyncio.run(load()) is True
        assert session.state == SessionState.IMAGE_SELECTED
        assert session.image.filename == "cat.png"

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(404),
            httpx.Response(200, content=b"<html></html>", headers={"content-type": "text/html"}),
        ],
    )
    def test_failure(self, session, response):
        async def load():
            transport = httpx.MockTransport(lambda request: response)
            async with httpx.AsyncClient(transport=transport) as client:
                return await session.select_demo_image("https://demo.test/missing.png", client)

        assert asyncio.run(load()) is False
        assert session.error == DEMO_IMAGE_ERROR
        assert session.state == SessionState.IDLE
