"""End-to-end conversion scenarios through the session orchestrator.

Each scenario drives a real pipeline, validator and build store; only the
generative service is scripted.
"""

import asyncio
import json

from brickworks.core.image_io import encode_data_uri
from brickworks.core.models import Availability, BuildSize
from brickworks.core.pipeline import FALLBACK_TITLE
from brickworks.core.session import SessionState
from conftest import SAMPLE_PARTS_JSON, image_response, make_png, text_response


def _convert(session, source_png, size=BuildSize.MEDIUM):
    session.select_size(size)
    session.select_image(source_png, "image/png", filename="x.png")
    return asyncio.run(session.convert())


class TestConversionScenarios:
    """Upload, convert and price a single size."""

    def test_medium_conversion(self, session, scripted_client, source_png, lego_png):
        """Upload X, select Medium, Stage A returns Y, Stage B returns a parts list."""
        scripted_client.queue(image_response(lego_png), text_response(SAMPLE_PARTS_JSON))

        blueprint = _convert(session, source_png, BuildSize.MEDIUM)

        assert session.state == SessionState.READY
        assert blueprint.lego_image_data == encode_data_uri(lego_png, "image/png")
        assert blueprint.size == BuildSize.MEDIUM
        assert len(blueprint.validated_parts) == 1
        assert blueprint.validated_parts[0].quantity == 2
        assert blueprint.validated_parts[0].availability == Availability.AVAILABLE
        assert blueprint.total_pieces == 2
        assert blueprint.estimated_cost == 0.2

    def test_prose_wrapped_json(self, session, scripted_client, source_png, lego_png):
        """Brace extraction survives prose before and after the object."""
        text = (
            'Sorry, here: {"title":"T","partsList":[{"pieceId":"1","pieceName":"P",'
            '"color":"C","quantity":1,"estimatedPrice":1}]} extra'
        )
        scripted_client.queue(image_response(lego_png), text_response(text))

        blueprint = _convert(session, source_png)

        assert blueprint.title == "T"
        assert blueprint.is_fallback is False
        part = blueprint.validated_parts[0]
        assert part.piece_id == "1"
        assert part.availability == Availability.CHECK_ALTERNATIVES
        assert part.real_price == 1.0
        assert blueprint.real_total_cost == 1.0

    def test_no_json_uses_fallback(self, session, scripted_client, source_png, lego_png):
        """Stage B text without braces yields the fallback around the real image."""
        scripted_client.queue(
            image_response(lego_png), text_response("This model uses many red bricks.")
        )

        blueprint = _convert(session, source_png)

        assert session.state == SessionState.READY
        assert blueprint.is_fallback is True
        assert blueprint.title == FALLBACK_TITLE
        assert blueprint.lego_image_data == encode_data_uri(lego_png, "image/png")
        assert [p.piece_id for p in blueprint.validated_parts] == ["3001", "3002", "3003"]


class TestResizeScenario:
    """Derive a second size from the same upload."""

    def test_medium_then_large(self, session, scripted_client, source_png, lego_png):
        large_png = make_png("yellow", size=(32, 32))
        large_json = json.loads(SAMPLE_PARTS_JSON)
        large_json.update(title="Big Test", totalPieces=450)
        scripted_client.queue(
            image_response(lego_png),
            text_response(SAMPLE_PARTS_JSON),
            image_response(large_png),
            text_response(json.dumps(large_json)),
        )

        medium = _convert(session, source_png, BuildSize.MEDIUM)
        large = asyncio.run(session.resize(BuildSize.LARGE))

        assert [bp.size for bp in session.store] == [BuildSize.MEDIUM, BuildSize.LARGE]
        assert session.store[0] is medium
        assert medium.title == "Test"
        assert large.title == "Big Test"
        assert large.lego_image_data == encode_data_uri(large_png, "image/png")
        assert session.current_blueprint is large

        # Both sizes started from the uploaded image.
        stage_a_inputs = [call[0] for call in scripted_client.calls[::2]]
        assert stage_a_inputs == [source_png, source_png]

        assert session.select_version(0)
        assert session.current_blueprint is medium
        assert session.current_blueprint.validated_parts[0].quantity == 2
