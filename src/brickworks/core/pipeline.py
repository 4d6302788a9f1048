"""Two-stage blueprint generation pipeline."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from .errors import ImageGenerationError
from .generative import GenerativeClient
from .image_io import encode_data_uri
from .json_repair import parse_json_object
from .models import Blueprint, BuildSize, DifficultyLevel, Part
from .prompts import build_image_prompt, build_parts_prompt

logger = logging.getLogger(__name__)

ProgressSink = Callable[[str], None]

# Fields the pipeline owns.  Values for them in the parsed payload are ignored.
_OWNED_FIELDS = (
    "legoImageData",
    "lego_image_data",
    "size",
    "validatedParts",
    "validated_parts",
    "realTotalCost",
    "real_total_cost",
    "isFallback",
    "is_fallback",
)

FALLBACK_TITLE = "My Custom Brick Model"
FALLBACK_PARTS: tuple[Part, ...] = (
    Part(
        piece_id="3001", piece_name="2x4 Brick", color="Red", quantity=10, estimated_price=0.12
    ),
    Part(
        piece_id="3002", piece_name="2x3 Brick", color="Blue", quantity=8, estimated_price=0.10
    ),
    Part(
        piece_id="3003", piece_name="2x2 Brick", color="Yellow", quantity=15, estimated_price=0.08
    ),
)
FALLBACK_DESCRIPTION = (
    "A creative brick model. The AI was unable to provide a detailed parts list, "
    "so this is an example breakdown."
)


def build_fallback_blueprint(lego_image_data: str, size: BuildSize) -> Blueprint:
    """Return the placeholder blueprint used when parts extraction fails."""
    return Blueprint(
        title=FALLBACK_TITLE,
        lego_image_data=lego_image_data,
        parts_list=FALLBACK_PARTS,
        total_pieces=33,
        estimated_cost=3.5,
        difficulty_level=DifficultyLevel.INTERMEDIATE,
        build_time="30-45 minutes",
        description=FALLBACK_DESCRIPTION,
        size=size,
        is_fallback=True,
    )


def _notify(progress: ProgressSink | None, message: str) -> None:
    logger.info(message)
    if progress is not None:
        progress(message)


class BlueprintPipeline:
    """Turns a source image into a blueprint for a given size.

    Stage A sends the source image with a size-specific instruction and takes
    the first inline image of the answer.  Stage B sends that image back with
    a request for a JSON parts breakdown.  A missing Stage A image is fatal;
    anything unusable from Stage B yields the fallback blueprint around the
    real Stage A image.
    """

    def __init__(self, client: GenerativeClient) -> None:
        self.client = client

    async def generate(
        self,
        image: bytes,
        mime_type: str,
        size: BuildSize,
        progress: ProgressSink | None = None,
    ) -> Blueprint:
        """Generate a blueprint from an image.

        Args:
            image: Source image bytes.
            mime_type: MIME type of ``image``.
            size: Target build size.
            progress: Optional callable receiving progress messages.

        Returns:
            The generated blueprint, or the fallback blueprint when the parts
            breakdown could not be used.

        Raises:
            ImageGenerationError: If Stage A returns no image.
        """
        size = BuildSize(size)

        # --- Stage A: image synthesis --------------------------------------
        _notify(progress, f"Generating {size.value} LEGO version...")
        image_response = await self.client.generate_content(
            image, mime_type, build_image_prompt(size)
        )
        lego_image = image_response.first_image()
        if lego_image is None:
            logger.error(f"Image synthesis returned no image for size {size.value}")
            raise ImageGenerationError(
                f"AI failed to generate the {size.value} LEGO image. Please try a different image."
            )
        lego_image_data = encode_data_uri(lego_image.data, lego_image.mime_type)

        # --- Stage B: parts extraction -------------------------------------
        _notify(progress, "Analyzing LEGO image for parts...")
        parts_response = await self.client.generate_content(
            lego_image.data, lego_image.mime_type, build_parts_prompt(size)
        )

        text = parts_response.first_text()
        if text is None:
            logger.warning("Parts extraction returned no text, using fallback blueprint")
            return build_fallback_blueprint(lego_image_data, size)

        blueprint = self._parse_blueprint(text, lego_image_data, size)
        if blueprint is None:
            logger.warning(f"Unusable parts breakdown, using fallback blueprint: {text[:200]!r}")
            return build_fallback_blueprint(lego_image_data, size)

        logger.info(
            f"Generated blueprint {blueprint.title!r} ({size.value}, "
            f"{len(blueprint.parts_list)} part lines)"
        )
        return blueprint

    async def regenerate(
        self,
        original_image: bytes,
        original_mime_type: str,
        size: BuildSize,
        progress: ProgressSink | None = None,
    ) -> Blueprint:
        """Derive another size version from the retained original image."""
        return await self.generate(original_image, original_mime_type, size, progress)

    @staticmethod
    def _parse_blueprint(text: str, lego_image_data: str, size: BuildSize) -> Blueprint | None:
        payload = parse_json_object(text)
        if payload is None:
            return None

        parts = payload.get("partsList")
        if not isinstance(parts, list) or not parts or not payload.get("title"):
            logger.warning("Parts breakdown is missing 'partsList' or 'title'")
            return None

        data: dict[str, Any] = {k: v for k, v in payload.items() if k not in _OWNED_FIELDS}
        data["legoImageData"] = lego_image_data
        data["size"] = size
        # Totals and text fields are coerced leniently, so only malformed parts
        # entries fail here.
        try:
            return Blueprint.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Parts breakdown failed validation: {e.error_count()} error(s)")
            return None
