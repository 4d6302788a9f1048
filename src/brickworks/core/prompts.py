"""Size-tier prompt compilation for the two generation stages.

Both generative calls carry the same size constraints so that the image
synthesised in the first stage and the parts list extracted in the second
describe the same build.

Size Tiers
----------
=======  ===========  ==================================================
Size     Piece count  Detail level
=======  ===========  ==================================================
Micro    < 75         drastically simplified, only essential features
Medium   100-300      balanced, shelf-display quality
Large    400-1000     highly detailed, intricate techniques
=======  ===========  ==================================================

Usage
-----
::

    image_prompt = build_image_prompt(BuildSize.MEDIUM)
    parts_prompt = build_parts_prompt(BuildSize.MEDIUM)
"""

from __future__ import annotations

from dataclasses import dataclass

from .models import BuildSize


@dataclass(frozen=True)
class SizeTier:
    """Piece-count range and detail level for one build size."""

    size: BuildSize
    min_pieces: int | None
    max_pieces: int
    label: str
    detail: str

    @property
    def piece_range(self) -> str:
        if self.min_pieces is None:
            return f"under {self.max_pieces} parts"
        return f"between {self.min_pieces} and {self.max_pieces} parts"


SIZE_TIERS: dict[BuildSize, SizeTier] = {
    BuildSize.MICRO: SizeTier(
        size=BuildSize.MICRO,
        min_pieces=None,
        max_pieces=75,
        label="a small desk toy",
        detail="Drastically simplify the design and capture only the most essential features",
    ),
    BuildSize.MEDIUM: SizeTier(
        size=BuildSize.MEDIUM,
        min_pieces=100,
        max_pieces=300,
        label="a shelf display piece",
        detail=(
            "Use a balanced level of detail, like a standard official set, so the model "
            "is recognizable and well-proportioned"
        ),
    ),
    BuildSize.LARGE: SizeTier(
        size=BuildSize.LARGE,
        min_pieces=400,
        max_pieces=1000,
        label="a room centerpiece",
        detail=(
            "Make it a highly detailed and complex build that focuses on accuracy and "
            "intricate building techniques"
        ),
    ),
}

# ---------------------------------------------------------------------------
# Fixed sections.
# ---------------------------------------------------------------------------

_IMAGE_STYLE = (
    "The final image must be clearly identifiable as a model built from standard LEGO "
    "bricks. It MUST have a clean, white background and an isometric perspective, and "
    "should look like a photograph of a real LEGO model. Do not include any text in "
    "your response, only the generated image."
)

_PARTS_FORMAT = """IMPORTANT: The text part of your response MUST ONLY be the JSON object. Do not include any introductory text, explanations, or markdown formatting like ```json. Your entire text output must be the raw JSON string starting with { and ending with }.

The JSON must be valid and adhere to this exact structure:
{
  "title": "string",
  "partsList": [{ "pieceId": "string", "pieceName": "string", "color": "string", "quantity": number, "estimatedPrice": number }],
  "totalPieces": number,
  "estimatedCost": number,
  "difficultyLevel": "Beginner" | "Intermediate" | "Advanced",
  "buildTime": "string",
  "description": "string"
}
Generate a creative and descriptive title for the model. Ensure the estimatedPrice for each part is a number representing the unit price in USD. Calculate totalPieces and estimatedCost based on the partsList."""


def build_image_prompt(size: BuildSize) -> str:
    """Compile the image synthesis instruction for a build size."""
    tier = SIZE_TIERS[size]
    return (
        "You are a LEGO expert. Your task is to generate a new image that recreates the "
        f'uploaded object as a realistic "{size.value}" LEGO version, {tier.label}. '
        f"{tier.detail}, using a piece count {tier.piece_range}. {_IMAGE_STYLE}"
    )


def build_size_constraints(size: BuildSize) -> str:
    """Describe the piece-count and detail constraints for the parts list."""
    tier = SIZE_TIERS[size]
    return (
        f'The model should be a "{size.value}" version, {tier.label}. '
        f"The total piece count must be {tier.piece_range}. "
        f"The parts list should reflect this: {tier.detail[0].lower()}{tier.detail[1:]}."
    )


def build_parts_prompt(size: BuildSize) -> str:
    """Compile the parts extraction instruction for a build size."""
    return (
        "You are a LEGO building expert. The user has provided an image of a LEGO model. "
        "Your task is to analyze this image and provide a detailed parts list in JSON "
        f"format. {build_size_constraints(size)}\n\n{_PARTS_FORMAT}"
    )
