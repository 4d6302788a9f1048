"""Data models for parts lists and blueprints.

These pydantic models are the values that flow through the generation
pipeline, the parts validator and the build store.  Field names are
snake_case in Python and camelCase on the wire, because the generative
service is asked to answer with camelCase JSON (``pieceId``, ``partsList``,
...) and the HTTP layer serialises with the same aliases.

All models are frozen.  A blueprint produced by the pipeline is never
mutated; validation results are attached by :meth:`Blueprint.with_validation`,
which returns a new instance.
"""

from __future__ import annotations

import logging
import math
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

from .errors import SessionStateError

logger = logging.getLogger(__name__)


class BuildSize(str, Enum):
    """Target model size tier."""

    MICRO = "Micro"
    MEDIUM = "Medium"
    LARGE = "Large"


class Availability(str, Enum):
    """Availability of a validated part at the pricing authority."""

    AVAILABLE = "Available"
    RARE = "Rare"
    CHECK_ALTERNATIVES = "Check Alternatives"


class DifficultyLevel(str, Enum):
    BEGINNER = "Beginner"
    INTERMEDIATE = "Intermediate"
    ADVANCED = "Advanced"


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class Part(_WireModel):
    """A part proposed by the generative service.

    Attributes:
        piece_id: Catalog identifier.  Not guaranteed to exist or be unique.
        piece_name: Human-readable part name.
        color: Free-text color name.
        quantity: How many of this part the build needs (positive).
        estimated_price: The service's guess at the unit price in USD.
    """

    piece_id: str
    piece_name: str
    color: str
    quantity: int = Field(gt=0)
    estimated_price: float = Field(default=0.0, ge=0)

    @field_validator("piece_id", mode="before")
    @classmethod
    def _coerce_piece_id(cls, value: Any) -> Any:
        # The service sometimes answers with bare numbers ("pieceId": 3001).
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class ValidatedPart(Part):
    """A part enriched with authoritative price and availability.

    Attributes:
        real_price: Unit price from the pricing authority, or the estimate
            when no authoritative match exists.
        availability: Stock signal for the part.
        catalog_url: Canonical lookup reference for the resolved part.
        is_alternative: ``True`` when a different part was substituted.
        notes: Explanation of scarcity, substitution or estimation.
    """

    real_price: float = Field(ge=0)
    availability: Availability
    catalog_url: str
    is_alternative: bool | None = None
    notes: str | None = None


class Blueprint(_WireModel):
    """The complete result of one generation run.

    ``total_pieces`` and ``estimated_cost`` are reported by the generative
    service and are kept as reported, even when they disagree with
    ``parts_list``.

    ``validated_parts`` and ``real_total_cost`` stay ``None`` until
    :meth:`with_validation` attaches them.
    """

    title: str
    lego_image_data: str
    parts_list: tuple[Part, ...]
    total_pieces: int = 0
    estimated_cost: float = 0.0
    difficulty_level: DifficultyLevel = DifficultyLevel.INTERMEDIATE
    build_time: str = ""
    description: str = ""
    size: BuildSize
    validated_parts: tuple[ValidatedPart, ...] | None = None
    real_total_cost: float | None = None
    is_fallback: bool = False

    @field_validator("difficulty_level", mode="before")
    @classmethod
    def _normalise_difficulty(cls, value: Any) -> Any:
        if isinstance(value, DifficultyLevel):
            return value
        if isinstance(value, str):
            for level in DifficultyLevel:
                if value.strip().lower() == level.value.lower():
                    return level
        logger.warning(f"Unknown difficulty level {value!r}, using Intermediate")
        return DifficultyLevel.INTERMEDIATE

    @field_validator("title", "build_time", "description", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Any:
        if value is None:
            return ""
        return value if isinstance(value, str) else str(value)

    @field_validator("total_pieces", "estimated_cost", mode="before")
    @classmethod
    def _reported_total(cls, value: Any, info: ValidationInfo) -> Any:
        # Totals are kept as reported; only formatting such as "$3.50" is stripped.
        number: float | None = None
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            number = float(value)
        elif isinstance(value, str):
            try:
                number = float(value.replace("$", "").replace(",", "").strip())
            except ValueError:
                number = None

        if number is None or not math.isfinite(number) or (
            info.field_name == "total_pieces" and not number.is_integer()
        ):
            logger.warning(f"Unusable {info.field_name} {value!r}, using 0")
            return 0
        return int(number) if info.field_name == "total_pieces" else number

    def with_validation(self, validated_parts: list[ValidatedPart]) -> Blueprint:
        """Return a copy with validation results and their total cost attached."""
        validated = tuple(validated_parts)
        return self.model_copy(
            update={
                "validated_parts": validated,
                "real_total_cost": real_total_cost(validated),
            }
        )

    @property
    def is_validated(self) -> bool:
        return self.validated_parts is not None and self.real_total_cost is not None

    @property
    def availability_summary(self) -> str | None:
        """One-line stock summary, or ``None`` before validation."""
        if self.validated_parts is None:
            return None
        if any(p.availability != Availability.AVAILABLE for p in self.validated_parts):
            return "Some parts rare"
        return "All parts in stock"

    def export_summary(self) -> dict[str, Any]:
        """Return the data a document exporter needs for this blueprint.

        Raises:
            SessionStateError: If validation results are not attached yet.
        """
        if not self.is_validated:
            raise SessionStateError(
                "This blueprint has not been priced yet and cannot be exported."
            )
        return {
            "title": self.title,
            "size": self.size.value,
            "difficultyLevel": self.difficulty_level.value,
            "buildTime": self.build_time,
            "description": self.description,
            "legoImageData": self.lego_image_data,
            "totalPieces": self.total_pieces,
            "estimatedCost": self.estimated_cost,
            "realTotalCost": self.real_total_cost,
            "availabilitySummary": self.availability_summary,
            "validatedParts": [
                p.model_dump(mode="json", by_alias=True) for p in self.validated_parts
            ],
        }


def real_total_cost(validated_parts: tuple[ValidatedPart, ...] | list[ValidatedPart]) -> float:
    """Sum of ``real_price * quantity`` over validated parts."""
    return sum((part.real_price * part.quantity for part in validated_parts), 0.0)
