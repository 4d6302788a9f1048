"""Brick-Works - turn a photo into a brick model rendering and a priced parts list."""

__version__ = "0.1.0"

from brickworks.core.config import BrickworksConfig
from brickworks.core.models import Blueprint, BuildSize, Part, ValidatedPart
from brickworks.core.pipeline import BlueprintPipeline
from brickworks.core.session import SessionOrchestrator, SessionState
from brickworks.core.validation import PartsValidator

__all__ = [
    "Blueprint",
    "BlueprintPipeline",
    "BrickworksConfig",
    "BuildSize",
    "Part",
    "PartsValidator",
    "SessionOrchestrator",
    "SessionState",
    "ValidatedPart",
]
