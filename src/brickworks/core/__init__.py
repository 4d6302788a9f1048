"""Core functionality for Brick-Works.

Architecture Overview
---------------------
The core package is layered leaves-first:

1. **Configuration** (config.py):
   - Environment-based configuration using Pydantic Settings
   - All settings prefixed with BRICKWORKS_ in .env files

2. **Data model and boundaries** (models.py, image_io.py, generative.py, pricing.py):
   - Parts, validated parts and blueprints as frozen pydantic models
   - Image sniffing and data-URI encoding with Pillow
   - Gemini client for image synthesis and parts extraction
   - Pricing authorities (bundled catalog or HTTP service)

3. **Processing** (prompts.py, json_repair.py, pipeline.py, validation.py):
   - Size-tier prompts for both generation stages
   - Two-stage generation with fallback blueprint
   - Concurrent per-part pricing and availability validation

4. **Session** (build_store.py, session.py):
   - Multi-version build store
   - Conversion state machine

Usage Example
-------------
    import asyncio

    from brickworks.core import (
        BlueprintPipeline,
        BrickworksConfig,
        GeminiClient,
        SessionOrchestrator,
        build_parts_validator,
    )

    cfg = BrickworksConfig()
    session = SessionOrchestrator(
        BlueprintPipeline(GeminiClient(cfg)), build_parts_validator(cfg), cfg
    )
    session.select_image(photo_bytes, "image/jpeg")
    blueprint = asyncio.run(session.convert())
"""

from brickworks.core.build_store import BuildStore
from brickworks.core.config import BrickworksConfig, config
from brickworks.core.generative import GeminiClient, GenerationResponse, InlineImage
from brickworks.core.pipeline import BlueprintPipeline
from brickworks.core.session import SessionOrchestrator, SessionState
from brickworks.core.validation import PartsValidator, build_parts_validator

__all__ = [
    "BlueprintPipeline",
    "BrickworksConfig",
    "BuildStore",
    "GeminiClient",
    "GenerationResponse",
    "InlineImage",
    "PartsValidator",
    "SessionOrchestrator",
    "SessionState",
    "build_parts_validator",
    "config",
]
