"""Client boundary for the image generation / parts extraction service.

The service accepts an image plus a natural-language instruction and answers
with zero or more parts, each of which may carry an inline image and/or text.
Nothing about the shape of the answer is guaranteed, so this module only
normalises the raw response into a :class:`GenerationResponse`; deciding what
a missing image or unusable text means is left to the pipeline.

:class:`GeminiClient` talks to Google's Gemini API through the ``google-genai``
SDK.  Anything with the same ``generate_content`` coroutine can stand in for
it (the tests use a scripted fake).
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from google import genai
from google.genai import types

from .config import BrickworksConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InlineImage:
    """An image returned inline by the generative service."""

    data: bytes
    mime_type: str


@dataclass
class GenerationResponse:
    """Normalised content of one generative call.

    Attributes:
        images: Inline images in the order they were returned.
        texts: Non-empty text parts in the order they were returned.
    """

    images: list[InlineImage] = field(default_factory=list)
    texts: list[str] = field(default_factory=list)

    def first_image(self) -> InlineImage | None:
        return self.images[0] if self.images else None

    def first_text(self) -> str | None:
        return self.texts[0] if self.texts else None


class GenerativeClient(Protocol):
    """Anything that can send an image and an instruction to the service."""

    async def generate_content(
        self, image: bytes, mime_type: str, prompt: str
    ) -> GenerationResponse: ...


def parse_response(response: Any) -> GenerationResponse:
    """Collect inline images and text from the first candidate of a response.

    Missing candidates, content or parts simply produce an empty result.
    """
    result = GenerationResponse()
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return result

    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) or []

    for part in parts:
        inline = getattr(part, "inline_data", None)
        if inline is not None and getattr(inline, "data", None):
            data = inline.data
            # The REST transport can surface the payload still base64-encoded.
            if isinstance(data, str):
                data = base64.b64decode(data)
            result.images.append(InlineImage(data=data, mime_type=inline.mime_type or "image/png"))
            continue
        text = getattr(part, "text", None)
        if text and text.strip():
            result.texts.append(text)

    return result


class GeminiClient:
    """Generative client backed by the Gemini API.

    The API key is read from the configuration object at construction;
    a missing key fails immediately with :class:`ConfigurationError`.
    """

    def __init__(self, config: BrickworksConfig, client: genai.Client | None = None) -> None:
        self.config = config
        self.model_id = config.image_model_id
        if client is None:
            client = genai.Client(
                api_key=config.require_api_key(),
                http_options=types.HttpOptions(timeout=int(config.request_timeout * 1000)),
            )
        self._client = client
        logger.info(f"Initialized GeminiClient with model: {self.model_id}")

    async def generate_content(
        self, image: bytes, mime_type: str, prompt: str
    ) -> GenerationResponse:
        """Send one image and one instruction, asking for image and text output."""
        logger.debug(f"Calling {self.model_id} with {len(image)} image bytes ({mime_type})")
        response = await self._client.aio.models.generate_content(
            model=self.model_id,
            contents=[
                types.Part.from_bytes(data=image, mime_type=mime_type),
                types.Part.from_text(text=prompt),
            ],
            config=types.GenerateContentConfig(
                response_modalities=[types.Modality.IMAGE, types.Modality.TEXT],
            ),
        )
        result = parse_response(response)
        logger.debug(f"Received {len(result.images)} image(s) and {len(result.texts)} text part(s)")
        return result
