"""Image encoding boundary.

Uploads arrive as raw bytes with a declared MIME type.  Before anything is
sent to the generative service the bytes are checked with Pillow, and images
travel between components as base64 data URIs
(``data:image/png;base64,...``), the same transportable form the frontend
uses to display them.

Two different failures live here:

- :class:`InvalidImageError` for user input that is not an acceptable image.
  It is raised when a file is selected, before the pipeline is involved.
- :class:`ImageEncodingError` for payloads that cannot be decoded or encoded
  once a conversion is under way.  The orchestrator reports it as a fatal
  conversion failure.
"""

from __future__ import annotations

import base64
import io
import logging

from PIL import Image, UnidentifiedImageError

from .errors import ImageEncodingError, InvalidImageError

logger = logging.getLogger(__name__)


def sniff_mime_type(data: bytes) -> str | None:
    """Identify image bytes with Pillow.

    Returns:
        The MIME type Pillow associates with the detected format, or ``None``
        when the bytes are not a recognisable image.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            image_format = img.format
    except (UnidentifiedImageError, OSError, ValueError):
        return None
    if image_format is None:
        return None
    return Image.MIME.get(image_format.upper())


def ensure_image(
    data: bytes,
    declared_mime_type: str | None,
    *,
    allowed_mime_types: list[str],
    max_bytes: int,
) -> str:
    """Check that an uploaded file is an acceptable image.

    The declared MIME type only gates whether the upload claims to be an
    image.  The effective type is the one Pillow detects from the bytes, so a
    JPEG declared as ``image/png`` (or as ``image/jpg``) is sent on as
    ``image/jpeg``.

    Args:
        data: Raw file contents.
        declared_mime_type: MIME type reported by the client, if any.
        allowed_mime_types: Accepted MIME types.
        max_bytes: Largest accepted file size.

    Returns:
        The MIME type Pillow detected.

    Raises:
        InvalidImageError: If the file is empty, too large, not an image, or
            of a type that is not accepted.
    """
    if not data:
        raise InvalidImageError("The selected file is empty.")
    if len(data) > max_bytes:
        raise InvalidImageError(
            f"The selected file is too large ({len(data)} bytes, maximum {max_bytes})."
        )
    if declared_mime_type and not declared_mime_type.startswith("image/"):
        raise InvalidImageError("Please select an image file.")

    sniffed = sniff_mime_type(data)
    if sniffed is None:
        raise InvalidImageError("The selected file is not a readable image.")

    if sniffed not in allowed_mime_types:
        raise InvalidImageError(
            f"Unsupported image type {sniffed}. Supported: {', '.join(allowed_mime_types)}."
        )
    if declared_mime_type and declared_mime_type != sniffed:
        logger.info(f"Declared type {declared_mime_type} differs from detected {sniffed}")
    return sniffed


def prepare_payload(data: bytes, mime_type: str) -> tuple[bytes, str]:
    """Verify image bytes are decodable before sending them for generation.

    Returns:
        Tuple of ``(data, mime_type)`` ready for the generative service.

    Raises:
        ImageEncodingError: If Pillow cannot decode the image.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, ValueError, SyntaxError) as e:
        raise ImageEncodingError(f"Could not read the uploaded image: {e}") from e
    return data, mime_type


def encode_data_uri(data: bytes, mime_type: str) -> str:
    """Encode image bytes as a base64 data URI."""
    if not data:
        raise ImageEncodingError("Cannot encode an empty image.")
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"

