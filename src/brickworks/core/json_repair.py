"""Recovery of a JSON object from free-form model output.

The parts extraction call is asked for bare JSON but regularly answers with
prose around it or with markdown fences.  The recovery rule is deliberately
simple: take everything from the first ``{`` to the last ``}`` and try to
parse that.  Anything that does not yield a JSON object is reported as
``None`` so the caller can fall back.
"""

from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)


def extract_json_object(text: str | None) -> str:
    """Return the substring between the first ``{`` and the last ``}``.

    Returns:
        The candidate JSON text, or an empty string when no such bracket pair
        exists.
    """
    if not text:
        return ""
    first = text.find("{")
    last = text.rfind("}")
    if first == -1 or last == -1 or last < first:
        logger.warning("No JSON object found in model response")
        return ""
    return text[first : last + 1]


def parse_json_object(text: str | None) -> dict[str, Any] | None:
    """Extract and parse a JSON object from model output.

    Returns:
        The parsed object, or ``None`` when extraction or parsing fails or the
        payload is not a JSON object.
    """
    candidate = extract_json_object(text)
    if not candidate:
        return None
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse JSON from model response: {e}")
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed
