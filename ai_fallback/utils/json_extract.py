import json
import logging
import re
from typing import Any

from ai_fallback.exceptions import JSONExtractionFailed

logger = logging.getLogger(__name__)

_OPENING_FENCE = re.compile(r"^```[\w-]*")
_CLOSING_FENCE = "```"


def _strip_fences(text: str) -> str:
    match = _OPENING_FENCE.match(text)
    if not match:
        return text
    text = text[match.end() :]
    if text.endswith(_CLOSING_FENCE):
        text = text[: -len(_CLOSING_FENCE)]
    return text.strip()


def _slice_to_boundaries(text: str) -> str:
    """Cut ``text`` down to the first opening bracket and its last closing partner.

    This is a boundary search, not a balanced-bracket scan: a closing brace
    inside a string literal after the real end of the value still moves the
    end of the slice.
    """
    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if not starts:
        return text
    start = min(starts)
    closer = "]" if text[start] == "[" else "}"
    end = text.rfind(closer)
    if end > start:
        return text[start : end + 1]
    return text


def extract_json(text: str) -> Any:
    """Recover a JSON value from free-form model output.

    Handles markdown code fences and prose around the value. Raises
    JSONExtractionFailed (carrying the raw text) when nothing parses.
    """
    content = _strip_fences(text.strip())
    if not content.startswith(("{", "[")):
        content = _slice_to_boundaries(content)

    try:
        return json.loads(content)
    except (json.JSONDecodeError, RecursionError) as e:
        logger.warning("Could not parse JSON from model response: %s", e)
        raise JSONExtractionFailed(f"Model response is not valid JSON: {e}", raw_text=text) from e
