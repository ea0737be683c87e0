"""Lenient decoding of JSON payloads embedded in generation output.

Models wrap JSON in prose or markdown fences and often leave raw newlines
inside string values. These helpers try progressively looser candidates
before giving up.
"""

import json
import re
from typing import Iterator

from config.exceptions import LLMResponseParseError

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL)

# Accepts unescaped control characters inside strings
_LENIENT_DECODER = json.JSONDecoder(strict=False)


def _decode(text: str):
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return _LENIENT_DECODER.decode(text)


def _candidates(text: str) -> Iterator[str]:
    yield text
    match = _FENCE_RE.search(text)
    if match:
        yield match.group(1).strip()
    for open_ch, close_ch in (("{", "}"), ("[", "]")):
        start = text.find(open_ch)
        end = text.rfind(close_ch)
        if start != -1 and end > start:
            yield text[start:end + 1]


def _as_object(value) -> dict:
    """Coerce a decoded value to a dict; arrays yield their first object."""
    if isinstance(value, dict):
        return value
    if isinstance(value, list):
        for item in value:
            if isinstance(item, dict):
                return item
        return {"items": value}
    return {"value": value}


def parse_json_response(text: str) -> dict:
    """Extract and parse a JSON object from generation output.

    Raises:
        LLMResponseParseError: If no candidate span decodes.
    """
    text = (text or "").strip()
    for candidate in _candidates(text):
        try:
            return _as_object(_decode(candidate))
        except json.JSONDecodeError:
            continue
    raise LLMResponseParseError(
        f"Failed to parse JSON from response: {text[:200]}", raw_response=text
    )


def try_parse_json(text: str) -> dict | None:
    """Like :func:`parse_json_response` but returns None on failure."""
    try:
        return parse_json_response(text)
    except LLMResponseParseError:
        return None
