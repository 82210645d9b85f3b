"""Recover structured values from free-form generative responses."""

import json
import re
from typing import Any

from loguru import logger

from ticket_planner.core.exceptions import MalformedResponse

_TAGGED_FENCE = re.compile(r"```json\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)
_ANY_FENCE = re.compile(r"```[a-zA-Z]*\s*(.*?)\s*```", re.DOTALL)


def _try_parse(text: str) -> tuple[bool, Any]:
    try:
        return True, json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return False, None


def find_balanced_object(text: str) -> str | None:
    """Return the first balanced ``{...}`` span, ignoring braces inside strings."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False

        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue

            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start : index + 1]

        # Unbalanced from this brace; try the next one
        start = text.find("{", start + 1)

    return None


def extract_structured(text: str) -> Any:
    """
    Extract a JSON value from a response.

    Tries, in order: the whole text, a ```json fenced block, any fenced
    block, and the first balanced ``{...}`` span.

    Args:
        text: Raw response text.

    Returns:
        The parsed JSON value.

    Raises:
        MalformedResponse: If nothing parses.

    Example:
        >>> extract_structured('Here you go:\\n```json\\n{"a": 1}\\n```')
        {'a': 1}
    """
    stripped = text.strip()

    ok, value = _try_parse(stripped)
    if ok:
        return value

    for pattern in (_TAGGED_FENCE, _ANY_FENCE):
        match = pattern.search(stripped)
        if match:
            ok, value = _try_parse(match.group(1))
            if ok:
                return value

    span = find_balanced_object(stripped)
    if span is not None:
        ok, value = _try_parse(span)
        if ok:
            return value

    logger.error(f"Failed to parse structured data from response: {stripped[:200]}")
    raise MalformedResponse(text)


def extract_object(text: str) -> dict[str, Any]:
    """Extract a JSON object, rejecting other top-level types."""
    value = extract_structured(text)
    if not isinstance(value, dict):
        raise MalformedResponse(text)
    return value
