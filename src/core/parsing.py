"""Defensive parsing of model output."""

from __future__ import annotations

import json
import re
from typing import Any

_FENCE_RE = re.compile(r"^\s*```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)


def strip_code_fences(response: str) -> str:
    """Remove a surrounding markdown code fence, if any.

    Examples:
        >>> strip_code_fences('```json\\n{"a": 1}\\n```')
        '{"a": 1}'
    """
    match = _FENCE_RE.match(response)
    if match:
        return match.group(1).strip()
    return response.strip()


def extract_json_object(response: str) -> dict[str, Any] | None:
    """Pull the first JSON object out of a model response.

    Schema-constrained providers usually return bare JSON, but some wrap it
    in a code fence or add prose around it.

    Args:
        response: The raw model response text

    Returns:
        The parsed object, or None if no JSON object could be decoded
    """
    text = strip_code_fences(response)
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, dict):
        return parsed

    decoder = json.JSONDecoder()
    for match in re.finditer(r"\{", text):
        try:
            parsed, _ = decoder.raw_decode(text, match.start())
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed
    return None
