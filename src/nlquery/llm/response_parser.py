"""
Classification Response Parsing

Repairs minor malformation in completion text (Markdown code fences,
surrounding prose) and extracts the {function_name, arguments} object.
"""

from __future__ import annotations

import json
import re
from typing import Any, Final

from src.nlquery.exceptions import MalformedResponseError
from src.nlquery.models import NO_FUNCTION

CODE_FENCE_PATTERN: Final = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL | re.IGNORECASE)


def strip_code_fences(text: str) -> str:
    """
    Remove a Markdown code fence around the payload, if present.

    >>> strip_code_fences('```json\\n{"a": 1}\\n```')
    '{"a": 1}'
    """
    match = CODE_FENCE_PATTERN.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def extract_json_object(text: str) -> str:
    """Slice from the first "{" to the last "}"."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise MalformedResponseError("No JSON object in response", raw_text=text)
    return text[start : end + 1]


def parse_classification_payload(text: str | None) -> tuple[str, dict[str, Any]]:
    """
    Parse completion text into (function_name, arguments).

    Args:
        text: Raw completion content

    Returns:
        function_name ("none" when missing) and arguments ({} when missing)

    Raises:
        MalformedResponseError: Empty text, no object, invalid JSON or a
            non-object payload
    """
    if not text or not text.strip():
        raise MalformedResponseError("Empty response from completion service")

    candidate = extract_json_object(strip_code_fences(text))
    try:
        payload = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise MalformedResponseError(f"Invalid JSON in response: {e}", raw_text=text) from e

    if not isinstance(payload, dict):
        raise MalformedResponseError("Response JSON is not an object", raw_text=text)

    function_name = payload.get("function_name") or NO_FUNCTION
    arguments = payload.get("arguments") or {}
    if not isinstance(arguments, dict):
        raise MalformedResponseError("arguments must be an object", raw_text=text)

    return str(function_name), arguments
