"""Helpers for pulling structured data out of model responses."""

import json
from typing import Any, Dict, List

from .errors import UpstreamParseError


def first_text(response: Any) -> str:
    """Text of the first choice of a chat-completion response, or ''."""
    choices = getattr(response, "choices", None) or []
    if not choices:
        return ""
    message = getattr(choices[0], "message", None)
    return (getattr(message, "content", None) or "") if message is not None else ""


def extract_json_object(text: str) -> Dict[str, Any]:
    """Parse the outermost ``{...}`` span of a model response.

    Everything before the first ``{`` and after the last ``}`` is dropped;
    the remainder must be strict JSON describing an object.

    Raises:
        UpstreamParseError: If no object can be parsed
    """
    start = text.find("{")
    end = text.rfind("}")
    candidate = text[start:end + 1] if start != -1 and end > start else text

    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise UpstreamParseError("Invalid response format from AI") from exc

    if not isinstance(parsed, dict):
        raise UpstreamParseError("Invalid response format from AI")
    return parsed


def extract_json_array(text: str) -> List[Any]:
    """Parse the outermost ``[...]`` span of a model response.

    Raises:
        UpstreamParseError: If no array can be parsed
    """
    start = text.find("[")
    end = text.rfind("]")
    if start == -1 or end <= start:
        raise UpstreamParseError("Invalid response format from AI")

    try:
        parsed = json.loads(text[start:end + 1])
    except json.JSONDecodeError as exc:
        raise UpstreamParseError("Invalid response format from AI") from exc

    if not isinstance(parsed, list):
        raise UpstreamParseError("Invalid response format from AI")
    return parsed
