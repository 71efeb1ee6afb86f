"""Parsing helpers for JSON returned by chat models."""

from __future__ import annotations

from typing import Any

from langchain_core.exceptions import OutputParserException
from langchain_core.output_parsers import JsonOutputParser

_parser = JsonOutputParser()


def parse_json_object(text: str) -> dict[str, Any] | None:
    """Decode a model reply into a dict, or None when it is not a JSON object.

    Fenced ```json blocks are handled by the parser. A reply with prose
    around a bare object is retried on its outermost `{ ... }` span.
    """

    if not text or not text.strip():
        return None
    try:
        payload = _parser.parse(text)
    except OutputParserException:
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            return None
        try:
            payload = _parser.parse(text[start : end + 1])
        except OutputParserException:
            return None
    return payload if isinstance(payload, dict) else None


def string_list(value: Any) -> list[str]:
    """Keep the non-empty string items of a list; anything else gives []."""

    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]
