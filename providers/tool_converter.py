"""Convert canonical (Anthropic-format) tool definitions to OpenAI-style and Gemini formats."""
from __future__ import annotations

import copy
from typing import Any

# Keys that Gemini's OpenAPI-subset schema rejects.
_GEMINI_UNSUPPORTED_KEYS = ("additionalProperties", "title", "$schema")


def _sanitize_for_gemini(schema: dict) -> dict:
    """Recursively clean a JSON Schema for Gemini compatibility.

    Handles:
    - anyOf-with-null -> collapses to the non-null type
    - additionalProperties / title / $schema -> removed
    """
    schema = copy.deepcopy(schema)

    for key in _GEMINI_UNSUPPORTED_KEYS:
        schema.pop(key, None)

    if "anyOf" in schema:
        non_null = [s for s in schema.pop("anyOf") if s.get("type") != "null"]
        if non_null:
            # Keep description/default from the outer schema
            merged = dict(non_null[0])
            merged.update(schema)
            return _sanitize_for_gemini(merged)

    if "properties" in schema:
        schema["properties"] = {
            key: _sanitize_for_gemini(prop) for key, prop in schema["properties"].items()
        }

    if "items" in schema and isinstance(schema["items"], dict):
        schema["items"] = _sanitize_for_gemini(schema["items"])

    return schema


def to_openai(tools: list[dict]) -> list[dict]:
    """Convert canonical tool definitions to the chat-completions function format.

    Canonical:  {"name", "description", "input_schema": {JSON Schema}}
    OpenAI:     {"type": "function", "function": {"name", "description", "parameters": {JSON Schema}}}

    Mistral accepts the same envelope.
    """
    return [
        {
            "type": "function",
            "function": {
                "name": tool["name"],
                "description": tool.get("description", ""),
                "parameters": tool.get("input_schema", {}),
            },
        }
        for tool in tools
    ]


def to_gemini(tools: list[dict]) -> list[dict[str, Any]]:
    """Convert canonical tool definitions to Gemini function declarations.

    Returns the bare declarations; the adapter wraps them in a Tool object.
    """
    return [
        {
            "name": tool["name"],
            "description": tool.get("description", ""),
            "parameters": _sanitize_for_gemini(tool.get("input_schema", {})),
        }
        for tool in tools
    ]
