"""Helpers for reading JSON out of free-form model answers."""

import json


def strip_json_fences(content: str) -> str:
    """Remove a markdown code fence (```json ... ```) wrapping the answer."""
    content = content.strip()
    if content.startswith("```"):
        first_newline = content.find("\n")
        content = content[first_newline + 1 :] if first_newline != -1 else content[3:]
        if content.rstrip().endswith("```"):
            content = content.rstrip()[:-3].rstrip()
    return content


def parse_json_object(content: str) -> dict | None:
    """Return the answer parsed as a JSON object, or None if it is not one."""
    try:
        parsed = json.loads(strip_json_fences(content))
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None
