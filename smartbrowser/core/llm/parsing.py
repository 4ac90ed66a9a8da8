"""Best-effort JSON extraction from model replies.

Models are asked for a single JSON object but routinely wrap it in prose
or markdown fences.  :func:`extract_json` pulls out the first balanced
``{...}`` block; braces that appear inside string literals are ignored so
a reply such as ``{"summary": "use {x} here"}`` is still read correctly.
"""

from __future__ import annotations

import json
import re

_FENCE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?```", re.DOTALL)


def find_json_object(text: str) -> str | None:
    """Return the first balanced ``{...}`` substring of *text*, or ``None``."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for idx in range(start, len(text)):
            ch = text[idx]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start : idx + 1]
        # Unbalanced from this brace; try the next one.
        start = text.find("{", start + 1)
    return None


def extract_json(text: str) -> dict:
    """Parse the first JSON object found in *text*.

    Raises :class:`json.JSONDecodeError` when nothing parseable is found,
    or when the top-level value is not an object.
    """
    text = (text or "").strip()
    candidates: list[str] = [text]

    fenced = _FENCE.search(text)
    if fenced:
        candidates.append(fenced.group(1).strip())

    block = find_json_object(text)
    if block:
        candidates.append(block)

    for candidate in candidates:
        try:
            value = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(value, dict):
            return value

    raise json.JSONDecodeError("No JSON object found in response", text, 0)
