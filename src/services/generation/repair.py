"""Bounded repair of model output before it is parsed as JSON.

Only three transformations are applied, in this order:

1. ``strip_code_fences``: unwrap a Markdown code fence around the document.
2. ``escape_control_characters``: escape raw control characters that appear
   inside string literals.
3. ``remove_trailing_commas``: drop commas directly followed by ``}`` or ``]``.

Anything else (truncated documents, unquoted keys, comments) is left alone and
fails to parse, which sends the slide down the fallback path.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from typing import Any

from services.generation.exceptions import JsonRepairError


_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
_OPEN_FENCE_RE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_CONTROL_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t"}


def strip_code_fences(text: str) -> str:
    """Return the body of the first fenced block, or the trimmed text."""
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    # An opening fence whose closing fence never arrived
    return _OPEN_FENCE_RE.sub("", text.strip(), count=1)


def escape_control_characters(text: str) -> str:
    out: list[str] = []
    in_string = False
    escape = False
    for char in text:
        if in_string:
            if escape:
                escape = False
            elif char == "\\":
                escape = True
            elif char == '"':
                in_string = False
            elif ord(char) < 0x20:
                out.append(_CONTROL_ESCAPES.get(char, f"\\u{ord(char):04x}"))
                continue
        elif char == '"':
            in_string = True
        out.append(char)
    return "".join(out)


def remove_trailing_commas(text: str) -> str:
    out: list[str] = []
    in_string = False
    escape = False
    length = len(text)
    for i, char in enumerate(text):
        if in_string:
            if escape:
                escape = False
            elif char == "\\":
                escape = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char == ",":
            j = i + 1
            while j < length and text[j].isspace():
                j += 1
            if j < length and text[j] in "}]":
                continue
        out.append(char)
    return "".join(out)


REPAIR_STEPS: tuple[Callable[[str], str], ...] = (
    strip_code_fences,
    escape_control_characters,
    remove_trailing_commas,
)


def repair_json(text: str) -> str:
    for step in REPAIR_STEPS:
        text = step(text)
    return text


def parse_repaired_json(text: str) -> Any:
    """Repair ``text`` and decode it.

    Raises:
        JsonRepairError: if the repaired text is still not valid JSON.
    """
    repaired = repair_json(text)
    if not repaired:
        raise JsonRepairError("Model returned an empty response")
    try:
        return json.loads(repaired)
    except json.JSONDecodeError as exc:
        raise JsonRepairError(
            f"Invalid JSON after repair at line {exc.lineno} column {exc.colno}"
        ) from exc
