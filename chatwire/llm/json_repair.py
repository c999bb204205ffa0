"""
Best-effort recovery of truncated or malformed JSON.

Models occasionally stream tool-call arguments that are cut short or written
in a JavaScript-ish dialect (bare keys, trailing commas).  ``safe_parse_json``
first tries a strict parse; only when that fails does it run a *single*
repair pass and try once more:

  1. Close every ``{`` / ``[`` still open at the end of the input.
  2. Drop trailing commas that sit directly before ``}`` or ``]``.
  3. Quote bare object keys that follow ``{``, ``,`` or whitespace.

Repairs only touch text outside string literals.  Input that already parses
is never rewritten.
"""

from __future__ import annotations

import json
import re
from typing import Any, Iterator

PREVIEW_LIMIT = 100

_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_BARE_KEY = re.compile(r"(\{|\s|,)(\w+)(\s*):")
_CLOSERS = {"{": "}", "[": "]"}


class JsonParseError(ValueError):
    """Raised when JSON cannot be parsed even after repair."""

    def __init__(self, preview: str, message: str) -> None:
        self.preview = preview
        self.message = message
        super().__init__(
            "Failed to parse JSON after repair attempts. "
            f"Original error: {message}. Preview: {preview!r}"
        )


def make_preview(text: str, limit: int = PREVIEW_LIMIT) -> str:
    if len(text) > limit:
        return text[:limit] + "..."
    return text


def safe_parse_json(text: str) -> Any:
    """
    Parse *text* as JSON, repairing it once if the strict parse fails.

    Raises ``JsonParseError`` carrying a bounded preview of the input and the
    first parser error message.  Non-string input is rejected outright.
    """
    if not isinstance(text, str):
        raise JsonParseError(
            make_preview(repr(text)), f"expected a JSON string, got {type(text).__name__}"
        )
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        first_error = exc

    repaired = repair_json(text)
    try:
        return json.loads(repaired)
    except json.JSONDecodeError:
        raise JsonParseError(make_preview(text), str(first_error)) from first_error


def repair_json(text: str) -> str:
    """Apply one pass of the repair heuristics to *text* and return the result."""
    repaired = text.strip()

    # 1. close unmatched brackets, innermost first
    stack: list[str] = []
    for in_string, chunk in _segments(repaired):
        if in_string:
            continue
        for ch in chunk:
            if ch in _CLOSERS:
                stack.append(ch)
            elif ch in "}]" and stack and _CLOSERS[stack[-1]] == ch:
                stack.pop()
    repaired += "".join(_CLOSERS[ch] for ch in reversed(stack))

    # 2 + 3. trailing commas and bare keys, outside string literals only
    out: list[str] = []
    for in_string, chunk in _segments(repaired):
        if not in_string:
            chunk = _TRAILING_COMMA.sub(r"\1", chunk)
            chunk = _BARE_KEY.sub(r'\1"\2"\3:', chunk)
        out.append(chunk)
    return "".join(out)


def _segments(text: str) -> Iterator[tuple[bool, str]]:
    """Split *text* into alternating (in_string, chunk) runs."""
    start = 0
    i = 0
    in_string = False
    n = len(text)
    while i < n:
        ch = text[i]
        if in_string:
            if ch == "\\":
                i += 2
                continue
            if ch == '"':
                yield True, text[start : i + 1]
                start = i + 1
                in_string = False
        elif ch == '"':
            if i > start:
                yield False, text[start:i]
            start = i
            in_string = True
        i += 1
    if start < n:
        yield in_string, text[start:]
