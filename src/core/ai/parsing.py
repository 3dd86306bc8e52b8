"""
src/core/ai/parsing.py
======================
Tagged parsing of JSON embedded in completion text.

Models often wrap JSON in markdown fences or surround it with prose.
``parse_json_object`` / ``parse_json_array`` return ``Ok(value)`` when a
value of the expected shape could be decoded and ``Malformed`` otherwise;
call sites decide their own fallback.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_BARE_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_][A-Za-z0-9_]*)(\s*:)")
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True, slots=True)
class Malformed:
    raw_text: str
    reason: str


Parsed = Ok[T] | Malformed


def _candidates(text: str, open_char: str, close_char: str) -> list[str]:
    found = [m.group(1).strip() for m in _FENCE_RE.finditer(text)]
    start = text.find(open_char)
    end = text.rfind(close_char)
    # Arrays nested in a bare object are not the answer
    nested = open_char == "[" and text.lstrip().startswith("{")
    if start != -1 and end > start and not nested:
        found.append(text[start:end + 1])
    found.append(text.strip())
    return found


def _cleanup(snippet: str) -> str:
    snippet = _BARE_KEY_RE.sub(r'\1"\2"\3', snippet)
    return _TRAILING_COMMA_RE.sub(r"\1", snippet)


def _decode(text: str, expected: type, open_char: str, close_char: str) -> Parsed[Any]:
    if not text or not text.strip():
        return Malformed(text or "", "empty response")

    for snippet in _candidates(text, open_char, close_char):
        for attempt in (snippet, _cleanup(snippet)):
            try:
                value = json.loads(attempt)
            except json.JSONDecodeError:
                continue
            if isinstance(value, expected):
                return Ok(value)
    return Malformed(text, f"no JSON {expected.__name__} found")


def parse_json_object(text: str) -> Parsed[dict[str, Any]]:
    return _decode(text, dict, "{", "}")


def parse_json_array(text: str) -> Parsed[list[Any]]:
    return _decode(text, list, "[", "]")
