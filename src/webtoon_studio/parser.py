"""Helpers for text sent to, and JSON read back from, language models."""
from __future__ import annotations

import json
import re
from typing import Any, Literal

MAX_SCAN_CHARS = 200_000

_PUNCTUATION_MAP = [
    (re.compile(r"[\u2010-\u2015]"), "-"),
    (re.compile(r"[\u2018\u2019\u201A\u201B\u2039\u203A]"), "'"),
    (re.compile(r"[\u201C-\u201F\u2033\u2036\u00AB\u00BB]"), '"'),
    (re.compile(r"\u2026"), "..."),
    (re.compile(r"[\u00A0\u2000-\u200B\u2028\u2029]"), " "),
]
_BULLETS = re.compile(r"[\u2022\u00B7\u2023\u2043]")
_MARKS = re.compile(r"[\u00A9\u00AE\u2122]")
_NON_PRINTABLE_ASCII = re.compile(r"[^\x20-\x7E]")
_WHITESPACE = re.compile(r"\s+")
_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)

FailureReason = Literal["empty", "invalid_json", "invalid_shape"]


class LLMOutputError(ValueError):
    """The model answered, but not with the JSON we asked for."""

    def __init__(self, reason: FailureReason, message: str, raw: str | None = None) -> None:
        super().__init__(message)
        self.reason = reason
        self.raw = raw


def sanitize_prompt_text(text: str | None) -> str:
    """Normalise typographic punctuation and collapse whitespace."""
    if not text:
        return ""
    out = text
    for pattern, replacement in _PUNCTUATION_MAP:
        out = pattern.sub(replacement, out)
    return _WHITESPACE.sub(" ", out).strip()


def sanitize_ascii(text: str | None) -> str:
    """Like :func:`sanitize_prompt_text` but drops everything outside printable ASCII."""
    if not text:
        return ""
    out = sanitize_prompt_text(text)
    out = _BULLETS.sub("*", out)
    out = _MARKS.sub("", out)
    out = _NON_PRINTABLE_ASCII.sub("", out)
    return _WHITESPACE.sub(" ", out).strip()


def find_json_object(text: str) -> str | None:
    """Return the first balanced ``{...}`` block, honouring JSON string escapes."""
    start = text.find("{")
    if start < 0:
        return None
    depth = 0
    in_string = False
    escaped = False
    end_limit = min(len(text), start + MAX_SCAN_CHARS)
    for index in range(start, end_limit):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return None


def parse_json(text: str | None) -> Any | None:
    """Strict parse, then fenced block, then first balanced object; ``None`` if all fail."""
    if not text or not text.strip():
        return None
    trimmed = text.strip()
    try:
        return json.loads(trimmed)
    except json.JSONDecodeError:
        pass
    fenced = _FENCE.search(trimmed)
    candidate = fenced.group(1).strip() if fenced else trimmed
    if fenced:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            pass
    block = find_json_object(candidate)
    if block is None:
        return None
    try:
        return json.loads(block)
    except json.JSONDecodeError:
        return None


def parse_json_object(text: str | None) -> dict[str, Any]:
    """Parse a JSON object out of a model reply or raise :class:`LLMOutputError`."""
    if not text or not text.strip():
        raise LLMOutputError("empty", "No response from model")
    parsed = parse_json(text)
    if parsed is None:
        raise LLMOutputError("invalid_json", "Invalid JSON from model", raw=text)
    if not isinstance(parsed, dict):
        raise LLMOutputError("invalid_shape", "Model returned JSON that is not an object", raw=text)
    return parsed


def coerce_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return str(value).strip()
