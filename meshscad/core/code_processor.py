"""
Response parsing and OpenSCAD source utilities.

All functions here are pure/stateless.
"""

from __future__ import annotations

import json
import re

_FENCE_LANGS = ("openscad", "scad", "json")

_MODULE_RE = re.compile(r"^\s*module\s+([A-Za-z_]\w*)\s*\(", re.MULTILINE)
_FUNCTION_RE = re.compile(r"^\s*function\s+([A-Za-z_]\w*)\s*\(", re.MULTILINE)


class ResponseParseError(ValueError):
    pass


# ---------------------------------------------------------------------------
# Code extraction: pull source out of markdown fences or raw output
# ---------------------------------------------------------------------------

def extract_code(raw: str) -> str:
    for lang in _FENCE_LANGS:
        marker = f"```{lang}"
        if marker in raw:
            return raw.split(marker, 1)[1].split("```", 1)[0].strip()
    if "```" in raw:
        return raw.split("```", 1)[1].split("```", 1)[0].strip()
    return raw.strip()


# ---------------------------------------------------------------------------
# Structured answer: {"code": ..., "explanation": ...}
# ---------------------------------------------------------------------------

def parse_generation(raw: str) -> tuple[str, str]:
    """Return ``(code, explanation)`` from a model answer.

    Accepts bare JSON, JSON inside a fence, or a plain fenced code block
    (explanation is then whatever text precedes the fence).
    """
    if not raw or not raw.strip():
        raise ResponseParseError("Empty model response")

    text = raw.strip()
    candidates = [text]
    if "```" in text:
        candidates.append(extract_code(text))
    start, end = text.find("{"), text.rfind("}")
    if 0 <= start < end:
        candidates.append(text[start:end + 1])

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict) and isinstance(data.get("code"), str):
            code = data["code"].strip()
            if not code:
                raise ResponseParseError("Model returned an empty 'code' field")
            return code, str(data.get("explanation") or "").strip()

    if "```" in text:
        code = extract_code(text)
        if code:
            return code, text.split("```", 1)[0].strip()

    raise ResponseParseError("Model response has no code")


def extract_modules(code: str) -> list[str]:
    """Names of user-defined OpenSCAD modules, in source order."""
    return _MODULE_RE.findall(code)


def extract_functions(code: str) -> list[str]:
    return _FUNCTION_RE.findall(code)
