"""Lenient JSON parsing for model output.

Models asked for JSON routinely return something close to it instead:

  ```json                      <- markdown code fence
  Here is your quiz:           <- prose around the payload
  [{title: "Q1", ...},]        <- unquoted keys, trailing commas

repair_json() undoes exactly those three things and nothing else.  The
payload is tried as-is first; the repair pass only runs when strict
parsing fails, so valid JSON is never rewritten.

The repair pass is a small scanner rather than a regex so that text
inside string values (which may legitimately contain "{a: 1,}") is
never touched.
"""

from __future__ import annotations

import json
import re
from typing import Any

from app.core.errors import ParseError

# A fence either wraps the whole output or opens on its own line after
# prose.  Backticks inside JSON string values never match either form.
_WRAPPING_FENCE = re.compile(r"^\s*```[a-zA-Z]*[ \t]*\n?(.*?)```\s*$", re.DOTALL)
_LINE_FENCE = re.compile(r"(?:^|\n)```[a-zA-Z]*[ \t]*\n(.*?)\n```", re.DOTALL)
_IDENT_START = re.compile(r"[A-Za-z_$]")
_IDENT_CHAR = re.compile(r"[A-Za-z0-9_$]")

_CLOSERS = {"[": "]", "{": "}"}


def strip_code_fence(text: str) -> str:
    """Return the body of the first fenced block, or `text` unchanged."""
    match = _WRAPPING_FENCE.match(text) or _LINE_FENCE.search(text)
    if match:
        return match.group(1)
    # An opening fence whose closing fence was cut off.
    stripped = text.strip()
    if stripped.startswith("```"):
        return re.sub(r"^```[a-zA-Z]*\s*", "", stripped)
    return text


def extract_payload(text: str) -> str:
    """Slice from the first [ or { to its last matching closer."""
    starts = [i for i in (text.find("["), text.find("{")) if i != -1]
    if not starts:
        raise ParseError("No JSON array or object in model output")
    start = min(starts)
    end = text.rfind(_CLOSERS[text[start]])
    if end < start:
        raise ParseError("Unterminated JSON in model output")
    return text[start : end + 1]


def _skip_ws(text: str, i: int) -> int:
    while i < len(text) and text[i].isspace():
        i += 1
    return i


def normalize(text: str) -> str:
    """Quote bare object keys and drop trailing commas, outside strings."""
    out: list[str] = []
    i = 0
    n = len(text)
    in_string = False
    expect_key = False

    while i < n:
        ch = text[i]

        if in_string:
            out.append(ch)
            if ch == "\\" and i + 1 < n:
                out.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_string = False
            i += 1
            continue

        if ch == '"':
            in_string = True
            expect_key = False
            out.append(ch)
            i += 1
            continue

        if ch == ",":
            j = _skip_ws(text, i + 1)
            if j < n and text[j] in "]}":
                i += 1  # trailing comma
                continue
            out.append(ch)
            expect_key = True
            i += 1
            continue

        if ch == "{":
            out.append(ch)
            expect_key = True
            i += 1
            continue

        if expect_key and _IDENT_START.match(ch):
            j = i
            while j < n and _IDENT_CHAR.match(text[j]):
                j += 1
            k = _skip_ws(text, j)
            if k < n and text[k] == ":":
                out.append(f'"{text[i:j]}"')
            else:
                # a bare literal such as true/null inside an array
                out.append(text[i:j])
            expect_key = False
            i = j
            continue

        if not ch.isspace():
            expect_key = False
        out.append(ch)
        i += 1

    return "".join(out)


def repair_json(text: str) -> Any:
    """Parse model output that is JSON or nearly JSON.

    Raises ParseError (code "parse_error") when the output cannot be
    repaired.
    """
    if not text or not text.strip():
        raise ParseError("Model output is empty")

    try:
        return json.loads(text.strip())
    except json.JSONDecodeError:
        pass

    payload = extract_payload(strip_code_fence(text))
    try:
        return json.loads(payload)
    except json.JSONDecodeError:
        pass

    fixed = normalize(payload)
    try:
        return json.loads(fixed)
    except json.JSONDecodeError as e:
        raise ParseError(
            f"Model output is not valid JSON: {e.msg}",
            details={"line": e.lineno, "column": e.colno},
        ) from None
