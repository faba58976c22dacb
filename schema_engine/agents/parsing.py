"""Recover a JSON object from loosely formatted model text.

Two stages, each testable on its own:

1. ``locate_json`` finds candidate substrings, in this order: the body of a
   ```json fence, the body of any other fence, then balanced ``{...}`` spans
   found by a string-aware brace scan. At most ``MAX_CANDIDATES`` brace spans
   are collected and text longer than ``MAX_SCAN_CHARS`` is truncated before
   scanning, so the heuristic stays bounded on very long outputs.
2. ``parse_json_text`` strict-parses the candidates with ``json.loads`` and
   returns the first one that decodes to an object.
"""

import json
import re
from typing import Any

from schema_engine.core.errors import UnparsableOutputError

MAX_CANDIDATES = 8
MAX_SCAN_CHARS = 100_000

_JSON_FENCE_RE = re.compile(r"```json\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)
_ANY_FENCE_RE = re.compile(r"```[A-Za-z0-9_-]*\s*(.*?)\s*```", re.DOTALL)
_THINK_RE = re.compile(r"<think>.*?</think>", re.DOTALL)


# ── Stage 1: Locate ──────────────────────────────────────────────────


def locate_json(text: str) -> list[str]:
    """Return candidate JSON substrings in order of preference (may be empty)."""
    if not text or not text.strip():
        return []

    # Drafts inside <think> blocks are never candidates
    text = _THINK_RE.sub("", text)[:MAX_SCAN_CHARS]

    candidates: list[str] = []
    for pattern in (_JSON_FENCE_RE, _ANY_FENCE_RE):
        for match in pattern.finditer(text):
            body = match.group(1).strip()
            if body.startswith("{") and body not in candidates:
                candidates.append(body)

    stripped = text.strip()
    if stripped.startswith("{") and stripped not in candidates:
        candidates.append(stripped)

    for span in _brace_spans(text):
        if span not in candidates:
            candidates.append(span)
    return candidates


def _brace_spans(text: str) -> list[str]:
    """Outermost balanced ``{...}`` spans, ignoring braces inside strings.

    A ``{`` that never closes does not hide the objects after it: every
    closing brace pairs with the latest open one, and only spans not nested
    in another closed span are kept.
    """
    opened: list[int] = []
    closed: list[tuple[int, int]] = []
    in_string = False
    escaped = False

    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"' and opened:
            in_string = True
        elif ch == "{":
            opened.append(i)
        elif ch == "}" and opened:
            closed.append((opened.pop(), i + 1))

    spans: list[str] = []
    last_end = -1
    for start, end in sorted(closed, key=lambda s: (s[0], -s[1])):
        if start < last_end:
            continue
        spans.append(text[start:end])
        last_end = end
        if len(spans) >= MAX_CANDIDATES:
            break
    return spans


# ── Stage 2: Parse ───────────────────────────────────────────────────


def parse_json_text(text: str) -> dict[str, Any]:
    """Locate and strict-parse the first JSON object in ``text``.

    Raises UnparsableOutputError when no candidate decodes to an object.
    """
    candidates = locate_json(text)
    if not candidates:
        raise UnparsableOutputError("No JSON object found in model output", raw_output=text)

    last_error = "no candidate decoded to an object"
    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError as exc:
            last_error = f"{exc.msg} at line {exc.lineno} column {exc.colno}"
            continue
        if isinstance(parsed, dict):
            return parsed
        last_error = f"candidate decoded to {type(parsed).__name__}, not an object"

    raise UnparsableOutputError(
        f"Found {len(candidates)} JSON-like candidate(s) but none parsed: {last_error}",
        raw_output=text,
    )
