"""
Robust JSON extraction for free-text model output.

Generative models wrap JSON in prose or markdown fences and emit near-miss
JSON (typographic quotes, trailing commas).  ``extract_json`` runs a fixed
ladder of parse attempts and returns the first value that genuinely parses
from the source text; it never invents a value.

Public API
----------
extract_json(raw)          -> Any            (raises NotJsonError)
normalize_json_candidate(raw) -> str
strip_code_fences(text)    -> str
find_balanced_slice(text, start) -> Optional[str]
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional, Tuple

from tcm_portal.services.errors import NotJsonError
from tcm_portal.utils.helpers import truncate_text

logger = logging.getLogger(__name__)

_SMART_DOUBLE_QUOTES = re.compile("[\u201c\u201d]")
_SMART_SINGLE_QUOTES = re.compile("[\u2018\u2019]")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")

_OPENERS = {"{": "}", "[": "]"}
_CLOSERS = frozenset("}]")


# ---------------------------------------------------------------------------
# Text clean-up
# ---------------------------------------------------------------------------

def normalize_json_candidate(raw: str) -> str:
    """BOM, smart quotes and trailing commas; then trim."""
    text = raw[1:] if raw.startswith("\ufeff") else raw
    text = _SMART_DOUBLE_QUOTES.sub('"', text)
    text = _SMART_SINGLE_QUOTES.sub("'", text)
    text = _TRAILING_COMMA.sub(r"\1", text)
    return text.strip()


def strip_code_fences(text: str) -> str:
    """Remove a leading ```json / ``` marker and a trailing ``` marker."""
    text = re.sub(r"^```json\s*", "", text, flags=re.IGNORECASE)
    text = re.sub(r"^```\s*", "", text)
    text = re.sub(r"```$", "", text)
    return text.strip()


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------

def _try_json(text: str) -> Tuple[bool, Any]:
    try:
        return True, json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return False, None


def find_balanced_slice(text: str, start: int) -> Optional[str]:
    """
    Return the span from the bracket at *start* to its matching closer.

    Brackets inside string literals are ignored (backslash escapes honoured).
    Returns None when a closer does not match the innermost opener, when a
    closer appears with nothing open, or when the text ends first.
    """
    stack = []
    in_string = False
    escaped = False

    for i in range(start, len(text)):
        ch = text[i]

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
            continue

        if ch in _OPENERS:
            stack.append(_OPENERS[ch])
            continue

        if ch in _CLOSERS:
            if not stack or stack[-1] != ch:
                return None
            stack.pop()
            if not stack:
                return text[start : i + 1]

    return None


def _scan_for_json(text: str) -> Tuple[bool, Any]:
    """First balanced ``{…}`` / ``[…]`` slice in *text* that parses."""
    for i, ch in enumerate(text):
        if ch not in _OPENERS:
            continue
        candidate = find_balanced_slice(text, i)
        if candidate is None:
            continue
        ok, value = _try_json(candidate)
        if ok:
            return True, value
    return False, None


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------

def extract_json(raw: str) -> Any:
    """
    Recover one JSON value from *raw* model output.

    Stages, first success wins:

    1. direct parse of the text as given (BOM removed)
    2. normalise (smart quotes, trailing commas); empty → ``{}``
    3. parse of the normalised text
    4. parse with markdown code fences stripped
    5. balanced-bracket scan over the fence-stripped text
    6. balanced-bracket scan over the un-fenced text

    Valid JSON is returned exactly as ``json.loads`` would parse it;
    normalisation only applies to text that fails the first parse.

    Raises:
        NotJsonError: carrying the original *raw* text.
    """
    text = raw or ""
    if text.startswith("\ufeff"):
        text = text[1:]
    ok, value = _try_json(text)
    if ok:
        return value

    normalized = normalize_json_candidate(text)
    if not normalized:
        return {}

    ok, value = _try_json(normalized)
    if ok:
        return value

    without_fences = strip_code_fences(normalized)
    if without_fences:
        ok, value = _try_json(without_fences)
        if ok:
            return value

    scan_source = without_fences or normalized
    ok, value = _scan_for_json(scan_source)
    if ok:
        return value

    if scan_source != normalized:
        ok, value = _scan_for_json(normalized)
        if ok:
            return value

    logger.warning(
        "extract_json: all strategies failed. Preview: %s", truncate_text(raw or "", 400)
    )
    raise NotJsonError(raw_text=raw)
