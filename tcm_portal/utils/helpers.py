"""
Common utility functions and helpers.
"""
from datetime import datetime
from typing import Any, Optional
import json


PLACEHOLDER = "—"


def normalize_text(value: Any) -> str:
    """
    Coerce any JSON-ish value to a trimmed display string.

    Args:
        value: Raw value from a parsed model response

    Returns:
        ``""`` for None, otherwise the printable form of *value*
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value).strip()


def is_blank(value: Any) -> bool:
    """True for empty strings and the placeholder marker."""
    text = normalize_text(value)
    return text == "" or text == PLACEHOLDER


def export_filename(now: Optional[datetime] = None, prefix: str = "tcm-report") -> str:
    """
    Build a timestamped PDF filename, e.g. ``tcm-report-20260301-093005.pdf``.

    Args:
        now: Timestamp to use (defaults to local time)
        prefix: Filename prefix

    Returns:
        Filename string
    """
    now = now or datetime.now()
    return f"{prefix}-{now:%Y%m%d}-{now:%H%M%S}.pdf"


def truncate_text(text: str, max_length: int = 200, suffix: str = "...") -> str:
    """
    Truncate text to maximum length.

    Args:
        text: Text to truncate
        max_length: Maximum length
        suffix: Suffix to add if truncated

    Returns:
        Truncated text
    """
    if len(text) <= max_length:
        return text
    return text[:max_length - len(suffix)] + suffix
