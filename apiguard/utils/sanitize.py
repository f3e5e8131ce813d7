"""Sanitizers for client-controlled strings before they reach the logs."""

from __future__ import annotations

import re

# C0/C1 controls, DEL, line/paragraph separators, bidi overrides and BOM.
CONTROL_CHARS_RE = re.compile(
    r"[\x00-\x1f\x7f-\x9f\u2028\u2029\u200b-\u200f\u202a-\u202e\u2066-\u2069\ufeff]"
)


def strip_control_chars(value: str) -> str:
    """Strip all control characters from a string."""
    return CONTROL_CHARS_RE.sub("", value)


def for_log(value: str | None, max_length: int = 256) -> str:
    """Control-char-free, truncated copy of ``value`` (empty string for None)."""
    if not value:
        return ""
    return strip_control_chars(value)[:max_length]
