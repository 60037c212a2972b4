"""Plain-text sanitizer for externally sourced feed text."""

from __future__ import annotations

import re
from datetime import datetime
from html import unescape
from typing import Optional

from dateutil import parser as dtparse

MAX_TEXT_LENGTH = 10_000
ELLIPSIS = "..."

_TAG_RE = re.compile(r"<[^>]+>")
_SCRIPT_VECTOR_RES = (
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"</script>", re.IGNORECASE),
)
_WS_RE = re.compile(r"\s+")
# decoding can reveal new markup (&lt;b&gt;) and scrubbing can splice new
# vectors together, so passes repeat until nothing changes
_MAX_PASSES = 8

_DATE_DEFAULTS = (datetime(2000, 1, 1), datetime(2001, 2, 2))


def _single_pass(text: str) -> str:
    text = _TAG_RE.sub("", text)
    text = unescape(text)
    for pattern in _SCRIPT_VECTOR_RES:
        text = pattern.sub("", text)
    return text


def sanitize_text(raw: Optional[str]) -> str:
    """Strip markup, decode entities and cap length. Never raises.

    The result of one call is a fixed point: sanitizing it again removes
    nothing, as long as it was not truncated.
    """
    if not raw:
        return ""
    text = str(raw)
    for _ in range(_MAX_PASSES):
        cleaned = _single_pass(text)
        if cleaned == text:
            break
        text = cleaned
    text = _WS_RE.sub(" ", text).strip()
    if len(text) > MAX_TEXT_LENGTH:
        text = text[:MAX_TEXT_LENGTH] + ELLIPSIS
    return text


def safe_date(value: Optional[str]) -> str:
    """Render a feed date as ``dd/mm/yyyy``; empty string when unparseable.

    Fragments such as ``"Monday"`` or ``"May 2024"`` are rejected: the value
    must carry its own day, month and year.
    """
    if not value or not str(value).strip():
        return ""
    try:
        first = dtparse.parse(str(value), default=_DATE_DEFAULTS[0])
        second = dtparse.parse(str(value), default=_DATE_DEFAULTS[1])
    except (ValueError, OverflowError, TypeError):
        return ""
    # any field taken from the defaults differs between the two parses
    if first.date() != second.date():
        return ""
    return first.strftime("%d/%m/%Y")


def parse_display_date(value: Optional[str]) -> Optional[datetime]:
    """Inverse of :func:`safe_date`; ``None`` for missing or malformed values."""
    if not value:
        return None
    try:
        return datetime.strptime(value.strip(), "%d/%m/%Y")
    except ValueError:
        return None
