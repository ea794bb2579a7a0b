"""Coarsening helpers for quotes and timestamps shown outside the gate.

Exact times and long numbers help an admin triangulate who wrote a quote,
so digests and exports blur them: quotes lose weekdays, clock times, dates
and big numbers; timestamps are rounded to the day or hour.
"""

from __future__ import annotations

import re
from datetime import UTC, date, datetime

DEFAULT_QUOTE_MAX_LENGTH = 240

_WEEKDAY_TIME = re.compile(
    r"\b(?:(?:mon|tues|wednes|thurs|fri|satur|sun)day|tues|thurs)\b"
    r"(?:\s+(?:at\s+)?\d{1,2}(?::\d{2})?\s*(?:am|pm)?\b)?",
    re.IGNORECASE,
)
_CLOCK_TIME = re.compile(r"\b\d{1,2}:\d{2}\s*(?:am|pm)?\b", re.IGNORECASE)
_FULL_DATE = re.compile(r"\b(?:19|20)\d{2}[-/.]\d{1,2}[-/.]\d{1,2}\b")
_BIG_NUMBER = re.compile(r"\b\d{4,}\b")
_WHITESPACE = re.compile(r"\s+")


def prep_quote(text: str | None, max_length: int = DEFAULT_QUOTE_MAX_LENGTH) -> str:
    """Lightly coarsen a quote for digest or theme display.

    - Weekdays (with an optional time) become "earlier this week"
    - Stray clock times become "at some point"
    - Full dates become "recently"
    - Numbers of 4+ digits are masked ("12345" -> "≈xxxxx")
    - Whitespace is collapsed and the result capped at max_length

    The input is expected to be sanitized already; this is not a PII filter.
    """
    if not text:
        return ""
    result = _WEEKDAY_TIME.sub("earlier this week", text)
    result = _CLOCK_TIME.sub("at some point", result)
    result = _FULL_DATE.sub("recently", result)
    result = _BIG_NUMBER.sub(lambda m: "≈" + "x" * len(m.group()), result)
    result = _WHITESPACE.sub(" ", result).strip()
    if len(result) > max_length:
        result = result[: max_length - 1] + "…"
    return result


def _as_utc(timestamp: datetime | date | str) -> datetime:
    if isinstance(timestamp, str):
        timestamp = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    if isinstance(timestamp, datetime):
        if timestamp.tzinfo is None:
            return timestamp.replace(tzinfo=UTC)
        return timestamp.astimezone(UTC)
    return datetime(timestamp.year, timestamp.month, timestamp.day, tzinfo=UTC)


def round_to_day(timestamp: datetime | date | str | None) -> str | None:
    """Round a timestamp to its UTC day, e.g. ``"2026-10-19"``."""
    if timestamp is None or timestamp == "":
        return None
    return _as_utc(timestamp).strftime("%Y-%m-%d")


def round_to_hour(timestamp: datetime | date | str | None) -> str | None:
    """Round a timestamp to its UTC hour, e.g. ``"2026-10-19 14:00"``."""
    if timestamp is None or timestamp == "":
        return None
    return _as_utc(timestamp).strftime("%Y-%m-%d %H:00")
