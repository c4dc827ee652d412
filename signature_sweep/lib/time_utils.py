"""Shared time helpers."""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Union

__all__ = ["parse_timestamp", "format_timestamp", "utc_isoformat"]

# fromisoformat before 3.11 only takes 3 or 6 fraction digits.
_FRACTION = re.compile(r"(T\d{2}:\d{2}:\d{2})\.(\d+)")


def utc_isoformat() -> str:
    """Return the current UTC timestamp as an ISO string with 'Z' suffix."""
    return format_timestamp(datetime.now(timezone.utc))


def format_timestamp(value: datetime) -> str:
    """ISO-8601 in UTC with a 'Z' suffix, e.g. ``2024-01-05T10:00:00Z``."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _six_digit_fraction(match: re.Match) -> str:
    return f"{match.group(1)}.{match.group(2)[:6].ljust(6, '0')}"


def parse_timestamp(value: Union[str, datetime, date]) -> datetime:
    """Parse an ISO-8601 value into a timezone-aware UTC datetime.

    Naive values are taken to be UTC. Accepts ``Z`` suffixes and plain dates.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        text = _FRACTION.sub(_six_digit_fraction, text, count=1)
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValueError(f"Not an ISO-8601 timestamp: {value!r}") from None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
