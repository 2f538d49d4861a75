"""Argument helpers shared by the tool domains."""

from datetime import datetime, timezone
from typing import Any

MAX_LIMIT = 100


def clamp_limit(value: Any, maximum: int = MAX_LIMIT) -> int | None:
    """
    Page size for a list call: None when not given, otherwise within 1..maximum.

    The backend applies its own default when the parameter is omitted.
    """
    if value is None or value == "":
        return None
    return max(1, min(int(value), maximum))


def flag(value: Any) -> str | None:
    """Boolean tool argument -> "true" query parameter, or omitted."""
    return "true" if value else None


def to_timestamp_ms(value: str) -> int:
    """
    ISO-8601 date/time -> epoch milliseconds, as the backend stores dates.

    Values without an offset ("2026-05-01", "2026-05-01T09:00") are UTC.
    """
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)
