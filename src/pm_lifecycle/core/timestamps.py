"""Timestamp parsing utilities for snapshot files and CLI arguments."""

from datetime import UTC, datetime


def parse_timestamp(value: str | int | float) -> int:
    """Parse a date string or raw number into a Unix timestamp.

    Accept ISO 8601 strings (``2024-01-01``, ``2024-01-01T12:00:00``,
    ``2024-01-01T12:00:00Z``, ``2024-01-01T12:00:00.000+00:00``) or raw
    Unix timestamps. Numbers larger than ``10**11`` are treated as
    milliseconds. Naive datetimes are interpreted as UTC.

    Args:
        value: Date string or numeric timestamp.

    Returns:
        Unix timestamp in seconds.

    Raises:
        ValueError: If the value cannot be parsed.

    """
    if isinstance(value, int | float):
        return _normalise_epoch(int(value))

    text = value.strip()
    try:
        return _normalise_epoch(int(text))
    except ValueError:
        pass

    iso = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        dt = datetime.fromisoformat(iso)
    except ValueError:
        msg = f"Cannot parse timestamp: {value!r}. Use ISO 8601 (YYYY-MM-DD) or a Unix timestamp."
        raise ValueError(msg) from None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return int(dt.timestamp())


def _normalise_epoch(value: int) -> int:
    """Convert millisecond epochs to seconds, leaving second epochs untouched."""
    if value > 10**11:
        return value // 1000
    return value


def format_timestamp(value: int) -> str:
    """Render a Unix timestamp as an ISO 8601 UTC string."""
    return datetime.fromtimestamp(value, tz=UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
