"""Datetime parsing: lax input -> strict output."""

from __future__ import annotations

from datetime import UTC, datetime

import pendulum

from objcatalog.models.catalog import EPOCH


def parse_datetime(value: str | datetime | None, default_tz: str = "UTC") -> datetime:
    """Parse a remote-reported timestamp into a timezone-aware datetime.

    Accepts datetimes (naive ones get ``default_tz``) and ISO 8601 strings.
    ``None`` maps to the Unix epoch, the catalog default for objects without a
    reported modification time.
    """
    if value is None:
        return EPOCH

    if isinstance(value, datetime):
        if value.tzinfo is None:
            tz = pendulum.timezone(default_tz)
            value = value.replace(tzinfo=tz)  # type: ignore[arg-type]
        return value

    value_str = value.strip()
    try:
        parsed = pendulum.parse(value_str, tz=default_tz, strict=False)
    except ValueError as exc:
        # pendulum.ParserError subclasses ValueError
        raise ValueError(f"Invalid datetime: {value!r}") from exc
    if not isinstance(parsed, pendulum.DateTime):
        # pendulum.parse returns Date for date-only strings
        parsed = pendulum.datetime(
            parsed.year, parsed.month, parsed.day, tz=default_tz  # type: ignore[union-attr]
        )
    return parsed  # type: ignore[return-value]


def now_utc() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(UTC)


def format_iso(dt: datetime) -> str:
    """Format datetime as ISO 8601 for JSON serialization.

    SQLite hands timestamps back without tzinfo; they are stored as UTC.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.isoformat()
