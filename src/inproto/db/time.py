"""Time utilities for database models."""

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


def isoformat(value: datetime | None) -> str | None:
    """Render a stored timestamp as ISO-8601 UTC with a trailing ``Z``."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utcnow_ms() -> datetime:
    """Return :func:`utcnow` truncated to the millisecond precision clients see."""
    now = utcnow()
    return now.replace(microsecond=now.microsecond - now.microsecond % 1000)
