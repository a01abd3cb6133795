# src/kgr_leaderboard/db/time.py
"""Time helpers shared by the models and the ledger verifier."""

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops the offset) and normalise aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_ledger_timestamp(raw: object) -> datetime | None:
    """Parse a Horizon ``created_at`` value such as ``2024-05-01T12:00:00Z``.

    Returns ``None`` when the value is missing or not an ISO-8601 timestamp.
    """
    if not isinstance(raw, str) or not raw:
        return None
    text = raw.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def to_iso_z(value: datetime) -> str:
    """Format a timestamp as ISO-8601 UTC with millisecond precision and a ``Z`` suffix."""
    return as_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")
