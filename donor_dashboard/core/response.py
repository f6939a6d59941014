"""Boundary formatting helpers shared by the JSON and CSV surfaces."""


from datetime import datetime, timezone


def money(value: float | None) -> str:
    """Two-decimal string for a monetary float. Only call at the response boundary."""
    return f"{(value or 0.0):.2f}"


def percent(value: float) -> float:
    return round(value, 1)


def to_naive_utc(value: datetime | None) -> datetime | None:
    """Normalize timestamps read from different backends to naive UTC.

    SQLite hands back naive datetimes while Postgres returns aware ones;
    in-memory sorting and bucketing needs a single form.
    """
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)
