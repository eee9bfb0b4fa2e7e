"""Centralized datetime utilities for consistent timezone handling.

All functions return naive UTC datetimes for database compatibility
(SQLAlchemy models use naive UTC). GitHub expects ISO-8601 with a "Z" suffix,
see ``to_github_timestamp``.

Usage:
    from app.core.datetime_utils import utc_now, get_cutoff

    cutoff = get_cutoff(hours=24)
    stale = [job for job in jobs if job.completed_at < cutoff]
"""

from datetime import UTC, datetime, timedelta


def utc_now() -> datetime:
    """Get current UTC time as naive datetime.

    Returns naive datetime for database compatibility.
    Replaces deprecated datetime.utcnow().
    """
    return datetime.now(UTC).replace(tzinfo=None)


def get_cutoff(hours: int = 0, days: int = 0) -> datetime:
    """Get cutoff datetime for filtering queries.

    Args:
        hours: Hours to subtract from now
        days: Days to subtract from now

    Returns:
        Naive UTC datetime representing the cutoff point
    """
    delta = timedelta(hours=hours, days=days)
    return utc_now() - delta


def to_naive_utc(dt: datetime) -> datetime:
    """Convert a datetime to naive UTC.

    Args:
        dt: Datetime to convert (can be aware or naive)

    Returns:
        Naive UTC datetime for database compatibility
    """
    if dt.tzinfo is None:
        # Already naive, assume it's UTC
        return dt
    # Convert to UTC and strip timezone
    return dt.astimezone(UTC).replace(tzinfo=None)


def to_github_timestamp(dt: datetime) -> str:
    """Format a datetime as the ISO-8601 UTC string GitHub's API expects."""
    return to_naive_utc(dt).replace(microsecond=0).isoformat() + "Z"


def to_iso_utc(dt: datetime | None) -> str | None:
    """Format a naive UTC datetime for JSON payloads (webhooks, API)."""
    if dt is None:
        return None
    return to_naive_utc(dt).isoformat() + "Z"
