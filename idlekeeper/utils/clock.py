"""
Time helpers.

Timestamps are stored as naive UTC datetimes (SQLite drops tzinfo on the way
back), so everything that compares against stored values goes through utcnow().
"""
from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def ms_to_timedelta(value) -> timedelta:
    """Convert a millisecond count (int or numeric string) to a timedelta."""
    return timedelta(milliseconds=int(value))


def format_duration(delta: timedelta) -> str:
    """Human-readable duration used in member-facing copy, e.g. '10 days'."""
    seconds = int(delta.total_seconds())
    if seconds % 86400 == 0 and seconds >= 86400:
        days = seconds // 86400
        return f'{days} day' if days == 1 else f'{days} days'
    if seconds % 3600 == 0 and seconds >= 3600:
        hours = seconds // 3600
        return f'{hours} hour' if hours == 1 else f'{hours} hours'
    if seconds % 60 == 0 and seconds >= 60:
        minutes = seconds // 60
        return f'{minutes} minute' if minutes == 1 else f'{minutes} minutes'
    return f'{seconds} seconds'
