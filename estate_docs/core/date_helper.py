from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    # Stored timestamps are naive UTC.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def add_days(start: datetime, days: int) -> datetime:
    return start + timedelta(days=days)


def whole_days_between(start: datetime, end: datetime) -> int:
    """Whole days from start to end, truncated toward zero."""
    seconds = (as_naive_utc(end) - as_naive_utc(start)).total_seconds()
    return int(seconds / 86400)
