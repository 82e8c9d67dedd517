from datetime import datetime, timezone


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime, the way SQLite stores it."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc_naive(moment: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC already."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)
