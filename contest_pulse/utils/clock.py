from datetime import datetime, timezone


def utc_now() -> datetime:
    """Naive UTC timestamp; every datetime stored by the project is naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
