from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands DateTime(timezone=True) columns back naive
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def from_epoch_millis(millis: int | float) -> datetime:
    return datetime.fromtimestamp(int(millis) / 1000, tz=timezone.utc)


def to_epoch_seconds(value: datetime) -> int:
    return int(as_utc(value).timestamp())
