from datetime import datetime, timezone


def utcnow() -> datetime:
    # stored as naive UTC, same as the DateTime columns
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(dt):
    if dt is None:
        return None
    if dt.tzinfo:
        return dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def isoformat_or_none(dt):
    return dt.isoformat() if dt else None
