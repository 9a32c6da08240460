"""Civil-day normalization for attendance records.

Every place that turns an instant into an attendance day goes through
``day_key``. The reference zone is UTC and never the caller's local clock, so
two requests made on the same UTC date from different client zones always
land on the same ``(user_id, day_key)`` row.
"""

from __future__ import annotations

from datetime import date, datetime, timezone


def normalize_ts(ts_utc: datetime) -> datetime:
    if not isinstance(ts_utc, datetime):
        raise TypeError(f"Expected datetime, got {type(ts_utc).__name__}")

    if ts_utc.tzinfo is None:
        return ts_utc.replace(tzinfo=timezone.utc)

    return ts_utc.astimezone(timezone.utc)


def day_key(ts: datetime) -> date:
    return normalize_ts(ts).date()


def coerce_day_key(value: date | datetime) -> date:
    # datetime is a subclass of date, so it must be checked first
    if isinstance(value, datetime):
        return day_key(value)
    if isinstance(value, date):
        return value
    raise TypeError(f"Expected date or datetime, got {type(value).__name__}")


def day_key_range(start: date | datetime, end: date | datetime) -> tuple[date, date]:
    start_key = coerce_day_key(start)
    end_key = coerce_day_key(end)
    if end_key < start_key:
        raise ValueError("Range end must not precede range start.")
    return start_key, end_key
