"""
Calendar-day arithmetic in the team's fixed UTC+9 timezone.

Every time-windowed query goes through here so that "today" means the same
thing regardless of the server's local timezone. There is no DST: the offset
is a constant 540 minutes.
"""
from datetime import date, datetime, time, timedelta, timezone

from fastapi import HTTPException, status

UTC_OFFSET_MINUTES = 540
LOCAL_TZ = timezone(timedelta(minutes=UTC_OFFSET_MINUTES), "UTC+09:00")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(instant: datetime) -> datetime:
    # Naive values come back from SQLite and "timestamp without time zone"
    # columns; they were written as UTC.
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


def to_local(instant: datetime) -> datetime:
    return as_utc(instant).astimezone(LOCAL_TZ)


def to_local_date(instant: datetime) -> date:
    return to_local(instant).date()


def local_today(now: datetime | None = None) -> date:
    return to_local_date(now or utcnow())


def is_today(instant: datetime, now: datetime | None = None) -> bool:
    return to_local_date(instant) == local_today(now)


def same_local_day(instant: datetime, target: date) -> bool:
    return to_local_date(instant) == target


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """UTC instants of local midnight and the last microsecond of that local day."""
    start = datetime.combine(day, time.min, tzinfo=LOCAL_TZ)
    end = datetime.combine(day, time.max, tzinfo=LOCAL_TZ)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def format_local(instant: datetime | None) -> str:
    if instant is None:
        return ""
    return to_local(instant).strftime("%Y-%m-%d %H:%M")


def parse_date_param(value: str) -> date:
    """
    Accept either a calendar date (2024-03-02) or a full ISO instant
    (2024-03-01T15:30:00Z). Instants are normalized to their local date.
    """
    value = (value or "").strip()
    try:
        return date.fromisoformat(value)
    except ValueError:
        pass
    try:
        instant = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid date: '{value}'")
    return to_local_date(instant)
