# consultbook/core/business.py
"""
Business calendar: the fixed slot catalog and the one timezone every day-key,
slot start instant and weekday is computed in.
"""
from __future__ import annotations
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from consultbook.core.config import settings

LOCAL_TZ = ZoneInfo(settings.BUSINESS_TIMEZONE)
UTC = timezone.utc

# Shared with the frontend; changing it needs a coordinated deploy
TIME_SLOTS: tuple[str, ...] = ("09:00", "10:00", "11:00", "14:00", "15:00", "16:00")

DAY_KEY_FORMAT = "%Y-%m-%d"


def utc_now() -> datetime:
    return datetime.now(UTC)


def to_day_key(value: date | datetime) -> str:
    """
    Canonical YYYY-MM-DD key for the business-calendar day containing ``value``.
    Aware datetimes are converted to LOCAL_TZ first, naive ones are taken as
    LOCAL_TZ wall clock, plain dates are used as-is.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(LOCAL_TZ)
        return value.date().isoformat()
    return value.isoformat()


def parse_day_key(value: str) -> date:
    """Parse a YYYY-MM-DD day-key; anything else raises ValueError."""
    try:
        return datetime.strptime(value.strip(), DAY_KEY_FORMAT).date()
    except (AttributeError, ValueError):
        raise ValueError(f"Invalid date {value!r}, expected YYYY-MM-DD")


def to_business_date(value: date | datetime) -> date:
    return parse_day_key(to_day_key(value))


def today(now: datetime | None = None) -> date:
    return to_business_date(now or utc_now())


def is_valid_slot(label: str) -> bool:
    return label in TIME_SLOTS


def slot_time(label: str) -> time:
    hours, minutes = label.split(":")
    return time(int(hours), int(minutes))


def slot_start(day: date, label: str) -> datetime:
    """Absolute start instant of ``label`` on ``day`` in the business timezone."""
    return datetime.combine(day, slot_time(label), tzinfo=LOCAL_TZ)


def notice_cutoff(now: datetime, minimum_notice_hours: int) -> datetime:
    return now + timedelta(hours=minimum_notice_hours)


def slots_inside_notice(day: date, now: datetime, minimum_notice_hours: int) -> list[str]:
    """Catalog labels on ``day`` that start before now + notice window."""
    cutoff = notice_cutoff(now, minimum_notice_hours)
    return [label for label in TIME_SLOTS if slot_start(day, label) < cutoff]


def is_weekend(day: date) -> bool:
    return day.weekday() >= 5  # Sat, Sun


def sunday_based_weekday(day: date) -> int:
    """0=Sunday .. 6=Saturday (the numbering recurring blocks use)."""
    return (day.weekday() + 1) % 7


def iter_days(start: date, end: date):
    cur = start
    while cur <= end:
        yield cur
        cur += timedelta(days=1)


# ---------- Presentation (email rendering only) ----------

def format_time(label: str) -> str:
    """'14:00' -> '2:00 PM'"""
    return slot_time(label).strftime("%I:%M %p").lstrip("0")


def format_date(day: date) -> str:
    """'Monday, January 1, 2024'"""
    return f"{day:%A, %B} {day.day}, {day.year}"
