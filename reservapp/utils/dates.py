"""Date helpers.

All timestamps are persisted as naive UTC datetimes. Business rules that depend
on the wall clock (availability windows, CSV dates, cron schedules) convert to
the studio timezone through ``to_local``.
"""

import calendar
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from ..config import APP_TIMEZONE

LOCAL_TZ = ZoneInfo(APP_TIMEZONE)


def utcnow() -> datetime:
    """Current time as naive UTC"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalize an aware or naive datetime to naive UTC"""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def to_local(value: datetime) -> datetime:
    """Convert a naive UTC datetime to the studio timezone"""
    return value.replace(tzinfo=timezone.utc).astimezone(LOCAL_TZ)


def local_to_utc(value: datetime) -> datetime:
    """Interpret a naive datetime as studio wall-clock time and return naive UTC"""
    return value.replace(tzinfo=LOCAL_TZ).astimezone(timezone.utc).replace(tzinfo=None)


def add_months(value: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the end of the target month"""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def add_years(value: datetime, years: int) -> datetime:
    return add_months(value, 12 * years)


def whole_hours_between(start: datetime, end: datetime) -> int:
    """Whole hours from start to end, truncated toward zero"""
    return int((end - start).total_seconds() / 3600)


def calendar_days_between(start: datetime, end: datetime) -> int:
    """Calendar days between two datetimes, ignoring the time of day"""
    return (end.date() - start.date()).days


def start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def local_weekday(value: datetime) -> int:
    """Day of week in the studio timezone with 0 = Sunday"""
    return (to_local(value).weekday() + 1) % 7


def format_date_cl(value: datetime | None) -> str:
    """dd/mm/yyyy in the studio timezone, empty string for missing dates"""
    if value is None:
        return ""
    return to_local(value).strftime("%d/%m/%Y")


def local_today() -> date:
    return to_local(utcnow()).date()


def hhmm(value: datetime) -> str:
    return value.strftime("%H:%M")


def parse_hhmm(value: str) -> tuple[int, int]:
    hours, minutes = value.split(":")
    return int(hours), int(minutes)


def minutes_of_day(value: str) -> int:
    hours, minutes = parse_hhmm(value)
    return hours * 60 + minutes


def days_ago(days: int) -> datetime:
    return utcnow() - timedelta(days=days)
