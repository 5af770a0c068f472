from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo


DEFAULT_TZ = "Europe/Oslo"


def now_local(tz_name: str = DEFAULT_TZ) -> datetime:
    return datetime.now(tz=ZoneInfo(tz_name))


@dataclass(frozen=True)
class DayRange:
    start: datetime
    end: datetime


def start_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def day_range_for(dt: datetime) -> DayRange:
    start = start_of_day(dt)
    return DayRange(start=start, end=start + timedelta(days=1))


def trailing_days(dt: datetime, days: int) -> DayRange:
    """The ``days`` calendar days ending with the day of ``dt``."""
    end = start_of_day(dt) + timedelta(days=1)
    return DayRange(start=end - timedelta(days=max(1, days)), end=end)


def days_between(start: date, end: date) -> list[date]:
    out: list[date] = []
    current = start
    while current < end:
        out.append(current)
        current += timedelta(days=1)
    return out
