from __future__ import annotations

import calendar
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta


@dataclass(frozen=True)
class DateWindow:
    start: date
    end: date


def day_of(value: date) -> date:
    # datetime is a subclass of date; strip the time-of-day when present.
    if isinstance(value, datetime):
        return value.date()
    return value


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def month_index(year: int, month: int) -> int:
    return year * 12 + (month - 1)


def add_months(year: int, month: int, offset: int) -> tuple[int, int]:
    zero_based = month_index(year, month) + offset
    return zero_based // 12, (zero_based % 12) + 1


def clamp_day(year: int, month: int, day: int) -> date:
    return date(year, month, min(day, days_in_month(year, month)))


def add_days(value: date, days: int) -> date:
    return value + timedelta(days=days)


def weekday(value: date) -> int:
    """Monday=0 .. Sunday=6."""
    return value.weekday()


def start_of_week(value: date) -> date:
    day = day_of(value)
    return day - timedelta(days=day.weekday())


def with_time_of(reference: date, day: date) -> date:
    """Return `day` carrying the time-of-day of `reference` when it has one."""
    if isinstance(reference, datetime):
        return datetime.combine(day_of(day), reference.time())
    return day_of(day)


def iter_days(start: date, end: date) -> Iterator[date]:
    current = day_of(start)
    last = day_of(end)
    while current <= last:
        yield current
        if current == date.max:
            return
        current += timedelta(days=1)


def month_window(month_key: str) -> DateWindow:
    parts = month_key.strip().split("-")
    if len(parts) != 2 or not all(part.isdigit() for part in parts):
        raise ValueError(f"Month must be YYYY-MM, got {month_key!r}")
    year, month = int(parts[0]), int(parts[1])
    if not 1 <= month <= 12:
        raise ValueError(f"Month must be YYYY-MM, got {month_key!r}")
    return DateWindow(start=date(year, month, 1), end=date(year, month, days_in_month(year, month)))


def as_datetime_bound(value: date, *, upper: bool) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.max if upper else time.min)
