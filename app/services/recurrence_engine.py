from __future__ import annotations

from dataclasses import dataclass, field
from datetime import MAXYEAR, date, datetime

from app.services.date_engine import (
    add_days,
    add_months,
    as_datetime_bound,
    clamp_day,
    day_of,
    month_index,
    start_of_week,
    weekday,
    with_time_of,
)


FREQUENCY_NONE = "NONE"
FREQUENCY_DAILY = "DAILY"
FREQUENCY_WEEKLY = "WEEKLY"
FREQUENCY_MONTHLY = "MONTHLY"
FREQUENCY_YEARLY = "YEARLY"
FREQUENCIES = (FREQUENCY_NONE, FREQUENCY_DAILY, FREQUENCY_WEEKLY, FREQUENCY_MONTHLY, FREQUENCY_YEARLY)

# Upper bound on occurrences returned by a single expansion.
DEFAULT_OCCURRENCE_CAP = 1500


class InvalidRuleError(ValueError):
    pass


class WindowRangeError(ValueError):
    pass


@dataclass(frozen=True)
class RecurrenceRule:
    frequency: str
    anchor: date
    interval: int = 1
    end: date | None = None
    by_weekday: tuple[int, ...] = ()
    by_month_day: int | None = None
    by_month: int | None = None

    @property
    def is_recurring(self) -> bool:
        return self.frequency != FREQUENCY_NONE


@dataclass(frozen=True)
class OccurrenceExpansion:
    dates: list[date] = field(default_factory=list)
    truncated: bool = False


class _Collector:
    def __init__(self, lower: date, upper: date, cap: int) -> None:
        self.lower = lower
        self.upper = upper
        self.cap = cap
        self.dates: list[date] = []
        self.truncated = False

    def offer(self, candidate: date) -> bool:
        """Record `candidate` if in range; False once expansion can stop."""
        if candidate > self.upper:
            return False
        if candidate < self.lower:
            return True
        if self.dates and candidate <= self.dates[-1]:
            return True
        if len(self.dates) >= self.cap:
            self.truncated = True
            return False
        self.dates.append(candidate)
        return True


def _uses_datetimes(*values: date | None) -> bool:
    return any(isinstance(value, datetime) for value in values)


def _bound(value: date, *, upper: bool, as_datetime: bool) -> date:
    if as_datetime:
        return as_datetime_bound(value, upper=upper)
    return day_of(value)


def validate_window(window_start: date, window_end: date) -> None:
    as_datetime = _uses_datetimes(window_start, window_end)
    start = _bound(window_start, upper=False, as_datetime=as_datetime)
    end = _bound(window_end, upper=True, as_datetime=as_datetime)
    if end < start:
        raise WindowRangeError(f"Window end {window_end} is before window start {window_start}")


def validate_window_span(window_start: date, window_end: date, *, max_days: int) -> None:
    """Reject inverted windows and windows longer than `max_days` days (0 disables the limit)."""
    validate_window(window_start, window_end)
    span = (day_of(window_end) - day_of(window_start)).days + 1
    if max_days > 0 and span > max_days:
        raise WindowRangeError(f"Window spans {span} days; the maximum is {max_days}")


def _effective_bounds(rule: RecurrenceRule, window_start: date, window_end: date) -> tuple[date, date]:
    as_datetime = isinstance(rule.anchor, datetime)
    lower = max(_bound(window_start, upper=False, as_datetime=as_datetime), rule.anchor)
    upper = _bound(window_end, upper=True, as_datetime=as_datetime)
    if rule.end is not None:
        end = _bound(rule.end, upper=True, as_datetime=as_datetime)
        # An end before the anchor is inconsistent; expand as if unbounded.
        if end >= rule.anchor:
            upper = min(upper, end)
    return lower, upper


def _expand_daily(rule: RecurrenceRule, interval: int, collector: _Collector) -> None:
    anchor_day = day_of(rule.anchor)
    step = max(0, (day_of(collector.lower) - anchor_day).days // interval)
    while True:
        try:
            candidate = add_days(anchor_day, step * interval)
        except OverflowError:
            return
        if not collector.offer(with_time_of(rule.anchor, candidate)):
            return
        step += 1


def _expand_weekly(rule: RecurrenceRule, interval: int, collector: _Collector) -> None:
    weekdays = sorted({day for day in rule.by_weekday if 0 <= day <= 6}) or [weekday(day_of(rule.anchor))]
    anchor_week = start_of_week(rule.anchor)
    weeks_to_lower = (start_of_week(collector.lower) - anchor_week).days // 7
    step = max(0, weeks_to_lower // interval)
    while True:
        try:
            week_start = add_days(anchor_week, step * interval * 7)
        except OverflowError:
            return
        for day in weekdays:
            try:
                candidate = add_days(week_start, day)
            except OverflowError:
                return
            if not collector.offer(with_time_of(rule.anchor, candidate)):
                return
        step += 1


def _expand_monthly(rule: RecurrenceRule, interval: int, collector: _Collector) -> None:
    anchor = rule.anchor
    day_of_month = rule.by_month_day if rule.by_month_day and 1 <= rule.by_month_day <= 31 else anchor.day
    months_to_lower = month_index(collector.lower.year, collector.lower.month) - month_index(anchor.year, anchor.month)
    step = max(0, months_to_lower // interval)
    while True:
        year, month = add_months(anchor.year, anchor.month, step * interval)
        if year > MAXYEAR:
            return
        if not collector.offer(with_time_of(anchor, clamp_day(year, month, day_of_month))):
            return
        step += 1


def _expand_yearly(rule: RecurrenceRule, interval: int, collector: _Collector) -> None:
    anchor = rule.anchor
    month = rule.by_month if rule.by_month and 1 <= rule.by_month <= 12 else anchor.month
    day_of_month = rule.by_month_day if rule.by_month_day and 1 <= rule.by_month_day <= 31 else anchor.day
    step = max(0, (collector.lower.year - anchor.year) // interval)
    while True:
        year = anchor.year + step * interval
        if year > MAXYEAR:
            return
        if not collector.offer(with_time_of(anchor, clamp_day(year, month, day_of_month))):
            return
        step += 1


_EXPANDERS = {
    FREQUENCY_DAILY: _expand_daily,
    FREQUENCY_WEEKLY: _expand_weekly,
    FREQUENCY_MONTHLY: _expand_monthly,
    FREQUENCY_YEARLY: _expand_yearly,
}


def generate_occurrences(
    rule: RecurrenceRule,
    *,
    window_start: date,
    window_end: date,
    cap: int = DEFAULT_OCCURRENCE_CAP,
) -> OccurrenceExpansion:
    """Expand `rule` into its occurrences inside the inclusive window.

    Date anchors yield dates; datetime anchors yield datetimes that keep the
    anchor's time-of-day. Occurrences before the anchor or after `rule.end`
    are never returned. At most `cap` occurrences are returned; hitting the
    cap sets `truncated` instead of raising.
    """
    validate_window(window_start, window_end)

    if rule.frequency == FREQUENCY_NONE:
        lower, upper = _effective_bounds(rule, window_start, window_end)
        if lower <= rule.anchor <= upper and cap > 0:
            return OccurrenceExpansion(dates=[rule.anchor])
        return OccurrenceExpansion()

    expander = _EXPANDERS.get(rule.frequency)
    if expander is None:
        raise InvalidRuleError(f"Unsupported frequency: {rule.frequency}")

    lower, upper = _effective_bounds(rule, window_start, window_end)
    if lower > upper:
        return OccurrenceExpansion()

    collector = _Collector(lower, upper, max(cap, 0))
    expander(rule, max(1, int(rule.interval or 1)), collector)
    return OccurrenceExpansion(dates=collector.dates, truncated=collector.truncated)


def occurs_at(rule: RecurrenceRule, candidate: date) -> bool:
    if isinstance(rule.anchor, datetime) != isinstance(candidate, datetime):
        return False
    expansion = generate_occurrences(rule, window_start=candidate, window_end=candidate, cap=1)
    return candidate in expansion.dates
