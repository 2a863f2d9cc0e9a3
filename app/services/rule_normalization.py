from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date, datetime

from app.services.date_engine import as_datetime_bound, day_of
from app.services.recurrence_engine import (
    FREQUENCIES,
    FREQUENCY_DAILY,
    FREQUENCY_MONTHLY,
    FREQUENCY_NONE,
    FREQUENCY_WEEKLY,
    FREQUENCY_YEARLY,
    InvalidRuleError,
    RecurrenceRule,
)


MAX_INTERVAL = 365

_FREQUENCY_ALIASES = {
    "": FREQUENCY_NONE,
    "ONCE": FREQUENCY_NONE,
    "ONE_TIME": FREQUENCY_NONE,
    "DAY": FREQUENCY_DAILY,
    "WEEK": FREQUENCY_WEEKLY,
    "MONTH": FREQUENCY_MONTHLY,
    "YEAR": FREQUENCY_YEARLY,
}


def _pick(raw: Mapping[str, object], *keys: str) -> object | None:
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def normalize_frequency(value: object, *, unit: object | None = None) -> str:
    frequency = str(value or "").strip().upper()
    if frequency == "CUSTOM":
        # Custom rules carry their step unit separately (DAY/WEEK/MONTH).
        frequency = str(unit or "DAY").strip().upper()
    frequency = _FREQUENCY_ALIASES.get(frequency, frequency)
    if frequency not in FREQUENCIES:
        raise InvalidRuleError(f"Unsupported frequency: {value}")
    return frequency


def normalize_weekdays(values: Iterable[object] | None) -> tuple[int, ...]:
    if not values:
        return ()
    try:
        return tuple(sorted({int(value) for value in values}))
    except (TypeError, ValueError) as exc:
        raise InvalidRuleError("Weekdays must be integers between 0 (Monday) and 6 (Sunday).") from exc


def _optional_int(value: object | None, label: str) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidRuleError(f"{label} must be an integer.") from exc


def _coerce_end(value: object | None) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text) if len(text) == 10 else datetime.fromisoformat(text)
        except ValueError as exc:
            raise InvalidRuleError(f"Invalid end date: {value}") from exc
    raise InvalidRuleError("End date must be a date.")


def validate_rule(rule: RecurrenceRule) -> RecurrenceRule:
    if rule.frequency not in FREQUENCIES:
        raise InvalidRuleError(f"Unsupported frequency: {rule.frequency}")
    if rule.frequency == FREQUENCY_NONE:
        return rule

    if not isinstance(rule.interval, int) or rule.interval < 1:
        raise InvalidRuleError("Interval must be a positive integer.")
    if rule.interval > MAX_INTERVAL:
        raise InvalidRuleError(f"Interval must not exceed {MAX_INTERVAL}.")
    if rule.end is not None:
        if isinstance(rule.anchor, datetime):
            end_before_anchor = as_datetime_bound(rule.end, upper=True) < rule.anchor
        else:
            end_before_anchor = day_of(rule.end) < rule.anchor
        if end_before_anchor:
            raise InvalidRuleError("End date must not be before the start date.")
    if any(not 0 <= day <= 6 for day in rule.by_weekday):
        raise InvalidRuleError("Weekdays must be between 0 (Monday) and 6 (Sunday).")
    if rule.by_month_day is not None and not 1 <= rule.by_month_day <= 31:
        raise InvalidRuleError("Day of month must be between 1 and 31.")
    if rule.by_month is not None and not 1 <= rule.by_month <= 12:
        raise InvalidRuleError("Month must be between 1 and 12.")
    return rule


def build_rule(
    *,
    frequency: str,
    anchor: date,
    interval: int = 1,
    end: date | None = None,
    by_weekday: Iterable[int] | None = None,
    by_month_day: int | None = None,
    by_month: int | None = None,
) -> RecurrenceRule:
    """Build a validated rule, dropping selectors the frequency does not use."""
    frequency = normalize_frequency(frequency)
    if frequency == FREQUENCY_NONE:
        return RecurrenceRule(frequency=FREQUENCY_NONE, anchor=anchor)

    return validate_rule(
        RecurrenceRule(
            frequency=frequency,
            anchor=anchor,
            interval=interval,
            end=end,
            by_weekday=normalize_weekdays(by_weekday) if frequency == FREQUENCY_WEEKLY else (),
            by_month_day=by_month_day if frequency in {FREQUENCY_MONTHLY, FREQUENCY_YEARLY} else None,
            by_month=by_month if frequency == FREQUENCY_YEARLY else None,
        )
    )


def normalize_rule(raw: Mapping[str, object] | None, *, anchor: date) -> RecurrenceRule:
    """Normalize a loosely shaped rule mapping (snake_case or camelCase keys)."""
    if not raw:
        return RecurrenceRule(frequency=FREQUENCY_NONE, anchor=anchor)

    frequency = normalize_frequency(
        _pick(raw, "frequency", "freq", "type"),
        unit=_pick(raw, "unit"),
    )
    interval = _optional_int(_pick(raw, "interval"), "Interval")
    end = _coerce_end(_pick(raw, "end", "end_date", "endDate", "end_at", "endAt"))

    return build_rule(
        frequency=frequency,
        anchor=anchor,
        interval=1 if interval is None else interval,
        end=end,
        by_weekday=_pick(raw, "by_weekday", "byWeekday"),  # type: ignore[arg-type]
        by_month_day=_optional_int(_pick(raw, "by_month_day", "byMonthDay", "byMonthday", "dayOfMonth"), "Day of month"),
        by_month=_optional_int(_pick(raw, "by_month", "byMonth", "month"), "Month"),
    )
