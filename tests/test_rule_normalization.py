from datetime import date, datetime

import pytest

from app.services.recurrence_engine import InvalidRuleError
from app.services.rule_normalization import build_rule, normalize_frequency, normalize_rule


ANCHOR = date(2024, 1, 1)


def test_custom_unit_and_camel_case_keys() -> None:
    rule = normalize_rule(
        {"freq": "custom", "unit": "week", "interval": "2", "byWeekday": [4, 0, 0]},
        anchor=ANCHOR,
    )
    assert rule.frequency == "WEEKLY"
    assert rule.interval == 2
    assert rule.by_weekday == (0, 4)


def test_empty_rule_is_non_recurring() -> None:
    assert normalize_rule(None, anchor=ANCHOR).frequency == "NONE"
    assert normalize_rule({}, anchor=ANCHOR).is_recurring is False
    assert normalize_frequency("once") == "NONE"
    assert normalize_frequency("") == "NONE"


def test_selectors_not_used_by_frequency_are_dropped() -> None:
    rule = normalize_rule({"frequency": "monthly", "byWeekday": [1], "dayOfMonth": "15", "month": 3}, anchor=ANCHOR)
    assert rule.by_weekday == ()
    assert rule.by_month_day == 15
    assert rule.by_month is None


def test_end_date_strings_are_parsed() -> None:
    assert normalize_rule({"frequency": "DAILY", "endDate": "2024-06-30"}, anchor=ANCHOR).end == date(2024, 6, 30)

    timed = normalize_rule(
        {"frequency": "DAILY", "end_at": "2024-06-30T18:00:00"},
        anchor=datetime(2024, 1, 1, 9, 0),
    )
    assert timed.end == datetime(2024, 6, 30, 18, 0)


@pytest.mark.parametrize(
    "raw",
    [
        {"frequency": "DAILY", "interval": 0},
        {"frequency": "DAILY", "interval": 366},
        {"frequency": "DAILY", "interval": "abc"},
        {"frequency": "HOURLY"},
        {"frequency": "DAILY", "end": "2023-12-31"},
        {"frequency": "DAILY", "end": "not-a-date"},
        {"frequency": "WEEKLY", "by_weekday": [7]},
        {"frequency": "WEEKLY", "by_weekday": ["mon"]},
        {"frequency": "MONTHLY", "by_month_day": 32},
        {"frequency": "YEARLY", "by_month": 13},
    ],
)
def test_invalid_rules_are_rejected(raw) -> None:
    with pytest.raises(InvalidRuleError):
        normalize_rule(raw, anchor=ANCHOR)


def test_build_rule_returns_bare_rule_for_none() -> None:
    rule = build_rule(frequency="NONE", anchor=ANCHOR, interval=99, by_weekday=[1])
    assert rule.frequency == "NONE"
    assert rule.interval == 1
    assert rule.by_weekday == ()


def test_invalid_rule_error_is_value_error() -> None:
    assert issubclass(InvalidRuleError, ValueError)
