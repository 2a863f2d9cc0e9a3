from __future__ import annotations

import logging
from datetime import date

import pytest

from app.services.ledger import (
    FinancePatch,
    FinancePayload,
    build_finance_patch,
    build_ledger,
    compute_carry,
    parse_money_to_cents,
    validate_amount_cents,
)
from app.services.occurrence_overlay import (
    InvalidExceptionError,
    OccurrenceException,
    OneOffItem,
    SeriesSpec,
    index_exceptions,
)
from app.services.recurrence_engine import RecurrenceRule


def _salary() -> SeriesSpec:
    return SeriesSpec(
        series_id=1,
        rule=RecurrenceRule(frequency="MONTHLY", anchor=date(2024, 1, 1)),
        payload=FinancePayload(title="Salary", note="", entry_type="INCOME", amount_cents=50000),
    )


def _expense(item_id: int, day: date, cents: int) -> OneOffItem:
    return OneOffItem(
        item_id=item_id,
        occurs_on=day,
        payload=FinancePayload(title="Groceries", note="", entry_type="EXPENSE", amount_cents=cents),
    )


def test_carry_from_starting_balance_and_prior_one_off() -> None:
    carry = compute_carry(
        [],
        {},
        [_expense(1, date(2024, 2, 15), 2000)],
        window_start=date(2024, 3, 1),
        starting_balance_cents=10000,
    )
    assert carry == 8000


def test_carry_uses_post_exception_series_occurrences() -> None:
    exceptions = index_exceptions([OccurrenceException(series_id=1, occurrence_date=date(2024, 2, 1), kind="SKIP")])
    carry = compute_carry(
        [_salary()],
        exceptions,
        [_expense(1, date(2024, 2, 15), 2000), _expense(2, date(2024, 3, 1), 700)],
        window_start=date(2024, 3, 1),
        starting_balance_cents=10000,
    )
    # January salary counted, February skipped, March 1 belongs to the window.
    assert carry == 10000 + 50000 - 2000


def test_build_ledger_totals_and_daily_balances() -> None:
    exceptions = index_exceptions([OccurrenceException(series_id=1, occurrence_date=date(2024, 2, 1), kind="SKIP")])
    ledger = build_ledger(
        [_salary()],
        exceptions,
        [_expense(1, date(2024, 2, 15), 2000), _expense(2, date(2024, 3, 10), 1500)],
        window_start=date(2024, 3, 1),
        window_end=date(2024, 3, 31),
        starting_balance_cents=10000,
    )

    assert ledger.carry.origin == "CARRY"
    assert ledger.carry.occurrence_date == date(2024, 3, 1)
    assert ledger.carry.payload.entry_type == "INCOME"
    assert ledger.carry.payload.amount_cents == 58000

    assert [(item.origin, item.occurrence_date) for item in ledger.occurrences] == [
        ("SERIES", date(2024, 3, 1)),
        ("ONE_OFF", date(2024, 3, 10)),
    ]
    assert ledger.totals.opening_cents == 58000
    assert ledger.totals.income_cents == 50000
    assert ledger.totals.expense_cents == 1500
    assert ledger.totals.net_cents == 48500
    assert ledger.totals.closing_cents == 106500

    assert len(ledger.daily_balances) == 31
    assert ledger.daily_balances[0].balance_cents == 108000
    assert ledger.daily_balances[8].balance_cents == 108000
    assert ledger.daily_balances[9].balance_cents == 106500
    assert ledger.daily_balances[-1].balance_cents == ledger.totals.closing_cents
    assert ledger.truncated is False


def test_override_amount_flows_into_totals() -> None:
    exceptions = index_exceptions(
        [
            OccurrenceException(
                series_id=1,
                occurrence_date=date(2024, 3, 1),
                kind="OVERRIDE",
                patch=FinancePatch(amount_cents=40000),
            )
        ]
    )
    ledger = build_ledger([_salary()], exceptions, [], window_start=date(2024, 3, 1), window_end=date(2024, 3, 31))
    assert ledger.occurrences[0].payload.title == "Salary"
    assert ledger.occurrences[0].payload.amount_cents == 40000
    assert ledger.totals.income_cents == 40000


def test_negative_carry_is_an_expense() -> None:
    ledger = build_ledger(
        [],
        {},
        [_expense(1, date(2024, 2, 1), 3000)],
        window_start=date(2024, 3, 1),
        window_end=date(2024, 3, 2),
        starting_balance_cents=1000,
    )
    assert ledger.carry.payload.entry_type == "EXPENSE"
    assert ledger.carry.payload.amount_cents == 2000
    assert ledger.totals.opening_cents == -2000


def test_carry_truncation_is_logged(caplog) -> None:
    daily = SeriesSpec(
        series_id=5,
        rule=RecurrenceRule(frequency="DAILY", anchor=date(2024, 1, 1)),
        payload=FinancePayload(title="Coffee", note="", entry_type="EXPENSE", amount_cents=300),
    )
    with caplog.at_level(logging.WARNING, logger="app.services.ledger"):
        carry = compute_carry([daily], {}, [], window_start=date(2024, 1, 31), cap=3)
    assert carry == -900
    assert "Carry expansion truncated series_id=5" in caplog.text


def test_parse_money_to_cents() -> None:
    assert parse_money_to_cents("12.50") == 1250
    assert parse_money_to_cents("1.234,56") == 123456
    assert parse_money_to_cents(12.5) == 1250
    assert parse_money_to_cents(7) == 700
    assert parse_money_to_cents("") == 0
    for bad in ("abc", "NaN", True):
        with pytest.raises(ValueError):
            parse_money_to_cents(bad)


def test_validate_amount_cents() -> None:
    assert validate_amount_cents(1500) == 1500
    assert validate_amount_cents(199.6) == 200
    for bad in (0, -5, True, "100", float("nan"), None):
        with pytest.raises(ValueError):
            validate_amount_cents(bad)


def test_build_finance_patch() -> None:
    patch = build_finance_patch(title="   ", amount_cents=900)
    assert patch == FinancePatch(title=None, note=None, entry_type=None, amount_cents=900)
    assert build_finance_patch(entry_type="expense").entry_type == "EXPENSE"

    with pytest.raises(InvalidExceptionError):
        build_finance_patch(amount_cents=0)
    with pytest.raises(InvalidExceptionError):
        build_finance_patch(entry_type="TRANSFER")


def test_ledger_at_calendar_edges() -> None:
    first = build_ledger(
        [_salary()],
        {},
        [],
        window_start=date(1, 1, 1),
        window_end=date(1, 1, 31),
        starting_balance_cents=1200,
    )
    assert first.totals.opening_cents == 1200
    assert first.occurrences == []

    last = build_ledger(
        [
            SeriesSpec(
                series_id=2,
                rule=RecurrenceRule(frequency="DAILY", anchor=date(9999, 12, 30)),
                payload=FinancePayload(title="Interest", note="", entry_type="INCOME", amount_cents=5),
            )
        ],
        {},
        [],
        window_start=date(9999, 12, 1),
        window_end=date(9999, 12, 31),
    )
    assert [item.occurrence_date for item in last.occurrences] == [date(9999, 12, 30), date(9999, 12, 31)]
    assert last.daily_balances[-1].day == date(9999, 12, 31)
    assert last.totals.closing_cents == 10
