from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker

import app.models  # noqa: F401
from app.models.base import Base
from app.models.finances import FinanceException
from app.services.finances_service import (
    EntryInput,
    ExceptionInput,
    FinanceNotFoundError,
    FinanceValidationError,
    SeriesInput,
    clear_series_exception,
    create_entry,
    create_series,
    delete_series,
    get_ledger,
    list_entries,
    set_series_exception,
    update_series,
)
from app.services.households_service import (
    CreateHouseholdInput,
    HouseholdNotFoundError,
    create_household,
    set_starting_balance,
)
from app.services.occurrence_overlay import InvalidExceptionError


def _make_session(tmp_path) -> Session:
    db_path = tmp_path / "finances.db"
    engine = create_engine(f"sqlite:///{db_path}", future=True)
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    return SessionLocal()


def _salary_input(**overrides) -> SeriesInput:
    values = {
        "title": "Salary",
        "entry_type": "INCOME",
        "amount_cents": 50000,
        "start_date": date(2024, 1, 1),
        "recurrence": {"frequency": "MONTHLY"},
    }
    values.update(overrides)
    return SeriesInput(**values)


def _exception_count(session: Session) -> int:
    return session.scalar(select(func.count()).select_from(FinanceException))


def test_ledger_carry_from_starting_balance_and_entry(tmp_path) -> None:
    with _make_session(tmp_path) as session:
        household = create_household(session, CreateHouseholdInput(name="Flat 3", starting_balance_cents=10000))
        create_entry(
            session,
            household_id=household.id,
            data=EntryInput(entry_type="EXPENSE", amount_cents=2000, entry_date=date(2024, 2, 15), title="Repair"),
        )

        ledger = get_ledger(
            session,
            household_id=household.id,
            window_start=date(2024, 3, 1),
            window_end=date(2024, 3, 31),
        )
        assert ledger.totals.opening_cents == 8000
        assert ledger.occurrences == []
        assert ledger.totals.closing_cents == 8000


def test_series_exceptions_shape_the_ledger(tmp_path) -> None:
    with _make_session(tmp_path) as session:
        household = create_household(session, CreateHouseholdInput(name="Home"))
        series = create_series(session, household_id=household.id, data=_salary_input())

        set_series_exception(
            session,
            series_id=series.id,
            data=ExceptionInput(occurrence_date=date(2024, 2, 1), kind="skip"),
        )
        set_series_exception(
            session,
            series_id=series.id,
            data=ExceptionInput(occurrence_date=date(2024, 3, 1), kind="OVERRIDE", amount_cents=42000),
        )

        ledger = get_ledger(
            session,
            household_id=household.id,
            window_start=date(2024, 3, 1),
            window_end=date(2024, 3, 31),
        )
        assert ledger.totals.opening_cents == 50000
        assert [item.payload.amount_cents for item in ledger.occurrences] == [42000]
        assert ledger.occurrences[0].is_exception is True
        assert ledger.occurrences[0].payload.title == "Salary"


def test_exception_upsert_last_write_wins(tmp_path) -> None:
    with _make_session(tmp_path) as session:
        household = create_household(session, CreateHouseholdInput(name="Home"))
        series = create_series(session, household_id=household.id, data=_salary_input())

        set_series_exception(
            session,
            series_id=series.id,
            data=ExceptionInput(occurrence_date=date(2024, 2, 1), kind="OVERRIDE", title="Bonus month", amount_cents=60000),
        )
        row = set_series_exception(
            session,
            series_id=series.id,
            data=ExceptionInput(occurrence_date=date(2024, 2, 1), kind="SKIP"),
        )
        assert row.kind == "SKIP"
        assert row.title is None
        assert row.amount_cents is None
        assert _exception_count(session) == 1

        assert clear_series_exception(session, series_id=series.id, occurrence_date=date(2024, 2, 1)) is True
        assert clear_series_exception(session, series_id=series.id, occurrence_date=date(2024, 2, 1)) is False


def test_exception_must_target_real_occurrence(tmp_path) -> None:
    with _make_session(tmp_path) as session:
        household = create_household(session, CreateHouseholdInput(name="Home"))
        series = create_series(session, household_id=household.id, data=_salary_input())

        with pytest.raises(InvalidExceptionError):
            set_series_exception(
                session,
                series_id=series.id,
                data=ExceptionInput(occurrence_date=date(2024, 1, 2), kind="SKIP"),
            )
        with pytest.raises(InvalidExceptionError):
            set_series_exception(
                session,
                series_id=series.id,
                data=ExceptionInput(occurrence_date=date(2024, 1, 1), kind="OVERRIDE"),
            )
        with pytest.raises(InvalidExceptionError):
            set_series_exception(
                session,
                series_id=series.id,
                data=ExceptionInput(occurrence_date=date(2024, 1, 1), kind="OVERRIDE", amount_cents=-1),
            )
        assert _exception_count(session) == 0


def test_delete_series_removes_its_exceptions(tmp_path) -> None:
    with _make_session(tmp_path) as session:
        household = create_household(session, CreateHouseholdInput(name="Home"))
        series = create_series(session, household_id=household.id, data=_salary_input())
        set_series_exception(
            session,
            series_id=series.id,
            data=ExceptionInput(occurrence_date=date(2024, 2, 1), kind="SKIP"),
        )
        series_id = series.id

        delete_series(session, series_id=series_id)
        assert _exception_count(session) == 0

        replacement = create_series(session, household_id=household.id, data=_salary_input())
        assert replacement.id != series_id

        with pytest.raises(FinanceNotFoundError):
            delete_series(session, series_id=series_id)


def test_update_series_keeps_exceptions(tmp_path) -> None:
    with _make_session(tmp_path) as session:
        household = create_household(session, CreateHouseholdInput(name="Home"))
        series = create_series(session, household_id=household.id, data=_salary_input())
        set_series_exception(
            session,
            series_id=series.id,
            data=ExceptionInput(occurrence_date=date(2024, 2, 1), kind="SKIP"),
        )

        updated = update_series(session, series_id=series.id, data=_salary_input(amount_cents=55000))
        assert updated.amount_cents == 55000
        assert _exception_count(session) == 1


def test_series_validation(tmp_path) -> None:
    with _make_session(tmp_path) as session:
        household = create_household(session, CreateHouseholdInput(name="Home"))

        with pytest.raises(FinanceValidationError):
            create_series(session, household_id=household.id, data=_salary_input(recurrence={}))
        with pytest.raises(FinanceValidationError):
            create_series(session, household_id=household.id, data=_salary_input(amount_cents=0))
        with pytest.raises(FinanceValidationError):
            create_series(session, household_id=household.id, data=_salary_input(entry_type="TRANSFER"))
        with pytest.raises(ValueError):
            create_series(session, household_id=household.id, data=_salary_input(recurrence={"frequency": "DAILY", "interval": 0}))
        with pytest.raises(HouseholdNotFoundError):
            create_series(session, household_id=999, data=_salary_input())


def test_entries_default_title_and_listing_window(tmp_path) -> None:
    with _make_session(tmp_path) as session:
        household = create_household(session, CreateHouseholdInput(name="Home"))
        first = create_entry(
            session,
            household_id=household.id,
            data=EntryInput(entry_type="expense", amount_cents=1200, entry_date=date(2024, 3, 5)),
        )
        create_entry(
            session,
            household_id=household.id,
            data=EntryInput(entry_type="INCOME", amount_cents=800, entry_date=date(2024, 4, 5), title="Refund"),
        )

        assert first.title == "Expense"
        assert first.entry_type == "EXPENSE"
        march = list_entries(session, household_id=household.id, start_date=date(2024, 3, 1), end_date=date(2024, 3, 31))
        assert [row.id for row in march] == [first.id]


def test_starting_balance_feeds_ledger(tmp_path) -> None:
    with _make_session(tmp_path) as session:
        household = create_household(session, CreateHouseholdInput(name="Home"))
        set_starting_balance(session, household_id=household.id, starting_balance_cents=-2500)

        ledger = get_ledger(
            session,
            household_id=household.id,
            window_start=date(2024, 3, 1),
            window_end=date(2024, 3, 3),
        )
        assert ledger.carry.payload.entry_type == "EXPENSE"
        assert ledger.carry.payload.amount_cents == 2500
        assert [balance.balance_cents for balance in ledger.daily_balances] == [-2500, -2500, -2500]
