from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import FinanceEntry, FinanceException, FinanceSeries
from app.services.date_engine import day_of
from app.services.households_service import get_household
from app.services.ledger import (
    DEFAULT_CARRY_OCCURRENCE_CAP,
    NOTE_MAX_LENGTH,
    TITLE_MAX_LENGTH,
    FinancePatch,
    FinancePayload,
    LedgerView,
    build_finance_patch,
    build_ledger,
    clamp_text,
    normalize_entry_type,
    validate_amount_cents,
)
from app.services.occurrence_overlay import (
    EXCEPTION_OVERRIDE,
    InvalidExceptionError,
    OccurrenceException,
    OneOffItem,
    SeriesSpec,
    index_exceptions,
    validate_exception,
)
from app.services.recurrence_engine import DEFAULT_OCCURRENCE_CAP, RecurrenceRule, occurs_at
from app.services.rule_normalization import normalize_rule

logger = logging.getLogger(__name__)


class FinanceValidationError(ValueError):
    pass


class FinanceNotFoundError(LookupError):
    pass


@dataclass(frozen=True)
class SeriesInput:
    entry_type: str
    amount_cents: int
    start_date: date
    recurrence: Mapping[str, object] = field(default_factory=dict)
    title: str = ""
    note: str = ""


@dataclass(frozen=True)
class EntryInput:
    entry_type: str
    amount_cents: int
    entry_date: date
    title: str = ""
    note: str = ""


@dataclass(frozen=True)
class ExceptionInput:
    occurrence_date: date
    kind: str
    title: str | None = None
    note: str | None = None
    entry_type: str | None = None
    amount_cents: int | None = None


def _default_title(entry_type: str) -> str:
    return "Income" if entry_type == "INCOME" else "Expense"


def _validated_payload(*, title: str, note: str, entry_type: str, amount_cents: object) -> FinancePayload:
    try:
        resolved_type = normalize_entry_type(entry_type)
        resolved_amount = validate_amount_cents(amount_cents)
    except ValueError as exc:
        raise FinanceValidationError(str(exc)) from exc
    return FinancePayload(
        title=clamp_text(title, TITLE_MAX_LENGTH) or _default_title(resolved_type),
        note=clamp_text(note, NOTE_MAX_LENGTH),
        entry_type=resolved_type,
        amount_cents=resolved_amount,
    )


def series_rule(row: FinanceSeries) -> RecurrenceRule:
    return RecurrenceRule(
        frequency=row.frequency,
        anchor=row.start_date,
        interval=row.recurrence_interval,
        end=row.end_date,
        by_weekday=tuple(row.by_weekday or ()),
        by_month_day=row.by_month_day,
        by_month=row.by_month,
    )


def _series_spec(row: FinanceSeries) -> SeriesSpec:
    return SeriesSpec(
        series_id=row.id,
        rule=series_rule(row),
        payload=FinancePayload(
            title=row.title,
            note=row.note or "",
            entry_type=row.entry_type,
            amount_cents=row.amount_cents,
        ),
    )


def _exception_from_row(row: FinanceException) -> OccurrenceException:
    patch = None
    if row.kind == EXCEPTION_OVERRIDE:
        patch = FinancePatch(
            title=row.title,
            note=row.note,
            entry_type=row.entry_type,
            amount_cents=row.amount_cents,
        )
    return OccurrenceException(series_id=row.series_id, occurrence_date=row.occurrence_date, kind=row.kind, patch=patch)


def _entry_item(row: FinanceEntry) -> OneOffItem:
    return OneOffItem(
        item_id=row.id,
        occurs_on=row.entry_date,
        payload=FinancePayload(
            title=row.title,
            note=row.note or "",
            entry_type=row.entry_type,
            amount_cents=row.amount_cents,
        ),
    )


def get_series(session: Session, series_id: int) -> FinanceSeries:
    row = session.get(FinanceSeries, series_id)
    if row is None:
        raise FinanceNotFoundError(f"Finance series {series_id} not found")
    return row


def get_entry(session: Session, entry_id: int) -> FinanceEntry:
    row = session.get(FinanceEntry, entry_id)
    if row is None:
        raise FinanceNotFoundError(f"Finance entry {entry_id} not found")
    return row


def _apply_series_input(row: FinanceSeries, data: SeriesInput) -> None:
    payload = _validated_payload(
        title=data.title,
        note=data.note,
        entry_type=data.entry_type,
        amount_cents=data.amount_cents,
    )
    rule = normalize_rule(data.recurrence, anchor=data.start_date)
    if not rule.is_recurring:
        raise FinanceValidationError("A series needs a recurring frequency; use a one-off entry instead.")

    row.title = payload.title
    row.note = payload.note
    row.entry_type = payload.entry_type
    row.amount_cents = payload.amount_cents
    row.start_date = rule.anchor
    row.end_date = None if rule.end is None else day_of(rule.end)
    row.frequency = rule.frequency
    row.recurrence_interval = rule.interval
    row.by_weekday = list(rule.by_weekday) or None
    row.by_month_day = rule.by_month_day
    row.by_month = rule.by_month


def list_series(session: Session, *, household_id: int) -> list[FinanceSeries]:
    get_household(session, household_id)
    stmt = (
        select(FinanceSeries)
        .where(FinanceSeries.household_id == household_id)
        .order_by(FinanceSeries.start_date.asc(), FinanceSeries.id.asc())
    )
    return list(session.scalars(stmt).all())


def create_series(session: Session, *, household_id: int, data: SeriesInput) -> FinanceSeries:
    get_household(session, household_id)
    row = FinanceSeries(household_id=household_id)
    _apply_series_input(row, data)
    session.add(row)
    session.commit()
    session.refresh(row)
    logger.info(
        "Finance series created series_id=%s household_id=%s frequency=%s interval=%s",
        row.id,
        household_id,
        row.frequency,
        row.recurrence_interval,
    )
    return row


def update_series(session: Session, *, series_id: int, data: SeriesInput) -> FinanceSeries:
    # Edits apply prospectively; stored exceptions are kept as they are.
    row = get_series(session, series_id)
    _apply_series_input(row, data)
    session.commit()
    session.refresh(row)
    logger.info("Finance series updated series_id=%s frequency=%s", row.id, row.frequency)
    return row


def delete_series(session: Session, *, series_id: int) -> None:
    row = get_series(session, series_id)
    exception_count = len(row.exceptions)
    session.delete(row)
    session.commit()
    logger.info("Finance series deleted series_id=%s deleted_exceptions=%s", series_id, exception_count)


def list_entries(
    session: Session,
    *,
    household_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[FinanceEntry]:
    get_household(session, household_id)
    stmt = select(FinanceEntry).where(FinanceEntry.household_id == household_id)
    if start_date is not None:
        stmt = stmt.where(FinanceEntry.entry_date >= start_date)
    if end_date is not None:
        stmt = stmt.where(FinanceEntry.entry_date <= end_date)
    stmt = stmt.order_by(FinanceEntry.entry_date.asc(), FinanceEntry.id.asc())
    return list(session.scalars(stmt).all())


def _apply_entry_input(row: FinanceEntry, data: EntryInput) -> None:
    payload = _validated_payload(
        title=data.title,
        note=data.note,
        entry_type=data.entry_type,
        amount_cents=data.amount_cents,
    )
    row.title = payload.title
    row.note = payload.note
    row.entry_type = payload.entry_type
    row.amount_cents = payload.amount_cents
    row.entry_date = data.entry_date


def create_entry(session: Session, *, household_id: int, data: EntryInput) -> FinanceEntry:
    get_household(session, household_id)
    row = FinanceEntry(household_id=household_id)
    _apply_entry_input(row, data)
    session.add(row)
    session.commit()
    session.refresh(row)
    logger.info("Finance entry created entry_id=%s household_id=%s entry_date=%s", row.id, household_id, row.entry_date)
    return row


def update_entry(session: Session, *, entry_id: int, data: EntryInput) -> FinanceEntry:
    row = get_entry(session, entry_id)
    _apply_entry_input(row, data)
    session.commit()
    session.refresh(row)
    logger.info("Finance entry updated entry_id=%s", row.id)
    return row


def delete_entry(session: Session, *, entry_id: int) -> None:
    row = get_entry(session, entry_id)
    session.delete(row)
    session.commit()
    logger.info("Finance entry deleted entry_id=%s", entry_id)


def _exception_row(session: Session, series_id: int, occurrence_date: date) -> FinanceException | None:
    return session.scalars(
        select(FinanceException).where(
            FinanceException.series_id == series_id,
            FinanceException.occurrence_date == occurrence_date,
        )
    ).first()


def set_series_exception(session: Session, *, series_id: int, data: ExceptionInput) -> FinanceException:
    series = get_series(session, series_id)
    kind = (data.kind or "").strip().upper()

    patch = None
    if kind == EXCEPTION_OVERRIDE:
        patch = build_finance_patch(
            title=data.title,
            note=data.note,
            entry_type=data.entry_type,
            amount_cents=data.amount_cents,
        )
    exception = validate_exception(
        OccurrenceException(series_id=series.id, occurrence_date=data.occurrence_date, kind=kind, patch=patch)
    )
    if not occurs_at(series_rule(series), exception.occurrence_date):
        raise InvalidExceptionError(
            f"Series {series.id} has no occurrence on {exception.occurrence_date.isoformat()}"
        )

    row = _exception_row(session, series.id, exception.occurrence_date)
    if row is None:
        row = FinanceException(series_id=series.id, occurrence_date=exception.occurrence_date)
        session.add(row)
    # Last write wins: the stored exception is replaced as a whole.
    row.kind = exception.kind
    row.title = patch.title if patch else None
    row.note = patch.note if patch else None
    row.entry_type = patch.entry_type if patch else None
    row.amount_cents = patch.amount_cents if patch else None
    session.commit()
    session.refresh(row)
    logger.info(
        "Finance exception stored series_id=%s occurrence_date=%s kind=%s",
        series.id,
        row.occurrence_date,
        row.kind,
    )
    return row


def clear_series_exception(session: Session, *, series_id: int, occurrence_date: date) -> bool:
    get_series(session, series_id)
    row = _exception_row(session, series_id, occurrence_date)
    if row is None:
        return False
    session.delete(row)
    session.commit()
    logger.info("Finance exception cleared series_id=%s occurrence_date=%s", series_id, occurrence_date)
    return True


def get_ledger(
    session: Session,
    *,
    household_id: int,
    window_start: date,
    window_end: date,
    cap: int = DEFAULT_OCCURRENCE_CAP,
    carry_cap: int = DEFAULT_CARRY_OCCURRENCE_CAP,
) -> LedgerView:
    household = get_household(session, household_id)

    # Everything is loaded before materializing so no exception is missed.
    series_rows = list_series(session, household_id=household_id)
    exception_rows = session.scalars(
        select(FinanceException)
        .join(FinanceSeries, FinanceSeries.id == FinanceException.series_id)
        .where(FinanceSeries.household_id == household_id)
        .order_by(FinanceException.id.asc())
    ).all()
    entry_rows = list_entries(session, household_id=household_id)

    ledger = build_ledger(
        [_series_spec(row) for row in series_rows],
        index_exceptions(_exception_from_row(row) for row in exception_rows),
        [_entry_item(row) for row in entry_rows],
        window_start=window_start,
        window_end=window_end,
        starting_balance_cents=household.starting_balance_cents,
        cap=cap,
        carry_cap=carry_cap,
    )
    logger.debug(
        "Ledger built household_id=%s window_start=%s window_end=%s occurrences=%s truncated=%s",
        household_id,
        window_start,
        window_end,
        len(ledger.occurrences),
        ledger.truncated,
    )
    return ledger
