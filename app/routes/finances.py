from __future__ import annotations

from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.config import Settings
from app.db import get_db_session
from app.models import FinanceEntry, FinanceException, FinanceSeries
from app.routes.deps import get_app_settings, http_error, resolve_window
from app.services.finances_service import (
    EntryInput,
    ExceptionInput,
    SeriesInput,
    clear_series_exception,
    create_entry,
    create_series,
    delete_entry,
    delete_series,
    get_ledger,
    list_entries,
    list_series,
    set_series_exception,
    update_entry,
    update_series,
)
from app.services.ledger import parse_money_to_cents

finances_router = APIRouter(tags=["finances"])


class AmountFields(BaseModel):
    amount_cents: int | None = None
    # Human-entered amount such as "12.50" or "1.234,56"; used when amount_cents is absent.
    amount: str | None = None

    def resolved_amount_cents(self) -> int | None:
        if self.amount_cents is not None:
            return self.amount_cents
        if self.amount is None:
            return None
        try:
            return parse_money_to_cents(self.amount)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc


class SeriesRequest(AmountFields):
    entry_type: str
    start_date: date
    recurrence: dict[str, Any] = Field(default_factory=dict)
    title: str = ""
    note: str = ""

    def to_input(self) -> SeriesInput:
        return SeriesInput(
            entry_type=self.entry_type,
            amount_cents=self.resolved_amount_cents(),  # type: ignore[arg-type]
            start_date=self.start_date,
            recurrence=self.recurrence,
            title=self.title,
            note=self.note,
        )


class EntryRequest(AmountFields):
    entry_type: str
    entry_date: date
    title: str = ""
    note: str = ""

    def to_input(self) -> EntryInput:
        return EntryInput(
            entry_type=self.entry_type,
            amount_cents=self.resolved_amount_cents(),  # type: ignore[arg-type]
            entry_date=self.entry_date,
            title=self.title,
            note=self.note,
        )


class ExceptionRequest(AmountFields):
    occurrence_date: date
    kind: str
    title: str | None = None
    note: str | None = None
    entry_type: str | None = None


class SeriesResponse(BaseModel):
    id: int
    household_id: int
    title: str
    note: str | None
    entry_type: str
    amount_cents: int
    start_date: date
    end_date: date | None
    frequency: str
    interval: int
    by_weekday: list[int]
    by_month_day: int | None
    by_month: int | None

    @classmethod
    def from_model(cls, row: FinanceSeries) -> "SeriesResponse":
        return cls(
            id=row.id,
            household_id=row.household_id,
            title=row.title,
            note=row.note,
            entry_type=row.entry_type,
            amount_cents=row.amount_cents,
            start_date=row.start_date,
            end_date=row.end_date,
            frequency=row.frequency,
            interval=row.recurrence_interval,
            by_weekday=list(row.by_weekday or []),
            by_month_day=row.by_month_day,
            by_month=row.by_month,
        )


class EntryResponse(BaseModel):
    id: int
    household_id: int
    title: str
    note: str | None
    entry_type: str
    amount_cents: int
    entry_date: date

    @classmethod
    def from_model(cls, row: FinanceEntry) -> "EntryResponse":
        return cls(
            id=row.id,
            household_id=row.household_id,
            title=row.title,
            note=row.note,
            entry_type=row.entry_type,
            amount_cents=row.amount_cents,
            entry_date=row.entry_date,
        )


def _serialize_exception(row: FinanceException) -> dict[str, object]:
    return {
        "series_id": row.series_id,
        "occurrence_date": row.occurrence_date.isoformat(),
        "kind": row.kind,
        "title": row.title,
        "note": row.note,
        "entry_type": row.entry_type,
        "amount_cents": row.amount_cents,
    }


def _serialize_occurrence(occurrence) -> dict[str, object]:
    return {
        "origin": occurrence.origin,
        "source_id": occurrence.source_id,
        "date": occurrence.occurrence_date.isoformat(),
        "title": occurrence.payload.title,
        "note": occurrence.payload.note,
        "entry_type": occurrence.payload.entry_type,
        "amount_cents": occurrence.payload.amount_cents,
        "is_exception": occurrence.is_exception,
        "exception_kind": occurrence.exception_kind,
    }


def _serialize_ledger(ledger) -> dict[str, object]:
    return {
        "window_start": ledger.window_start.isoformat(),
        "window_end": ledger.window_end.isoformat(),
        "carry": _serialize_occurrence(ledger.carry),
        "occurrences": [_serialize_occurrence(occurrence) for occurrence in ledger.occurrences],
        "totals": {
            "opening_cents": ledger.totals.opening_cents,
            "income_cents": ledger.totals.income_cents,
            "expense_cents": ledger.totals.expense_cents,
            "net_cents": ledger.totals.net_cents,
            "closing_cents": ledger.totals.closing_cents,
        },
        "daily_balances": [
            {"date": balance.day.isoformat(), "balance_cents": balance.balance_cents}
            for balance in ledger.daily_balances
        ],
        "truncated": ledger.truncated,
    }


@finances_router.get("/households/{household_id}/finances/series", response_model=list[SeriesResponse])
def series_list(household_id: int, db: Session = Depends(get_db_session)) -> list[SeriesResponse]:
    try:
        rows = list_series(db, household_id=household_id)
    except LookupError as exc:
        raise http_error(exc) from exc
    return [SeriesResponse.from_model(row) for row in rows]


@finances_router.post("/households/{household_id}/finances/series", response_model=SeriesResponse, status_code=201)
def series_create(
    household_id: int,
    payload: SeriesRequest,
    db: Session = Depends(get_db_session),
) -> SeriesResponse:
    try:
        row = create_series(db, household_id=household_id, data=payload.to_input())
    except (ValueError, LookupError) as exc:
        raise http_error(exc) from exc
    return SeriesResponse.from_model(row)


@finances_router.put("/finances/series/{series_id}", response_model=SeriesResponse)
def series_update(series_id: int, payload: SeriesRequest, db: Session = Depends(get_db_session)) -> SeriesResponse:
    try:
        row = update_series(db, series_id=series_id, data=payload.to_input())
    except (ValueError, LookupError) as exc:
        raise http_error(exc) from exc
    return SeriesResponse.from_model(row)


@finances_router.delete("/finances/series/{series_id}", status_code=204)
def series_delete(series_id: int, db: Session = Depends(get_db_session)) -> Response:
    try:
        delete_series(db, series_id=series_id)
    except LookupError as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


@finances_router.put("/finances/series/{series_id}/exceptions")
def series_exception_set(
    series_id: int,
    payload: ExceptionRequest,
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    try:
        row = set_series_exception(
            db,
            series_id=series_id,
            data=ExceptionInput(
                occurrence_date=payload.occurrence_date,
                kind=payload.kind,
                title=payload.title,
                note=payload.note,
                entry_type=payload.entry_type,
                amount_cents=payload.resolved_amount_cents(),
            ),
        )
    except (ValueError, LookupError) as exc:
        raise http_error(exc) from exc
    return _serialize_exception(row)


@finances_router.delete("/finances/series/{series_id}/exceptions")
def series_exception_clear(
    series_id: int,
    occurrence_date: date = Query(...),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    try:
        cleared = clear_series_exception(db, series_id=series_id, occurrence_date=occurrence_date)
    except LookupError as exc:
        raise http_error(exc) from exc
    return {"series_id": series_id, "occurrence_date": occurrence_date.isoformat(), "cleared": cleared}


@finances_router.get("/households/{household_id}/finances/entries", response_model=list[EntryResponse])
def entries_list(
    household_id: int,
    start: date | None = Query(default=None),
    end: date | None = Query(default=None),
    db: Session = Depends(get_db_session),
) -> list[EntryResponse]:
    try:
        rows = list_entries(db, household_id=household_id, start_date=start, end_date=end)
    except LookupError as exc:
        raise http_error(exc) from exc
    return [EntryResponse.from_model(row) for row in rows]


@finances_router.post("/households/{household_id}/finances/entries", response_model=EntryResponse, status_code=201)
def entries_create(
    household_id: int,
    payload: EntryRequest,
    db: Session = Depends(get_db_session),
) -> EntryResponse:
    try:
        row = create_entry(db, household_id=household_id, data=payload.to_input())
    except (ValueError, LookupError) as exc:
        raise http_error(exc) from exc
    return EntryResponse.from_model(row)


@finances_router.put("/finances/entries/{entry_id}", response_model=EntryResponse)
def entries_update(entry_id: int, payload: EntryRequest, db: Session = Depends(get_db_session)) -> EntryResponse:
    try:
        row = update_entry(db, entry_id=entry_id, data=payload.to_input())
    except (ValueError, LookupError) as exc:
        raise http_error(exc) from exc
    return EntryResponse.from_model(row)


@finances_router.delete("/finances/entries/{entry_id}", status_code=204)
def entries_delete(entry_id: int, db: Session = Depends(get_db_session)) -> Response:
    try:
        delete_entry(db, entry_id=entry_id)
    except LookupError as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


@finances_router.get("/households/{household_id}/finances/ledger")
def ledger_view(
    household_id: int,
    month: str | None = Query(default=None),
    start: date | None = Query(default=None),
    end: date | None = Query(default=None),
    db: Session = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
) -> dict[str, object]:
    window = resolve_window(month, start, end, max_days=settings.max_window_days)
    try:
        ledger = get_ledger(
            db,
            household_id=household_id,
            window_start=window.start,
            window_end=window.end,
            cap=settings.occurrence_cap,
            carry_cap=settings.carry_occurrence_cap,
        )
    except (ValueError, LookupError) as exc:
        raise http_error(exc) from exc
    return _serialize_ledger(ledger)
