from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
import logging

from app.services.date_engine import iter_days
from app.services.occurrence_overlay import (
    ORIGIN_CARRY,
    InvalidExceptionError,
    MaterializedOccurrence,
    OccurrenceException,
    OneOffItem,
    SeriesSpec,
    expand_series,
    materialize,
)
from app.services.recurrence_engine import DEFAULT_OCCURRENCE_CAP

logger = logging.getLogger(__name__)


ENTRY_TYPE_INCOME = "INCOME"
ENTRY_TYPE_EXPENSE = "EXPENSE"
ENTRY_TYPES = (ENTRY_TYPE_INCOME, ENTRY_TYPE_EXPENSE)

TITLE_MAX_LENGTH = 80
NOTE_MAX_LENGTH = 500

# Carry sums every occurrence since each series' anchor, so it gets a wider cap.
DEFAULT_CARRY_OCCURRENCE_CAP = 50_000

CARRY_SOURCE_ID = "carry"
CARRY_TITLE = "Carry-over"
CARRY_NOTE = "Computed opening balance (not stored)"


@dataclass(frozen=True)
class FinancePayload:
    title: str
    note: str
    entry_type: str
    amount_cents: int


@dataclass(frozen=True)
class FinancePatch:
    title: str | None = None
    note: str | None = None
    entry_type: str | None = None
    amount_cents: int | None = None


@dataclass(frozen=True)
class LedgerTotals:
    opening_cents: int
    income_cents: int
    expense_cents: int
    net_cents: int
    closing_cents: int


@dataclass(frozen=True)
class DailyBalance:
    day: date
    balance_cents: int


@dataclass(frozen=True)
class LedgerView:
    window_start: date
    window_end: date
    carry: MaterializedOccurrence
    occurrences: list[MaterializedOccurrence]
    totals: LedgerTotals
    daily_balances: list[DailyBalance]
    truncated: bool


def parse_money_to_cents(value: object) -> int:
    """Parse 12.5, "12.50" or "1.234,56" into whole cents."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid amount: {value!r}")
    if isinstance(value, int):
        return value * 100
    text = str(value if value is not None else "").strip()
    if not text:
        return 0
    if "," in text:
        text = text.replace(".", "").replace(",", ".")
    try:
        amount = Decimal(text)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def normalize_entry_type(value: object) -> str:
    entry_type = str(value or "").strip().upper()
    if entry_type not in ENTRY_TYPES:
        raise ValueError(f"Unsupported entry type: {value}")
    return entry_type


def clamp_text(value: str | None, max_length: int) -> str:
    text = (value or "").strip()
    return text[:max_length]


def validate_amount_cents(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, Decimal, float)):
        raise ValueError("Amount must be a number of cents.")
    amount = Decimal(str(value))
    if not amount.is_finite():
        raise ValueError("Amount must be a number of cents.")
    cents = int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if cents <= 0:
        raise ValueError("Amount must be greater than zero.")
    return cents


def build_finance_patch(
    *,
    title: str | None = None,
    note: str | None = None,
    entry_type: str | None = None,
    amount_cents: object | None = None,
) -> FinancePatch:
    try:
        return FinancePatch(
            # A blank title keeps the template title.
            title=None if title is None else (clamp_text(title, TITLE_MAX_LENGTH) or None),
            note=None if note is None else clamp_text(note, NOTE_MAX_LENGTH),
            entry_type=None if entry_type is None else normalize_entry_type(entry_type),
            amount_cents=None if amount_cents is None else validate_amount_cents(amount_cents),
        )
    except ValueError as exc:
        raise InvalidExceptionError(str(exc)) from exc


def signed_cents(payload: FinancePayload) -> int:
    amount = abs(payload.amount_cents)
    return -amount if payload.entry_type == ENTRY_TYPE_EXPENSE else amount


def compute_carry(
    series: Sequence[SeriesSpec],
    exceptions_by_key: Mapping[tuple[int, date], OccurrenceException],
    one_offs: Iterable[OneOffItem],
    *,
    window_start: date,
    starting_balance_cents: int = 0,
    cap: int = DEFAULT_CARRY_OCCURRENCE_CAP,
) -> int:
    """Opening balance for a window: starting balance plus everything dated before it."""
    total = starting_balance_cents
    total += sum(signed_cents(item.payload) for item in one_offs if item.occurs_on < window_start)
    if window_start <= date.min:
        return total

    day_before = window_start - timedelta(days=1)
    for spec in series:
        if spec.rule.anchor > day_before:
            continue
        occurrences, truncated = expand_series(
            spec,
            exceptions_by_key,
            window_start=spec.rule.anchor,
            window_end=day_before,
            cap=cap,
        )
        if truncated:
            logger.warning(
                "Carry expansion truncated series_id=%s window_start=%s cap=%s",
                spec.series_id,
                window_start,
                cap,
            )
        total += sum(signed_cents(occurrence.payload) for occurrence in occurrences)
    return total


def carry_item(window_start: date, carry_cents: int) -> MaterializedOccurrence:
    return MaterializedOccurrence(
        origin=ORIGIN_CARRY,
        source_id=CARRY_SOURCE_ID,
        occurrence_date=window_start,
        payload=FinancePayload(
            title=CARRY_TITLE,
            note=CARRY_NOTE,
            entry_type=ENTRY_TYPE_EXPENSE if carry_cents < 0 else ENTRY_TYPE_INCOME,
            amount_cents=abs(carry_cents),
        ),
    )


def summarize_totals(occurrences: Iterable[MaterializedOccurrence], *, opening_cents: int) -> LedgerTotals:
    income = 0
    expense = 0
    for occurrence in occurrences:
        if occurrence.origin == ORIGIN_CARRY:
            continue
        if occurrence.payload.entry_type == ENTRY_TYPE_EXPENSE:
            expense += abs(occurrence.payload.amount_cents)
        else:
            income += abs(occurrence.payload.amount_cents)
    net = income - expense
    return LedgerTotals(
        opening_cents=opening_cents,
        income_cents=income,
        expense_cents=expense,
        net_cents=net,
        closing_cents=opening_cents + net,
    )


def daily_balances(
    occurrences: Iterable[MaterializedOccurrence],
    *,
    window_start: date,
    window_end: date,
    opening_cents: int,
) -> list[DailyBalance]:
    by_day: dict[date, int] = {}
    for occurrence in occurrences:
        if occurrence.origin == ORIGIN_CARRY:
            continue
        by_day[occurrence.occurrence_date] = by_day.get(occurrence.occurrence_date, 0) + signed_cents(occurrence.payload)

    running = opening_cents
    balances = []
    for day in iter_days(window_start, window_end):
        running += by_day.get(day, 0)
        balances.append(DailyBalance(day=day, balance_cents=running))
    return balances


def build_ledger(
    series: Sequence[SeriesSpec],
    exceptions_by_key: Mapping[tuple[int, date], OccurrenceException],
    one_offs: Sequence[OneOffItem],
    *,
    window_start: date,
    window_end: date,
    starting_balance_cents: int = 0,
    cap: int = DEFAULT_OCCURRENCE_CAP,
    carry_cap: int = DEFAULT_CARRY_OCCURRENCE_CAP,
) -> LedgerView:
    timeline = materialize(
        series,
        exceptions_by_key,
        window_start=window_start,
        window_end=window_end,
        one_offs=one_offs,
        cap=cap,
    )
    opening = compute_carry(
        series,
        exceptions_by_key,
        one_offs,
        window_start=window_start,
        starting_balance_cents=starting_balance_cents,
        cap=carry_cap,
    )
    return LedgerView(
        window_start=window_start,
        window_end=window_end,
        carry=carry_item(window_start, opening),
        occurrences=timeline.occurrences,
        totals=summarize_totals(timeline.occurrences, opening_cents=opening),
        daily_balances=daily_balances(
            timeline.occurrences,
            window_start=window_start,
            window_end=window_end,
            opening_cents=opening,
        ),
        truncated=timeline.truncated,
    )
