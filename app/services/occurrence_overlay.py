from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, fields, replace
from datetime import date
from typing import Any

from app.services.date_engine import day_of, iter_days
from app.services.recurrence_engine import (
    DEFAULT_OCCURRENCE_CAP,
    RecurrenceRule,
    generate_occurrences,
    validate_window,
)


ORIGIN_SERIES = "SERIES"
ORIGIN_ONE_OFF = "ONE_OFF"
ORIGIN_CARRY = "CARRY"

EXCEPTION_SKIP = "SKIP"
EXCEPTION_OVERRIDE = "OVERRIDE"
EXCEPTION_KINDS = (EXCEPTION_SKIP, EXCEPTION_OVERRIDE)

STATUS_OPEN = "OPEN"
STATUS_DONE = "DONE"
OCCURRENCE_STATUSES = (STATUS_OPEN, STATUS_DONE)


class InvalidExceptionError(ValueError):
    pass


@dataclass(frozen=True)
class SeriesSpec:
    series_id: int
    rule: RecurrenceRule
    payload: Any


@dataclass(frozen=True)
class OneOffItem:
    item_id: int
    occurs_on: date
    payload: Any
    status: str | None = None


@dataclass(frozen=True)
class OccurrenceException:
    series_id: int
    occurrence_date: date
    kind: str
    patch: Any | None = None

    @property
    def key(self) -> tuple[int, date]:
        return (self.series_id, self.occurrence_date)


@dataclass(frozen=True)
class MaterializedOccurrence:
    origin: str
    source_id: int | str
    occurrence_date: date
    payload: Any
    is_exception: bool = False
    exception_kind: str | None = None
    status: str | None = None

    @property
    def key(self) -> tuple[int | str, date]:
        return (self.source_id, self.occurrence_date)


@dataclass(frozen=True)
class MaterializedTimeline:
    occurrences: list[MaterializedOccurrence]
    truncated_series_ids: tuple[int, ...] = ()

    @property
    def truncated(self) -> bool:
        return bool(self.truncated_series_ids)


@dataclass(frozen=True)
class DayStatusCount:
    day: date
    open: int = 0
    done: int = 0

    @property
    def total(self) -> int:
        return self.open + self.done


def patch_changes(patch: Any) -> dict[str, Any]:
    return {item.name: getattr(patch, item.name) for item in fields(patch) if getattr(patch, item.name) is not None}


def merge_patch(payload: Any, patch: Any | None) -> Any:
    """Return `payload` with every field set on `patch` replacing the template value."""
    if patch is None:
        return payload
    return replace(payload, **patch_changes(patch))


def validate_exception(exception: OccurrenceException) -> OccurrenceException:
    if exception.kind not in EXCEPTION_KINDS:
        raise InvalidExceptionError(f"Unsupported exception kind: {exception.kind}")
    if exception.kind == EXCEPTION_OVERRIDE:
        if exception.patch is None or not patch_changes(exception.patch):
            raise InvalidExceptionError("An override must change at least one field.")
    return exception


def index_exceptions(
    exceptions: Iterable[OccurrenceException],
) -> dict[tuple[int, date], OccurrenceException]:
    # Later entries replace earlier ones for the same (series, date) key.
    return {exception.key: exception for exception in exceptions}


def _apply_exception(
    series: SeriesSpec,
    occurrence_date: date,
    exception: OccurrenceException | None,
) -> MaterializedOccurrence | None:
    if exception is None:
        return MaterializedOccurrence(
            origin=ORIGIN_SERIES,
            source_id=series.series_id,
            occurrence_date=occurrence_date,
            payload=series.payload,
        )
    if exception.kind == EXCEPTION_SKIP:
        return None
    return MaterializedOccurrence(
        origin=ORIGIN_SERIES,
        source_id=series.series_id,
        occurrence_date=occurrence_date,
        payload=merge_patch(series.payload, exception.patch),
        is_exception=True,
        exception_kind=EXCEPTION_OVERRIDE,
    )


def expand_series(
    series: SeriesSpec,
    exceptions_by_key: Mapping[tuple[int, date], OccurrenceException],
    *,
    window_start: date,
    window_end: date,
    cap: int = DEFAULT_OCCURRENCE_CAP,
) -> tuple[list[MaterializedOccurrence], bool]:
    expansion = generate_occurrences(series.rule, window_start=window_start, window_end=window_end, cap=cap)
    occurrences = []
    for occurrence_date in expansion.dates:
        resolved = _apply_exception(series, occurrence_date, exceptions_by_key.get((series.series_id, occurrence_date)))
        if resolved is not None:
            occurrences.append(resolved)
    return occurrences, expansion.truncated


def _in_window(value: date, window_start: date, window_end: date) -> bool:
    try:
        return window_start <= value <= window_end
    except TypeError:
        # date vs datetime: compare calendar days.
        return day_of(window_start) <= day_of(value) <= day_of(window_end)


def materialize(
    series: Sequence[SeriesSpec],
    exceptions_by_key: Mapping[tuple[int, date], OccurrenceException],
    *,
    window_start: date,
    window_end: date,
    one_offs: Sequence[OneOffItem] = (),
    cap: int = DEFAULT_OCCURRENCE_CAP,
) -> MaterializedTimeline:
    """Expand every series, apply its exceptions and merge in-window one-offs.

    The result is sorted by date. Ties keep input order: one-off items first,
    then series occurrences in the order the series were given.
    """
    validate_window(window_start, window_end)

    merged = [
        MaterializedOccurrence(
            origin=ORIGIN_ONE_OFF,
            source_id=item.item_id,
            occurrence_date=item.occurs_on,
            payload=item.payload,
            status=item.status,
        )
        for item in one_offs
        if _in_window(item.occurs_on, window_start, window_end)
    ]

    truncated_series_ids = []
    for spec in series:
        occurrences, truncated = expand_series(
            spec,
            exceptions_by_key,
            window_start=window_start,
            window_end=window_end,
            cap=cap,
        )
        merged.extend(occurrences)
        if truncated:
            truncated_series_ids.append(spec.series_id)

    merged.sort(key=lambda item: item.occurrence_date)
    return MaterializedTimeline(occurrences=merged, truncated_series_ids=tuple(truncated_series_ids))


def apply_statuses(
    occurrences: Iterable[MaterializedOccurrence],
    status_overlay: Mapping[tuple[int, date], str],
) -> list[MaterializedOccurrence]:
    resolved = []
    for occurrence in occurrences:
        if occurrence.origin == ORIGIN_SERIES:
            status = status_overlay.get(occurrence.key, STATUS_OPEN)
        else:
            status = occurrence.status or STATUS_OPEN
        resolved.append(replace(occurrence, status=status))
    return resolved


def count_statuses_by_day(
    occurrences: Iterable[MaterializedOccurrence],
    *,
    window_start: date,
    window_end: date,
) -> list[DayStatusCount]:
    validate_window(window_start, window_end)
    tallies = {day: [0, 0] for day in iter_days(window_start, window_end)}
    for occurrence in occurrences:
        tally = tallies.get(day_of(occurrence.occurrence_date))
        if tally is None:
            continue
        if occurrence.status == STATUS_DONE:
            tally[1] += 1
        else:
            tally[0] += 1
    return [DayStatusCount(day=day, open=counts[0], done=counts[1]) for day, counts in tallies.items()]
