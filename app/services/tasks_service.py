from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import Task, TaskException, TaskOccurrenceStatus
from app.services.date_engine import as_datetime_bound, day_of
from app.services.households_service import get_household
from app.services.occurrence_overlay import (
    EXCEPTION_OVERRIDE,
    OCCURRENCE_STATUSES,
    DayStatusCount,
    InvalidExceptionError,
    MaterializedOccurrence,
    OccurrenceException,
    OneOffItem,
    SeriesSpec,
    apply_statuses,
    count_statuses_by_day,
    index_exceptions,
    materialize,
    validate_exception,
)
from app.services.recurrence_engine import DEFAULT_OCCURRENCE_CAP, RecurrenceRule, occurs_at, validate_window
from app.services.rule_normalization import normalize_rule

logger = logging.getLogger(__name__)


TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 2000


class TaskValidationError(ValueError):
    pass


class TaskNotFoundError(LookupError):
    pass


@dataclass(frozen=True)
class TaskPayload:
    title: str
    description: str | None = None
    all_day: bool = False
    assignee: str | None = None
    category: str | None = None


@dataclass(frozen=True)
class TaskPatch:
    title: str | None = None
    description: str | None = None
    assignee: str | None = None
    category: str | None = None


@dataclass(frozen=True)
class TaskInput:
    title: str
    due_at: datetime
    description: str | None = None
    all_day: bool = False
    assignee: str | None = None
    category: str | None = None
    recurrence: Mapping[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class TaskExceptionInput:
    occurrence_at: datetime
    kind: str
    title: str | None = None
    description: str | None = None
    assignee: str | None = None
    category: str | None = None


@dataclass(frozen=True)
class CalendarCounts:
    days: list[DayStatusCount]
    truncated: bool


@dataclass(frozen=True)
class TaskOccurrencesView:
    window_start: datetime
    window_end: datetime
    occurrences: list[MaterializedOccurrence]
    truncated: bool


def _clean_optional(value: str | None, max_length: int) -> str | None:
    text = (value or "").strip()
    return text[:max_length] or None


def _require_local(value: datetime, label: str) -> datetime:
    if not isinstance(value, datetime):
        raise TaskValidationError(f"{label} must be a datetime.")
    if value.tzinfo is not None:
        raise TaskValidationError(f"{label} must be a local datetime without a UTC offset.")
    return value


def _normalize_status(value: str) -> str:
    status = (value or "").strip().upper()
    if status not in OCCURRENCE_STATUSES:
        raise TaskValidationError(f"Unsupported status: {value}")
    return status


def task_rule(row: Task) -> RecurrenceRule:
    return RecurrenceRule(
        frequency=row.frequency,
        anchor=row.due_at,
        interval=row.recurrence_interval,
        end=row.recurrence_end_at,
        by_weekday=tuple(row.by_weekday or ()),
        by_month_day=row.by_month_day,
        by_month=row.by_month,
    )


def is_recurring_task(row: Task) -> bool:
    return task_rule(row).is_recurring


def _task_payload(row: Task) -> TaskPayload:
    return TaskPayload(
        title=row.title,
        description=row.description,
        all_day=bool(row.all_day),
        assignee=row.assignee,
        category=row.category,
    )


def _exception_from_row(row: TaskException) -> OccurrenceException:
    patch = None
    if row.kind == EXCEPTION_OVERRIDE:
        patch = TaskPatch(title=row.title, description=row.description, assignee=row.assignee, category=row.category)
    return OccurrenceException(series_id=row.task_id, occurrence_date=row.occurrence_at, kind=row.kind, patch=patch)


def get_task(session: Session, task_id: int) -> Task:
    row = session.get(Task, task_id)
    if row is None:
        raise TaskNotFoundError(f"Task {task_id} not found")
    return row


def list_tasks(session: Session, *, household_id: int) -> list[Task]:
    get_household(session, household_id)
    stmt = select(Task).where(Task.household_id == household_id).order_by(Task.due_at.asc(), Task.id.asc())
    return list(session.scalars(stmt).all())


def _apply_task_input(row: Task, data: TaskInput) -> None:
    title = (data.title or "").strip()
    if not title:
        raise TaskValidationError("Task title is required.")
    if len(title) > TITLE_MAX_LENGTH:
        raise TaskValidationError(f"Task title must be at most {TITLE_MAX_LENGTH} characters.")
    _require_local(data.due_at, "Task due_at")

    rule = normalize_rule(data.recurrence, anchor=data.due_at)

    row.title = title
    row.description = _clean_optional(data.description, DESCRIPTION_MAX_LENGTH)
    row.all_day = bool(data.all_day)
    row.assignee = _clean_optional(data.assignee, 120)
    row.category = _clean_optional(data.category, 120)
    row.due_at = data.due_at
    row.frequency = rule.frequency
    row.recurrence_interval = rule.interval
    row.recurrence_end_at = None if rule.end is None else as_datetime_bound(rule.end, upper=True)
    row.by_weekday = list(rule.by_weekday) or None
    row.by_month_day = rule.by_month_day
    row.by_month = rule.by_month


def create_task(session: Session, *, household_id: int, data: TaskInput) -> Task:
    get_household(session, household_id)
    row = Task(household_id=household_id, status="OPEN")
    _apply_task_input(row, data)
    session.add(row)
    session.commit()
    session.refresh(row)
    logger.info(
        "Task created task_id=%s household_id=%s frequency=%s due_at=%s",
        row.id,
        household_id,
        row.frequency,
        row.due_at,
    )
    return row


def update_task(session: Session, *, task_id: int, data: TaskInput) -> Task:
    # Existing occurrence statuses and exceptions stay untouched.
    row = get_task(session, task_id)
    _apply_task_input(row, data)
    session.commit()
    session.refresh(row)
    logger.info("Task updated task_id=%s frequency=%s", row.id, row.frequency)
    return row


def delete_task(session: Session, *, task_id: int) -> None:
    row = get_task(session, task_id)
    session.delete(row)
    session.commit()
    logger.info("Task deleted task_id=%s", task_id)


def set_task_status(session: Session, *, task_id: int, status: str) -> Task:
    row = get_task(session, task_id)
    if is_recurring_task(row):
        raise TaskValidationError("Recurring tasks track status per occurrence.")
    row.status = _normalize_status(status)
    session.commit()
    session.refresh(row)
    logger.info("Task status set task_id=%s status=%s", row.id, row.status)
    return row


def _require_occurrence(row: Task, occurrence_at: datetime) -> None:
    if not occurs_at(task_rule(row), occurrence_at):
        raise TaskValidationError(f"Task {row.id} has no occurrence at {occurrence_at.isoformat()}")


def set_occurrence_status(session: Session, *, task_id: int, occurrence_at: datetime, status: str) -> str:
    """Set the status of one occurrence; non-recurring tasks are updated in place."""
    row = get_task(session, task_id)
    resolved = _normalize_status(status)
    _require_local(occurrence_at, "occurrence_at")
    _require_occurrence(row, occurrence_at)
    if not is_recurring_task(row):
        set_task_status(session, task_id=task_id, status=resolved)
        return resolved

    record = session.scalars(
        select(TaskOccurrenceStatus).where(
            TaskOccurrenceStatus.task_id == row.id,
            TaskOccurrenceStatus.occurrence_at == occurrence_at,
        )
    ).first()
    if record is None:
        record = TaskOccurrenceStatus(task_id=row.id, occurrence_at=occurrence_at)
        session.add(record)
    record.status = resolved
    session.commit()
    logger.info("Task occurrence status set task_id=%s occurrence_at=%s status=%s", row.id, occurrence_at, resolved)
    return resolved


def _task_exception_row(session: Session, task_id: int, occurrence_at: datetime) -> TaskException | None:
    return session.scalars(
        select(TaskException).where(
            TaskException.task_id == task_id,
            TaskException.occurrence_at == occurrence_at,
        )
    ).first()


def set_task_exception(session: Session, *, task_id: int, data: TaskExceptionInput) -> TaskException:
    row = get_task(session, task_id)
    if not is_recurring_task(row):
        raise InvalidExceptionError("Exceptions only apply to recurring tasks.")

    _require_local(data.occurrence_at, "occurrence_at")
    kind = (data.kind or "").strip().upper()
    patch = None
    if kind == EXCEPTION_OVERRIDE:
        patch = TaskPatch(
            title=_clean_optional(data.title, TITLE_MAX_LENGTH),
            description=None if data.description is None else (data.description.strip()[:DESCRIPTION_MAX_LENGTH]),
            assignee=_clean_optional(data.assignee, 120),
            category=_clean_optional(data.category, 120),
        )
    validate_exception(OccurrenceException(series_id=row.id, occurrence_date=data.occurrence_at, kind=kind, patch=patch))
    if not occurs_at(task_rule(row), data.occurrence_at):
        raise InvalidExceptionError(f"Task {row.id} has no occurrence at {data.occurrence_at.isoformat()}")

    record = _task_exception_row(session, row.id, data.occurrence_at)
    if record is None:
        record = TaskException(task_id=row.id, occurrence_at=data.occurrence_at)
        session.add(record)
    record.kind = kind
    record.title = patch.title if patch else None
    record.description = patch.description if patch else None
    record.assignee = patch.assignee if patch else None
    record.category = patch.category if patch else None
    session.commit()
    session.refresh(record)
    logger.info("Task exception stored task_id=%s occurrence_at=%s kind=%s", row.id, record.occurrence_at, record.kind)
    return record


def clear_task_exception(session: Session, *, task_id: int, occurrence_at: datetime) -> bool:
    get_task(session, task_id)
    _require_local(occurrence_at, "occurrence_at")
    record = _task_exception_row(session, task_id, occurrence_at)
    if record is None:
        return False
    session.delete(record)
    session.commit()
    logger.info("Task exception cleared task_id=%s occurrence_at=%s", task_id, occurrence_at)
    return True


def list_task_occurrences(
    session: Session,
    *,
    household_id: int,
    window_start: date,
    window_end: date,
    cap: int = DEFAULT_OCCURRENCE_CAP,
) -> TaskOccurrencesView:
    validate_window(window_start, window_end)
    get_household(session, household_id)
    start = as_datetime_bound(window_start, upper=False)
    end = as_datetime_bound(window_end, upper=True)

    tasks = list_tasks(session, household_id=household_id)
    task_ids = [task.id for task in tasks]
    status_rows = []
    exception_rows = []
    if task_ids:
        status_rows = session.scalars(
            select(TaskOccurrenceStatus).where(
                TaskOccurrenceStatus.task_id.in_(task_ids),
                TaskOccurrenceStatus.occurrence_at >= start,
                TaskOccurrenceStatus.occurrence_at <= end,
            )
        ).all()
        exception_rows = session.scalars(
            select(TaskException).where(TaskException.task_id.in_(task_ids)).order_by(TaskException.id.asc())
        ).all()

    series = []
    one_offs = []
    for task in tasks:
        if is_recurring_task(task):
            series.append(SeriesSpec(series_id=task.id, rule=task_rule(task), payload=_task_payload(task)))
        else:
            one_offs.append(OneOffItem(item_id=task.id, occurs_on=task.due_at, payload=_task_payload(task), status=task.status))

    timeline = materialize(
        series,
        index_exceptions(_exception_from_row(row) for row in exception_rows),
        window_start=start,
        window_end=end,
        one_offs=one_offs,
        cap=cap,
    )
    status_overlay = {(row.task_id, row.occurrence_at): row.status for row in status_rows}
    occurrences = apply_statuses(timeline.occurrences, status_overlay)
    if timeline.truncated:
        logger.info(
            "Task occurrences truncated household_id=%s task_ids=%s cap=%s",
            household_id,
            ",".join(str(task_id) for task_id in timeline.truncated_series_ids),
            cap,
        )
    return TaskOccurrencesView(window_start=start, window_end=end, occurrences=occurrences, truncated=timeline.truncated)


def get_calendar_counts(
    session: Session,
    *,
    household_id: int,
    window_start: date,
    window_end: date,
    cap: int = DEFAULT_OCCURRENCE_CAP,
) -> CalendarCounts:
    view = list_task_occurrences(
        session,
        household_id=household_id,
        window_start=window_start,
        window_end=window_end,
        cap=cap,
    )
    days = count_statuses_by_day(view.occurrences, window_start=day_of(view.window_start), window_end=day_of(view.window_end))
    return CalendarCounts(days=days, truncated=view.truncated)
