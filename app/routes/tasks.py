from __future__ import annotations

from datetime import date, datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.config import Settings
from app.db import get_db_session
from app.models import Task, TaskException
from app.routes.deps import get_app_settings, http_error, resolve_window
from app.services.tasks_service import (
    TaskExceptionInput,
    TaskInput,
    clear_task_exception,
    create_task,
    delete_task,
    get_calendar_counts,
    list_task_occurrences,
    list_tasks,
    set_occurrence_status,
    set_task_exception,
    set_task_status,
    task_rule,
    update_task,
)

tasks_router = APIRouter(tags=["tasks"])


class TaskRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    due_at: datetime
    description: str | None = None
    all_day: bool = False
    assignee: str | None = None
    category: str | None = None
    recurrence: dict[str, Any] = Field(default_factory=dict)


class TaskStatusRequest(BaseModel):
    status: str


class OccurrenceStatusRequest(BaseModel):
    occurrence_at: datetime
    status: str


class TaskExceptionRequest(BaseModel):
    occurrence_at: datetime
    kind: str
    title: str | None = None
    description: str | None = None
    assignee: str | None = None
    category: str | None = None


class TaskResponse(BaseModel):
    id: int
    household_id: int
    title: str
    description: str | None
    due_at: datetime
    all_day: bool
    assignee: str | None
    category: str | None
    status: str
    frequency: str
    interval: int
    by_weekday: list[int]
    by_month_day: int | None
    by_month: int | None
    recurrence_end_at: datetime | None
    is_recurring: bool

    @classmethod
    def from_model(cls, row: Task) -> "TaskResponse":
        return cls(
            id=row.id,
            household_id=row.household_id,
            title=row.title,
            description=row.description,
            due_at=row.due_at,
            all_day=row.all_day,
            assignee=row.assignee,
            category=row.category,
            status=row.status,
            frequency=row.frequency,
            interval=row.recurrence_interval,
            by_weekday=list(row.by_weekday or []),
            by_month_day=row.by_month_day,
            by_month=row.by_month,
            recurrence_end_at=row.recurrence_end_at,
            is_recurring=task_rule(row).is_recurring,
        )


def _task_input(payload: TaskRequest) -> TaskInput:
    return TaskInput(
        title=payload.title,
        due_at=payload.due_at,
        description=payload.description,
        all_day=payload.all_day,
        assignee=payload.assignee,
        category=payload.category,
        recurrence=payload.recurrence,
    )


def _serialize_exception(row: TaskException) -> dict[str, object]:
    return {
        "task_id": row.task_id,
        "occurrence_at": row.occurrence_at.isoformat(),
        "kind": row.kind,
        "title": row.title,
        "description": row.description,
        "assignee": row.assignee,
        "category": row.category,
    }


def _serialize_occurrence(occurrence) -> dict[str, object]:
    return {
        "origin": occurrence.origin,
        "task_id": occurrence.source_id,
        "occurrence_at": occurrence.occurrence_date.isoformat(),
        "title": occurrence.payload.title,
        "description": occurrence.payload.description,
        "all_day": occurrence.payload.all_day,
        "assignee": occurrence.payload.assignee,
        "category": occurrence.payload.category,
        "status": occurrence.status,
        "is_exception": occurrence.is_exception,
        "exception_kind": occurrence.exception_kind,
    }


@tasks_router.get("/households/{household_id}/tasks", response_model=list[TaskResponse])
def tasks_list(household_id: int, db: Session = Depends(get_db_session)) -> list[TaskResponse]:
    try:
        rows = list_tasks(db, household_id=household_id)
    except LookupError as exc:
        raise http_error(exc) from exc
    return [TaskResponse.from_model(row) for row in rows]


@tasks_router.post("/households/{household_id}/tasks", response_model=TaskResponse, status_code=201)
def tasks_create(household_id: int, payload: TaskRequest, db: Session = Depends(get_db_session)) -> TaskResponse:
    try:
        row = create_task(db, household_id=household_id, data=_task_input(payload))
    except (ValueError, LookupError) as exc:
        raise http_error(exc) from exc
    return TaskResponse.from_model(row)


@tasks_router.put("/tasks/{task_id}", response_model=TaskResponse)
def tasks_update(task_id: int, payload: TaskRequest, db: Session = Depends(get_db_session)) -> TaskResponse:
    try:
        row = update_task(db, task_id=task_id, data=_task_input(payload))
    except (ValueError, LookupError) as exc:
        raise http_error(exc) from exc
    return TaskResponse.from_model(row)


@tasks_router.delete("/tasks/{task_id}", status_code=204)
def tasks_delete(task_id: int, db: Session = Depends(get_db_session)) -> Response:
    try:
        delete_task(db, task_id=task_id)
    except LookupError as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


@tasks_router.post("/tasks/{task_id}/status", response_model=TaskResponse)
def tasks_set_status(task_id: int, payload: TaskStatusRequest, db: Session = Depends(get_db_session)) -> TaskResponse:
    try:
        row = set_task_status(db, task_id=task_id, status=payload.status)
    except (ValueError, LookupError) as exc:
        raise http_error(exc) from exc
    return TaskResponse.from_model(row)


@tasks_router.post("/tasks/{task_id}/occurrences/status")
def tasks_set_occurrence_status(
    task_id: int,
    payload: OccurrenceStatusRequest,
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    try:
        status = set_occurrence_status(
            db,
            task_id=task_id,
            occurrence_at=payload.occurrence_at,
            status=payload.status,
        )
    except (ValueError, LookupError) as exc:
        raise http_error(exc) from exc
    return {"task_id": task_id, "occurrence_at": payload.occurrence_at.isoformat(), "status": status}


@tasks_router.put("/tasks/{task_id}/exceptions")
def tasks_exception_set(
    task_id: int,
    payload: TaskExceptionRequest,
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    try:
        row = set_task_exception(
            db,
            task_id=task_id,
            data=TaskExceptionInput(
                occurrence_at=payload.occurrence_at,
                kind=payload.kind,
                title=payload.title,
                description=payload.description,
                assignee=payload.assignee,
                category=payload.category,
            ),
        )
    except (ValueError, LookupError) as exc:
        raise http_error(exc) from exc
    return _serialize_exception(row)


@tasks_router.delete("/tasks/{task_id}/exceptions")
def tasks_exception_clear(
    task_id: int,
    occurrence_at: datetime = Query(...),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    try:
        cleared = clear_task_exception(db, task_id=task_id, occurrence_at=occurrence_at)
    except (ValueError, LookupError) as exc:
        raise http_error(exc) from exc
    return {"task_id": task_id, "occurrence_at": occurrence_at.isoformat(), "cleared": cleared}


@tasks_router.get("/households/{household_id}/tasks/occurrences")
def tasks_occurrences(
    household_id: int,
    month: str | None = Query(default=None),
    start: date | None = Query(default=None),
    end: date | None = Query(default=None),
    db: Session = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
) -> dict[str, object]:
    window = resolve_window(month, start, end, max_days=settings.max_window_days)
    try:
        view = list_task_occurrences(
            db,
            household_id=household_id,
            window_start=window.start,
            window_end=window.end,
            cap=settings.occurrence_cap,
        )
    except (ValueError, LookupError) as exc:
        raise http_error(exc) from exc
    return {
        "window_start": window.start.isoformat(),
        "window_end": window.end.isoformat(),
        "occurrences": [_serialize_occurrence(occurrence) for occurrence in view.occurrences],
        "truncated": view.truncated,
    }


@tasks_router.get("/households/{household_id}/calendar")
def tasks_calendar(
    household_id: int,
    month: str | None = Query(default=None),
    start: date | None = Query(default=None),
    end: date | None = Query(default=None),
    db: Session = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
) -> dict[str, object]:
    window = resolve_window(month, start, end, max_days=settings.max_window_days)
    try:
        calendar = get_calendar_counts(
            db,
            household_id=household_id,
            window_start=window.start,
            window_end=window.end,
            cap=settings.occurrence_cap,
        )
    except (ValueError, LookupError) as exc:
        raise http_error(exc) from exc
    return {
        "window_start": window.start.isoformat(),
        "window_end": window.end.isoformat(),
        "days": [
            {"date": count.day.isoformat(), "open": count.open, "done": count.done, "total": count.total}
            for count in calendar.days
        ],
        "truncated": calendar.truncated,
    }
