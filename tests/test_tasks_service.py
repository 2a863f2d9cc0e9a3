from __future__ import annotations

from datetime import date, datetime, timezone

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker

import app.models  # noqa: F401
from app.models.base import Base
from app.models.tasks import TaskOccurrenceStatus
from app.services.households_service import CreateHouseholdInput, create_household
from app.services.occurrence_overlay import InvalidExceptionError
from app.services.tasks_service import (
    TaskExceptionInput,
    TaskInput,
    TaskNotFoundError,
    TaskValidationError,
    clear_task_exception,
    create_task,
    delete_task,
    get_calendar_counts,
    list_task_occurrences,
    list_tasks,
    set_occurrence_status,
    set_task_exception,
    set_task_status,
)


def _make_session(tmp_path) -> Session:
    db_path = tmp_path / "tasks.db"
    engine = create_engine(f"sqlite:///{db_path}", future=True)
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    return SessionLocal()


def _weekly_trash(session: Session, household_id: int):
    return create_task(
        session,
        household_id=household_id,
        data=TaskInput(
            title="Take out trash",
            due_at=datetime(2024, 3, 4, 9, 0),
            assignee="Alex",
            recurrence={"frequency": "WEEKLY"},
        ),
    )


def test_occurrence_status_does_not_leak_to_other_occurrences(tmp_path) -> None:
    with _make_session(tmp_path) as session:
        household = create_household(session, CreateHouseholdInput(name="Home"))
        task = _weekly_trash(session, household.id)

        set_occurrence_status(session, task_id=task.id, occurrence_at=datetime(2024, 3, 4, 9, 0), status="done")

        view = list_task_occurrences(
            session,
            household_id=household.id,
            window_start=date(2024, 3, 1),
            window_end=date(2024, 3, 17),
        )
        assert [(item.occurrence_date, item.status) for item in view.occurrences] == [
            (datetime(2024, 3, 4, 9, 0), "DONE"),
            (datetime(2024, 3, 11, 9, 0), "OPEN"),
        ]
        session.refresh(task)
        assert task.status == "OPEN"


def test_occurrence_status_upserts_and_validates(tmp_path) -> None:
    with _make_session(tmp_path) as session:
        household = create_household(session, CreateHouseholdInput(name="Home"))
        task = _weekly_trash(session, household.id)
        occurrence_at = datetime(2024, 3, 11, 9, 0)

        set_occurrence_status(session, task_id=task.id, occurrence_at=occurrence_at, status="DONE")
        set_occurrence_status(session, task_id=task.id, occurrence_at=occurrence_at, status="OPEN")
        assert session.scalar(select(func.count()).select_from(TaskOccurrenceStatus)) == 1

        with pytest.raises(TaskValidationError):
            set_occurrence_status(session, task_id=task.id, occurrence_at=datetime(2024, 3, 12, 9, 0), status="DONE")
        with pytest.raises(TaskValidationError):
            set_occurrence_status(session, task_id=task.id, occurrence_at=occurrence_at, status="LATER")
        with pytest.raises(TaskValidationError):
            set_occurrence_status(
                session,
                task_id=task.id,
                occurrence_at=datetime(2024, 3, 11, 9, 0, tzinfo=timezone.utc),
                status="DONE",
            )
        with pytest.raises(TaskValidationError):
            set_task_status(session, task_id=task.id, status="DONE")
        with pytest.raises(TaskNotFoundError):
            set_occurrence_status(session, task_id=999, occurrence_at=occurrence_at, status="DONE")


def test_non_recurring_task_tracks_status_on_row(tmp_path) -> None:
    with _make_session(tmp_path) as session:
        household = create_household(session, CreateHouseholdInput(name="Home"))
        task = create_task(
            session,
            household_id=household.id,
            data=TaskInput(title="Call plumber", due_at=datetime(2024, 3, 6, 14, 0)),
        )
        assert task.frequency == "NONE"

        set_task_status(session, task_id=task.id, status="DONE")
        view = list_task_occurrences(
            session,
            household_id=household.id,
            window_start=date(2024, 3, 1),
            window_end=date(2024, 3, 31),
        )
        assert [(item.origin, item.status) for item in view.occurrences] == [("ONE_OFF", "DONE")]

        set_occurrence_status(session, task_id=task.id, occurrence_at=datetime(2024, 3, 6, 14, 0), status="OPEN")
        session.refresh(task)
        assert task.status == "OPEN"

        with pytest.raises(InvalidExceptionError):
            set_task_exception(
                session,
                task_id=task.id,
                data=TaskExceptionInput(occurrence_at=datetime(2024, 3, 6, 14, 0), kind="SKIP"),
            )


def test_task_exceptions_skip_and_override(tmp_path) -> None:
    with _make_session(tmp_path) as session:
        household = create_household(session, CreateHouseholdInput(name="Home"))
        task = _weekly_trash(session, household.id)

        set_task_exception(
            session,
            task_id=task.id,
            data=TaskExceptionInput(occurrence_at=datetime(2024, 3, 11, 9, 0), kind="SKIP"),
        )
        set_task_exception(
            session,
            task_id=task.id,
            data=TaskExceptionInput(occurrence_at=datetime(2024, 3, 18, 9, 0), kind="OVERRIDE", assignee="Sam"),
        )

        view = list_task_occurrences(
            session,
            household_id=household.id,
            window_start=date(2024, 3, 1),
            window_end=date(2024, 3, 24),
        )
        assert [(item.occurrence_date.day, item.payload.assignee) for item in view.occurrences] == [(4, "Alex"), (18, "Sam")]
        assert view.occurrences[1].payload.title == "Take out trash"

        with pytest.raises(InvalidExceptionError):
            set_task_exception(
                session,
                task_id=task.id,
                data=TaskExceptionInput(occurrence_at=datetime(2024, 3, 19, 9, 0), kind="SKIP"),
            )

        assert clear_task_exception(session, task_id=task.id, occurrence_at=datetime(2024, 3, 11, 9, 0)) is True
        view = list_task_occurrences(
            session,
            household_id=household.id,
            window_start=date(2024, 3, 11),
            window_end=date(2024, 3, 11),
        )
        assert len(view.occurrences) == 1


def test_recurrence_end_date_bounds_occurrences(tmp_path) -> None:
    with _make_session(tmp_path) as session:
        household = create_household(session, CreateHouseholdInput(name="Home"))
        create_task(
            session,
            household_id=household.id,
            data=TaskInput(
                title="Water plants",
                due_at=datetime(2024, 3, 4, 8, 0),
                recurrence={"frequency": "DAILY", "endDate": "2024-03-06"},
            ),
        )

        view = list_task_occurrences(
            session,
            household_id=household.id,
            window_start=date(2024, 3, 1),
            window_end=date(2024, 3, 31),
        )
        assert [item.occurrence_date.day for item in view.occurrences] == [4, 5, 6]


def test_calendar_counts_per_day(tmp_path) -> None:
    with _make_session(tmp_path) as session:
        household = create_household(session, CreateHouseholdInput(name="Home"))
        task = _weekly_trash(session, household.id)
        create_task(
            session,
            household_id=household.id,
            data=TaskInput(title="Buy filters", due_at=datetime(2024, 3, 4, 17, 0)),
        )
        set_occurrence_status(session, task_id=task.id, occurrence_at=datetime(2024, 3, 4, 9, 0), status="DONE")

        calendar = get_calendar_counts(
            session,
            household_id=household.id,
            window_start=date(2024, 3, 1),
            window_end=date(2024, 3, 31),
        )
        by_day = {count.day: (count.open, count.done) for count in calendar.days}
        assert len(calendar.days) == 31
        assert calendar.truncated is False
        assert by_day[date(2024, 3, 4)] == (1, 1)
        assert by_day[date(2024, 3, 11)] == (1, 0)
        assert by_day[date(2024, 3, 5)] == (0, 0)


def test_delete_task_removes_occurrence_statuses(tmp_path) -> None:
    with _make_session(tmp_path) as session:
        household = create_household(session, CreateHouseholdInput(name="Home"))
        task = _weekly_trash(session, household.id)
        set_occurrence_status(session, task_id=task.id, occurrence_at=datetime(2024, 3, 4, 9, 0), status="DONE")

        delete_task(session, task_id=task.id)
        assert session.scalar(select(func.count()).select_from(TaskOccurrenceStatus)) == 0


def test_task_validation(tmp_path) -> None:
    with _make_session(tmp_path) as session:
        household = create_household(session, CreateHouseholdInput(name="Home"))

        with pytest.raises(TaskValidationError):
            create_task(session, household_id=household.id, data=TaskInput(title="  ", due_at=datetime(2024, 3, 4, 9, 0)))
        with pytest.raises(TaskValidationError):
            create_task(
                session,
                household_id=household.id,
                data=TaskInput(title="Dust", due_at=datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)),
            )
        with pytest.raises(ValueError):
            create_task(
                session,
                household_id=household.id,
                data=TaskInput(title="Dust", due_at=datetime(2024, 3, 4, 9, 0), recurrence={"frequency": "fortnightly"}),
            )


def test_non_recurring_task_rejects_status_for_other_datetimes(tmp_path) -> None:
    with _make_session(tmp_path) as session:
        household = create_household(session, CreateHouseholdInput(name="Home"))
        task = create_task(
            session,
            household_id=household.id,
            data=TaskInput(title="Renew passport", due_at=datetime(2024, 3, 6, 14, 0)),
        )

        with pytest.raises(TaskValidationError):
            set_occurrence_status(session, task_id=task.id, occurrence_at=datetime(2024, 3, 7, 14, 0), status="DONE")
        session.refresh(task)
        assert task.status == "OPEN"


def test_list_tasks_for_unknown_household(tmp_path) -> None:
    with _make_session(tmp_path) as session:
        with pytest.raises(LookupError):
            list_tasks(session, household_id=404)
