from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin


class Task(TimestampMixin, Base):
    __tablename__ = "tasks"
    __table_args__ = (
        CheckConstraint("status IN ('OPEN','DONE')", name="ck_tasks_status"),
        CheckConstraint(
            "frequency IN ('NONE','DAILY','WEEKLY','MONTHLY','YEARLY')",
            name="ck_tasks_frequency",
        ),
        CheckConstraint("recurrence_interval >= 1", name="ck_tasks_interval_positive"),
        {"sqlite_autoincrement": True},
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    household_id: Mapped[int] = mapped_column(ForeignKey("households.id", ondelete="CASCADE"), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    due_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    all_day: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    assignee: Mapped[str | None] = mapped_column(String(120), nullable=True)
    category: Mapped[str | None] = mapped_column(String(120), nullable=True)
    # Only meaningful for non-recurring tasks; recurring ones use TaskOccurrenceStatus.
    status: Mapped[str] = mapped_column(String(8), nullable=False, default="OPEN")
    frequency: Mapped[str] = mapped_column(String(16), nullable=False, default="NONE")
    recurrence_interval: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    by_weekday: Mapped[list[int] | None] = mapped_column(JSON, nullable=True)
    by_month_day: Mapped[int | None] = mapped_column(Integer, nullable=True)
    by_month: Mapped[int | None] = mapped_column(Integer, nullable=True)
    recurrence_end_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    occurrence_statuses: Mapped[list["TaskOccurrenceStatus"]] = relationship(
        back_populates="task",
        cascade="all, delete-orphan",
    )
    exceptions: Mapped[list["TaskException"]] = relationship(
        back_populates="task",
        cascade="all, delete-orphan",
    )


class TaskOccurrenceStatus(TimestampMixin, Base):
    __tablename__ = "task_occurrence_statuses"
    __table_args__ = (
        UniqueConstraint("task_id", "occurrence_at", name="uq_task_occurrence_statuses_task_at"),
        CheckConstraint("status IN ('OPEN','DONE')", name="ck_task_occurrence_statuses_status"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    task_id: Mapped[int] = mapped_column(ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False)
    occurrence_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    status: Mapped[str] = mapped_column(String(8), nullable=False)

    task: Mapped[Task] = relationship(back_populates="occurrence_statuses")


class TaskException(TimestampMixin, Base):
    __tablename__ = "task_exceptions"
    __table_args__ = (
        UniqueConstraint("task_id", "occurrence_at", name="uq_task_exceptions_task_at"),
        CheckConstraint("kind IN ('SKIP','OVERRIDE')", name="ck_task_exceptions_kind"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    task_id: Mapped[int] = mapped_column(ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False)
    occurrence_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    assignee: Mapped[str | None] = mapped_column(String(120), nullable=True)
    category: Mapped[str | None] = mapped_column(String(120), nullable=True)

    task: Mapped[Task] = relationship(back_populates="exceptions")
