"""Household, finance and task tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "households",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("starting_balance_cents", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
    )

    op.create_table(
        "finance_series",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("household_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=80), nullable=False),
        sa.Column("note", sa.Text(), nullable=False, server_default=""),
        sa.Column("entry_type", sa.String(length=16), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("frequency", sa.String(length=16), nullable=False),
        sa.Column("recurrence_interval", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("by_weekday", sa.JSON(), nullable=True),
        sa.Column("by_month_day", sa.Integer(), nullable=True),
        sa.Column("by_month", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["household_id"], ["households.id"], ondelete="CASCADE"),
        sa.CheckConstraint("entry_type IN ('INCOME','EXPENSE')", name="ck_finance_series_entry_type"),
        sa.CheckConstraint(
            "frequency IN ('DAILY','WEEKLY','MONTHLY','YEARLY')",
            name="ck_finance_series_frequency",
        ),
        sa.CheckConstraint("amount_cents > 0", name="ck_finance_series_amount_positive"),
        sa.CheckConstraint("recurrence_interval >= 1", name="ck_finance_series_interval_positive"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_finance_series_household_id", "finance_series", ["household_id"])

    op.create_table(
        "finance_exceptions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("series_id", sa.Integer(), nullable=False),
        sa.Column("occurrence_date", sa.Date(), nullable=False),
        sa.Column("kind", sa.String(length=16), nullable=False),
        sa.Column("title", sa.String(length=80), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("entry_type", sa.String(length=16), nullable=True),
        sa.Column("amount_cents", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["series_id"], ["finance_series.id"], ondelete="CASCADE"),
        sa.CheckConstraint("kind IN ('SKIP','OVERRIDE')", name="ck_finance_exceptions_kind"),
        sa.UniqueConstraint("series_id", "occurrence_date", name="uq_finance_exceptions_series_date"),
    )

    op.create_table(
        "finance_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("household_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=80), nullable=False),
        sa.Column("note", sa.Text(), nullable=False, server_default=""),
        sa.Column("entry_type", sa.String(length=16), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("entry_date", sa.Date(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["household_id"], ["households.id"], ondelete="CASCADE"),
        sa.CheckConstraint("entry_type IN ('INCOME','EXPENSE')", name="ck_finance_entries_entry_type"),
        sa.CheckConstraint("amount_cents > 0", name="ck_finance_entries_amount_positive"),
    )
    op.create_index("ix_finance_entries_household_date", "finance_entries", ["household_id", "entry_date"])

    op.create_table(
        "tasks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("household_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("due_at", sa.DateTime(), nullable=False),
        sa.Column("all_day", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("assignee", sa.String(length=120), nullable=True),
        sa.Column("category", sa.String(length=120), nullable=True),
        sa.Column("status", sa.String(length=8), nullable=False, server_default="OPEN"),
        sa.Column("frequency", sa.String(length=16), nullable=False, server_default="NONE"),
        sa.Column("recurrence_interval", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("by_weekday", sa.JSON(), nullable=True),
        sa.Column("by_month_day", sa.Integer(), nullable=True),
        sa.Column("by_month", sa.Integer(), nullable=True),
        sa.Column("recurrence_end_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["household_id"], ["households.id"], ondelete="CASCADE"),
        sa.CheckConstraint("status IN ('OPEN','DONE')", name="ck_tasks_status"),
        sa.CheckConstraint(
            "frequency IN ('NONE','DAILY','WEEKLY','MONTHLY','YEARLY')",
            name="ck_tasks_frequency",
        ),
        sa.CheckConstraint("recurrence_interval >= 1", name="ck_tasks_interval_positive"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_tasks_household_due_at", "tasks", ["household_id", "due_at"])

    op.create_table(
        "task_occurrence_statuses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("task_id", sa.Integer(), nullable=False),
        sa.Column("occurrence_at", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(length=8), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="CASCADE"),
        sa.CheckConstraint("status IN ('OPEN','DONE')", name="ck_task_occurrence_statuses_status"),
        sa.UniqueConstraint("task_id", "occurrence_at", name="uq_task_occurrence_statuses_task_at"),
    )

    op.create_table(
        "task_exceptions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("task_id", sa.Integer(), nullable=False),
        sa.Column("occurrence_at", sa.DateTime(), nullable=False),
        sa.Column("kind", sa.String(length=16), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("assignee", sa.String(length=120), nullable=True),
        sa.Column("category", sa.String(length=120), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="CASCADE"),
        sa.CheckConstraint("kind IN ('SKIP','OVERRIDE')", name="ck_task_exceptions_kind"),
        sa.UniqueConstraint("task_id", "occurrence_at", name="uq_task_exceptions_task_at"),
    )


def downgrade() -> None:
    op.drop_table("task_exceptions")
    op.drop_table("task_occurrence_statuses")
    op.drop_index("ix_tasks_household_due_at", table_name="tasks")
    op.drop_table("tasks")
    op.drop_index("ix_finance_entries_household_date", table_name="finance_entries")
    op.drop_table("finance_entries")
    op.drop_table("finance_exceptions")
    op.drop_index("ix_finance_series_household_id", table_name="finance_series")
    op.drop_table("finance_series")
    op.drop_table("households")
