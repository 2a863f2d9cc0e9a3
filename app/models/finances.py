from __future__ import annotations

from datetime import date

from sqlalchemy import JSON, CheckConstraint, Date, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin


ENTRY_TYPE_CHECK = "entry_type IN ('INCOME','EXPENSE')"


class FinanceSeries(TimestampMixin, Base):
    __tablename__ = "finance_series"
    __table_args__ = (
        CheckConstraint(ENTRY_TYPE_CHECK, name="ck_finance_series_entry_type"),
        CheckConstraint(
            "frequency IN ('DAILY','WEEKLY','MONTHLY','YEARLY')",
            name="ck_finance_series_frequency",
        ),
        CheckConstraint("amount_cents > 0", name="ck_finance_series_amount_positive"),
        CheckConstraint("recurrence_interval >= 1", name="ck_finance_series_interval_positive"),
        {"sqlite_autoincrement": True},
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    household_id: Mapped[int] = mapped_column(ForeignKey("households.id", ondelete="CASCADE"), nullable=False)
    title: Mapped[str] = mapped_column(String(80), nullable=False)
    note: Mapped[str] = mapped_column(Text, nullable=False, default="")
    entry_type: Mapped[str] = mapped_column(String(16), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    frequency: Mapped[str] = mapped_column(String(16), nullable=False)
    recurrence_interval: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    by_weekday: Mapped[list[int] | None] = mapped_column(JSON, nullable=True)
    by_month_day: Mapped[int | None] = mapped_column(Integer, nullable=True)
    by_month: Mapped[int | None] = mapped_column(Integer, nullable=True)

    exceptions: Mapped[list["FinanceException"]] = relationship(
        back_populates="series",
        cascade="all, delete-orphan",
    )


class FinanceException(TimestampMixin, Base):
    __tablename__ = "finance_exceptions"
    __table_args__ = (
        UniqueConstraint("series_id", "occurrence_date", name="uq_finance_exceptions_series_date"),
        CheckConstraint("kind IN ('SKIP','OVERRIDE')", name="ck_finance_exceptions_kind"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    series_id: Mapped[int] = mapped_column(ForeignKey("finance_series.id", ondelete="CASCADE"), nullable=False)
    occurrence_date: Mapped[date] = mapped_column(Date, nullable=False)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    title: Mapped[str | None] = mapped_column(String(80), nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    entry_type: Mapped[str | None] = mapped_column(String(16), nullable=True)
    amount_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)

    series: Mapped[FinanceSeries] = relationship(back_populates="exceptions")


class FinanceEntry(TimestampMixin, Base):
    __tablename__ = "finance_entries"
    __table_args__ = (
        CheckConstraint(ENTRY_TYPE_CHECK, name="ck_finance_entries_entry_type"),
        CheckConstraint("amount_cents > 0", name="ck_finance_entries_amount_positive"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    household_id: Mapped[int] = mapped_column(ForeignKey("households.id", ondelete="CASCADE"), nullable=False)
    title: Mapped[str] = mapped_column(String(80), nullable=False)
    note: Mapped[str] = mapped_column(Text, nullable=False, default="")
    entry_type: Mapped[str] = mapped_column(String(16), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    entry_date: Mapped[date] = mapped_column(Date, nullable=False)
