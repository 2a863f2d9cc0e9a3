from __future__ import annotations

from datetime import date

from fastapi import HTTPException

from app.config import Settings, get_settings
from app.services.date_engine import DateWindow, month_window
from app.services.recurrence_engine import validate_window_span


def get_app_settings() -> Settings:
    return get_settings()


def resolve_window(month: str | None, start: date | None, end: date | None, *, max_days: int = 0) -> DateWindow:
    """Resolve `month=YYYY-MM` or an explicit inclusive `start`/`end` pair.

    Explicit windows longer than `max_days` are rejected with 400.
    """
    if month:
        try:
            return month_window(month)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
    if start is None or end is None:
        raise HTTPException(status_code=400, detail="Provide month=YYYY-MM or both start and end.")
    try:
        validate_window_span(start, end, max_days=max_days)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return DateWindow(start=start, end=end)


def http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, LookupError):
        return HTTPException(status_code=404, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))
