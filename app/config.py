from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    database_url: str
    app_host: str
    app_port: int
    sqlite_busy_timeout_ms: int
    occurrence_cap: int
    carry_occurrence_cap: int
    max_window_days: int
    default_household_name: str
    run_startup_jobs: bool


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def get_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./hometrack.db"),
        app_host=os.getenv("APP_HOST", "0.0.0.0"),
        app_port=int(os.getenv("APP_PORT", "8000")),
        sqlite_busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
        occurrence_cap=int(os.getenv("OCCURRENCE_CAP", "1500")),
        carry_occurrence_cap=int(os.getenv("CARRY_OCCURRENCE_CAP", "50000")),
        max_window_days=int(os.getenv("MAX_WINDOW_DAYS", "3660")),
        default_household_name=os.getenv("DEFAULT_HOUSEHOLD_NAME", "Home").strip(),
        run_startup_jobs=_env_flag("RUN_STARTUP_JOBS", "1"),
    )
