from __future__ import annotations

import logging

from sqlalchemy import inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.db import SessionLocal
from app.models import Household

logger = logging.getLogger(__name__)


def seed_default_household(session: Session, *, name: str) -> Household | None:
    """Create the first household when none exists; None when seeding was skipped."""
    if not name:
        return None
    tables = set(inspect(session.bind).get_table_names())
    if "households" not in tables:
        logger.info("Skipping default seed; schema not ready yet")
        return None
    if session.scalars(select(Household).limit(1)).first() is not None:
        return None

    household = Household(name=name, starting_balance_cents=0)
    session.add(household)
    session.commit()
    session.refresh(household)
    logger.info("Default household seeded household_id=%s", household.id)
    return household


def seed_defaults_if_ready() -> None:
    settings = get_settings()
    with SessionLocal() as session:
        try:
            seed_default_household(session, name=settings.default_household_name)
        except SQLAlchemyError:
            session.rollback()
            logger.exception("Default seeding failed")
