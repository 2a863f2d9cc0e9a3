from __future__ import annotations

from dataclasses import dataclass
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import Household

logger = logging.getLogger(__name__)


class HouseholdValidationError(ValueError):
    pass


class HouseholdNotFoundError(LookupError):
    pass


@dataclass(frozen=True)
class CreateHouseholdInput:
    name: str
    starting_balance_cents: int = 0


def get_household(session: Session, household_id: int) -> Household:
    household = session.get(Household, household_id)
    if household is None:
        raise HouseholdNotFoundError(f"Household {household_id} not found")
    return household


def list_households(session: Session) -> list[Household]:
    return list(session.scalars(select(Household).order_by(Household.name.asc(), Household.id.asc())).all())


def create_household(session: Session, data: CreateHouseholdInput) -> Household:
    name = data.name.strip()
    if not name:
        raise HouseholdValidationError("Household name is required.")

    household = Household(name=name, starting_balance_cents=int(data.starting_balance_cents))
    session.add(household)
    session.commit()
    session.refresh(household)
    logger.info("Household created household_id=%s", household.id)
    return household


def set_starting_balance(session: Session, *, household_id: int, starting_balance_cents: int) -> Household:
    household = get_household(session, household_id)
    household.starting_balance_cents = int(starting_balance_cents)
    session.commit()
    session.refresh(household)
    logger.info(
        "Household starting balance updated household_id=%s starting_balance_cents=%s",
        household.id,
        household.starting_balance_cents,
    )
    return household
