from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db import get_db_session
from app.models import Household
from app.routes.deps import http_error
from app.routes.finances import finances_router
from app.routes.tasks import tasks_router
from app.services.households_service import (
    CreateHouseholdInput,
    create_household,
    get_household,
    list_households,
    set_starting_balance,
)

api_router = APIRouter(tags=["api"])


class HouseholdCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    starting_balance_cents: int = 0


class StartingBalanceRequest(BaseModel):
    starting_balance_cents: int


class HouseholdResponse(BaseModel):
    id: int
    name: str
    starting_balance_cents: int

    @classmethod
    def from_model(cls, household: Household) -> "HouseholdResponse":
        return cls(
            id=household.id,
            name=household.name,
            starting_balance_cents=household.starting_balance_cents,
        )


@api_router.get("/health")
def health_check(db: Session = Depends(get_db_session)) -> dict[str, str]:
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=503, detail="database unavailable") from exc
    return {"status": "ok"}


@api_router.get("/households", response_model=list[HouseholdResponse])
def households_list(db: Session = Depends(get_db_session)) -> list[HouseholdResponse]:
    return [HouseholdResponse.from_model(household) for household in list_households(db)]


@api_router.post("/households", response_model=HouseholdResponse, status_code=201)
def households_create(payload: HouseholdCreateRequest, db: Session = Depends(get_db_session)) -> HouseholdResponse:
    try:
        household = create_household(
            db,
            CreateHouseholdInput(name=payload.name, starting_balance_cents=payload.starting_balance_cents),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return HouseholdResponse.from_model(household)


@api_router.get("/households/{household_id}", response_model=HouseholdResponse)
def households_get(household_id: int, db: Session = Depends(get_db_session)) -> HouseholdResponse:
    try:
        household = get_household(db, household_id)
    except LookupError as exc:
        raise http_error(exc) from exc
    return HouseholdResponse.from_model(household)


@api_router.put("/households/{household_id}/starting-balance", response_model=HouseholdResponse)
def households_set_starting_balance(
    household_id: int,
    payload: StartingBalanceRequest,
    db: Session = Depends(get_db_session),
) -> HouseholdResponse:
    try:
        household = set_starting_balance(
            db,
            household_id=household_id,
            starting_balance_cents=payload.starting_balance_cents,
        )
    except LookupError as exc:
        raise http_error(exc) from exc
    return HouseholdResponse.from_model(household)


api_router.include_router(finances_router)
api_router.include_router(tasks_router)
