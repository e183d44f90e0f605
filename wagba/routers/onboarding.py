"""
Anonymous onboarding: meal selections kept in the session cookie, the list
of serviced neighborhoods and the pre-onboarding gate.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from wagba.database import get_db
from wagba.schemas import (
    MessageResponse,
    NeighborhoodResponse,
    PreOnboardingRequest,
    PreOnboardingResponse,
    TempMealSelections,
)
from wagba.services import onboarding

router = APIRouter(tags=["Onboarding"])

TEMP_SELECTIONS_KEY = "temp_meal_selections"


@router.post("/api/temp/meal-selections", response_model=MessageResponse)
async def store_meal_selections(payload: TempMealSelections, request: Request) -> MessageResponse:
    request.session[TEMP_SELECTIONS_KEY] = payload.model_dump(mode="json")
    return MessageResponse(message="Meal selections stored successfully")


@router.get("/api/temp/meal-selections", response_model=TempMealSelections)
async def get_meal_selections(request: Request):
    selections = request.session.get(TEMP_SELECTIONS_KEY)
    if not selections:
        return JSONResponse(status_code=404, content=None)
    return selections


@router.get("/api/neighborhoods/serviced", response_model=list[NeighborhoodResponse])
async def serviced_neighborhoods(db: AsyncSession = Depends(get_db)):
    return await onboarding.list_neighborhoods(db, serviced_only=True)


@router.post("/api/pre-onboarding/validate", response_model=PreOnboardingResponse)
async def validate_pre_onboarding(
    payload: PreOnboardingRequest,
    db: AsyncSession = Depends(get_db),
) -> PreOnboardingResponse:
    result = await onboarding.validate_pre_onboarding(
        db, payload.email, payload.neighborhood, payload.invitation_code
    )
    return PreOnboardingResponse(valid=result.valid, message=result.message, reason=result.reason)
