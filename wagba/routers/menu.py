"""
Public menu endpoints: weeks, meals, a week's menu and current prices.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from wagba.core.exceptions import NotFoundError
from wagba.database import get_db
from wagba.schemas import MealListResponse, MenuResponse, PricingResponse, WeekListResponse, WeekResponse
from wagba.services import menu, weeks
from wagba.services.pricing import (
    BASE_DELIVERY_KEY,
    BASE_MEAL_PRICE,
    EXPRESS_DELIVERY_KEY,
    LARGE_ADDON_KEY,
    pricing_service,
)

router = APIRouter(tags=["Menu"])


@router.get("/api/weeks", response_model=WeekListResponse)
async def list_weeks(db: AsyncSession = Depends(get_db)):
    """All menu weeks; future weeks are generated up to the horizon first."""
    await weeks.ensure_future_weeks(db)
    return {"weeks": await weeks.list_weeks(db)}


@router.get("/api/weeks/current", response_model=WeekResponse)
async def current_week(db: AsyncSession = Depends(get_db)):
    week = await weeks.get_current_week(db)
    if week is None:
        raise NotFoundError("No current week found")
    return week


@router.get("/api/weeks/{week_id}", response_model=WeekResponse)
async def get_week(week_id: int, db: AsyncSession = Depends(get_db)):
    return await weeks.get_week(db, week_id)


@router.get("/api/meals", response_model=MealListResponse)
async def list_meals(db: AsyncSession = Depends(get_db)):
    return {"meals": await menu.list_meals(db)}


@router.get("/api/menu/{week_ref}", response_model=MenuResponse)
async def week_menu(week_ref: str, db: AsyncSession = Depends(get_db)):
    """Menu of a week id or of ``current``."""
    week = await weeks.resolve_week(db, week_ref)
    return {"week": week, "meals": await weeks.get_meals_for_week(db, week.id)}


@router.get("/api/pricing", response_model=PricingResponse)
async def pricing(db: AsyncSession = Depends(get_db)) -> PricingResponse:
    table = await pricing_service.get_table(db)
    return PricingResponse(
        meal_prices=await pricing_service.get_all_meal_pricing(db),
        base_meal_price=BASE_MEAL_PRICE,
        large_meal_addon=table[LARGE_ADDON_KEY],
        base_delivery=table[BASE_DELIVERY_KEY],
        express_delivery=table[EXPRESS_DELIVERY_KEY],
    )
