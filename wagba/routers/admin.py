"""
Admin API.

Every route needs an admin session; managing other admins needs the
``super_admin`` role.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from wagba.database import get_db
from wagba.dependencies import get_current_admin, require_super_admin
from wagba.schemas import (
    AdminCreate,
    AdminOrderUpdate,
    AdminResponse,
    ExportResponse,
    InvitationCodeCreate,
    InvitationCodeResponse,
    InvitationCodeUpdate,
    MealCreate,
    MealResponse,
    MealUpdate,
    NeighborhoodCreate,
    NeighborhoodResponse,
    NeighborhoodUpdate,
    OrderResponse,
    PricingConfigResponse,
    PricingConfigUpdate,
    PricingConfigUpsert,
    UserResponse,
    WaitlistResponse,
    WeekCreate,
    WeekMealCreate,
    WeekResponse,
    WeekUpdate,
)
from wagba.services import accounts, billing, menu, onboarding, orders, weeks
from wagba.services.weeks import get_week

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/admin",
    tags=["Admin"],
    dependencies=[Depends(get_current_admin)],
)


# =============================================================================
# MEALS
# =============================================================================

@router.get("/meals", response_model=list[MealResponse])
async def list_meals(db: AsyncSession = Depends(get_db)):
    return await menu.list_meals(db)


@router.post("/meals", response_model=MealResponse, status_code=201)
async def create_meal(payload: MealCreate, db: AsyncSession = Depends(get_db)):
    return await menu.create_meal(db, payload.model_dump())


@router.patch("/meals/{meal_id}", response_model=MealResponse)
async def update_meal(meal_id: int, payload: MealUpdate, db: AsyncSession = Depends(get_db)):
    return await menu.update_meal(db, meal_id, payload.model_dump(exclude_unset=True))


@router.delete("/meals/{meal_id}", status_code=204)
async def delete_meal(meal_id: int, db: AsyncSession = Depends(get_db)):
    await menu.delete_meal(db, meal_id)
    return Response(status_code=204)


# =============================================================================
# WEEKS
# =============================================================================

@router.get("/weeks", response_model=list[WeekResponse])
async def list_weeks(db: AsyncSession = Depends(get_db)):
    return await weeks.list_weeks(db)


@router.post("/weeks", response_model=WeekResponse, status_code=201)
async def create_week(payload: WeekCreate, db: AsyncSession = Depends(get_db)):
    return await menu.create_week(db, payload.delivery_date, payload.label)


@router.patch("/weeks/{week_id}", response_model=WeekResponse)
async def update_week(week_id: int, payload: WeekUpdate, db: AsyncSession = Depends(get_db)):
    return await menu.update_week(db, week_id, payload.model_dump(exclude_unset=True))


@router.get("/weeks/{week_id}/meals", response_model=list[MealResponse])
async def week_meals(week_id: int, db: AsyncSession = Depends(get_db)):
    await get_week(db, week_id)
    return await weeks.get_meals_for_week(db, week_id)


@router.post("/weeks/{week_id}/meals", status_code=201)
async def add_meal_to_week(week_id: int, payload: WeekMealCreate, db: AsyncSession = Depends(get_db)) -> dict:
    week_meal = await weeks.add_meal_to_week(
        db, week_id, payload.meal_id, payload.is_featured, payload.sort_order
    )
    return {"id": week_meal.id, "week_id": week_id, "meal_id": payload.meal_id}


@router.delete("/weeks/{week_id}/meals/{meal_id}", status_code=204)
async def remove_meal_from_week(week_id: int, meal_id: int, db: AsyncSession = Depends(get_db)):
    await weeks.remove_meal_from_week(db, week_id, meal_id)
    return Response(status_code=204)


# =============================================================================
# ORDERS
# =============================================================================

@router.get("/orders", response_model=list[OrderResponse])
async def list_orders(week_id: Optional[int] = None, db: AsyncSession = Depends(get_db)):
    return await orders.list_orders(db, week_id)


@router.get("/orders/{week_id}", response_model=list[OrderResponse])
async def list_week_orders(week_id: int, db: AsyncSession = Depends(get_db)):
    await get_week(db, week_id)
    return await orders.list_orders(db, week_id)


@router.patch("/orders/{order_id}", response_model=OrderResponse)
async def update_order(order_id: int, payload: AdminOrderUpdate, db: AsyncSession = Depends(get_db)):
    return await orders.admin_update_order(db, order_id, payload.model_dump(exclude_unset=True))


@router.post("/orders/export/{week_id}", response_model=ExportResponse, status_code=202)
async def export_orders(week_id: int, db: AsyncSession = Depends(get_db)) -> ExportResponse:
    """Queue the week's Excel order sheet."""
    from wagba.tasks import export_week_orders_to_excel

    week = await get_week(db, week_id)
    task = export_week_orders_to_excel.delay(week.id)
    logger.info(f"Queued order export for {week.label} (task {task.id})")
    return ExportResponse(message=f"Export of {week.label} queued", task_id=task.id)


@router.post("/billing/run")
async def run_billing(db: AsyncSession = Depends(get_db)) -> dict:
    """Run weekly subscription billing now instead of waiting for the hourly job."""
    report = await billing.process_weekly_billing(db)
    return report.to_dict()


# =============================================================================
# USERS & ADMINS
# =============================================================================

@router.get("/users", response_model=list[UserResponse])
async def list_users(db: AsyncSession = Depends(get_db)):
    return await accounts.list_users(db)


@router.get("/admins", response_model=list[AdminResponse], dependencies=[Depends(require_super_admin)])
async def list_admins(db: AsyncSession = Depends(get_db)):
    return await accounts.list_admins(db)


@router.post(
    "/admins",
    response_model=AdminResponse,
    status_code=201,
    dependencies=[Depends(require_super_admin)],
)
async def create_admin(payload: AdminCreate, db: AsyncSession = Depends(get_db)):
    return await accounts.create_admin(
        db,
        username=payload.username,
        email=payload.email,
        password=payload.password,
        name=payload.name,
        role=payload.role,
        permissions=payload.permissions,
    )


# =============================================================================
# NEIGHBORHOODS, INVITATION CODES & WAITLIST
# =============================================================================

@router.get("/neighborhoods", response_model=list[NeighborhoodResponse])
async def list_neighborhoods(db: AsyncSession = Depends(get_db)):
    return await onboarding.list_neighborhoods(db)


@router.post("/neighborhoods", response_model=NeighborhoodResponse, status_code=201)
async def create_neighborhood(payload: NeighborhoodCreate, db: AsyncSession = Depends(get_db)):
    return await onboarding.create_neighborhood(db, payload.name, payload.is_serviced)


@router.patch("/neighborhoods/{neighborhood_id}", response_model=NeighborhoodResponse)
async def update_neighborhood(
    neighborhood_id: int,
    payload: NeighborhoodUpdate,
    db: AsyncSession = Depends(get_db),
):
    return await onboarding.update_neighborhood(db, neighborhood_id, payload.model_dump(exclude_unset=True))


@router.delete("/neighborhoods/{neighborhood_id}", status_code=204)
async def delete_neighborhood(neighborhood_id: int, db: AsyncSession = Depends(get_db)):
    await onboarding.delete_neighborhood(db, neighborhood_id)
    return Response(status_code=204)


@router.get("/invitation-codes", response_model=list[InvitationCodeResponse])
async def list_invitation_codes(db: AsyncSession = Depends(get_db)):
    return await onboarding.list_invitation_codes(db)


@router.post("/invitation-codes", response_model=InvitationCodeResponse, status_code=201)
async def create_invitation_code(payload: InvitationCodeCreate, db: AsyncSession = Depends(get_db)):
    return await onboarding.create_invitation_code(
        db, payload.code, payload.max_uses, payload.description, payload.is_active
    )


@router.patch("/invitation-codes/{code_id}", response_model=InvitationCodeResponse)
async def update_invitation_code(
    code_id: int,
    payload: InvitationCodeUpdate,
    db: AsyncSession = Depends(get_db),
):
    return await onboarding.update_invitation_code(db, code_id, payload.model_dump(exclude_unset=True))


@router.delete("/invitation-codes/{code_id}", status_code=204)
async def delete_invitation_code(code_id: int, db: AsyncSession = Depends(get_db)):
    await onboarding.delete_invitation_code(db, code_id)
    return Response(status_code=204)


@router.get("/waitlist", response_model=list[WaitlistResponse])
async def list_waitlist(db: AsyncSession = Depends(get_db)):
    return await onboarding.list_waitlist(db)


@router.delete("/waitlist/{entry_id}", status_code=204)
async def delete_waitlist_entry(entry_id: int, db: AsyncSession = Depends(get_db)):
    await onboarding.delete_waitlist_entry(db, entry_id)
    return Response(status_code=204)


# =============================================================================
# PRICING
# =============================================================================

@router.get("/pricing", response_model=list[PricingConfigResponse])
async def list_pricing(db: AsyncSession = Depends(get_db)):
    return await menu.list_pricing_configs(db)


@router.post("/pricing", response_model=PricingConfigResponse)
async def upsert_pricing(payload: PricingConfigUpsert, db: AsyncSession = Depends(get_db)):
    return await menu.upsert_pricing_config(
        db,
        payload.config_type,
        payload.config_key,
        payload.price,
        payload.description,
        payload.is_active,
    )


@router.patch("/pricing/{config_id}", response_model=PricingConfigResponse)
async def update_pricing(config_id: int, payload: PricingConfigUpdate, db: AsyncSession = Depends(get_db)):
    return await menu.update_pricing_config(db, config_id, payload.model_dump(exclude_unset=True))
