"""
Customer account endpoints: profile, upcoming weeks and subscription.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from wagba.database import get_db
from wagba.dependencies import get_current_user
from wagba.models import User
from wagba.schemas import (
    ProfileResponse,
    ProfileUpdate,
    SubscriptionResponse,
    UpcomingMealResponse,
)
from wagba.services import accounts, billing, orders

router = APIRouter(prefix="/api/user", tags=["User"])


async def _profile(db: AsyncSession, user: User) -> ProfileResponse:
    return ProfileResponse(
        name=user.name,
        email=user.email,
        phone=user.phone,
        address=user.address,
        has_completed_onboarding=await orders.has_settled_order(db, user.id),
    )


@router.get("/profile", response_model=ProfileResponse)
async def get_profile(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ProfileResponse:
    return await _profile(db, user)


@router.patch("/profile", response_model=ProfileResponse)
async def update_profile(
    payload: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ProfileResponse:
    user = await accounts.update_profile(db, user, payload.model_dump(exclude_unset=True))
    return await _profile(db, user)


@router.get("/upcoming-meals", response_model=list[UpcomingMealResponse])
async def upcoming_meals(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await orders.get_upcoming_meals(db, user)


@router.get("/subscription", response_model=SubscriptionResponse)
async def get_subscription(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await billing.get_subscription(db, user)


@router.post("/subscription/pause", response_model=SubscriptionResponse)
async def pause_subscription(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await billing.pause_subscription(db, user)
    return await billing.get_subscription(db, user)


@router.post("/subscription/resume", response_model=SubscriptionResponse)
async def resume_subscription(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await billing.resume_subscription(db, user)
    return await billing.get_subscription(db, user)


@router.post("/subscription/cancel", response_model=SubscriptionResponse)
async def cancel_subscription(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await billing.cancel_subscription(db, user)
    return await billing.get_subscription(db, user)
