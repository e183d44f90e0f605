"""
Customer order endpoints: weekly plans, meal items, skipping and checkout.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from wagba.database import get_db
from wagba.dependencies import get_current_user
from wagba.models import User
from wagba.schemas import (
    CheckoutRequest,
    CheckoutResponse,
    OrderCreate,
    OrderItemCreate,
    OrderItemResponse,
    OrderItemWithMeal,
    OrderResponse,
)
from wagba.services import orders, weeks
from wagba.services.orders import SelectedMeal

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["Orders"])


@router.get("", response_model=list[OrderResponse])
async def list_orders(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await orders.list_user_orders(db, user.id)


@router.post("", response_model=OrderResponse, status_code=201)
async def create_order(
    payload: OrderCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await orders.create_order(
        db,
        user,
        payload.week_id,
        payload.meal_count,
        payload.default_portion_size,
        [SelectedMeal(item.meal_id, item.portion_size) for item in payload.items],
        payload.delivery_slot,
    )


@router.get("/pending", response_model=OrderResponse)
async def pending_order(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    order = await orders.get_pending_order(db, user.id)
    if order is None:
        return JSONResponse(status_code=404, content=None)
    return order


@router.post("/checkout", response_model=CheckoutResponse)
async def checkout(
    payload: CheckoutRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await orders.checkout(
        db,
        user,
        payload.order_id,
        payload.delivery_address.model_dump(exclude_none=True),
        payment_method=payload.payment_method,
        delivery_notes=payload.delivery_notes,
        delivery_slot=payload.delivery_slot,
    )
    return {"order": result.order, "payment_url": result.payment_url}


@router.get("/{week_ref}", response_model=OrderResponse)
async def order_for_week(
    week_ref: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The customer's order for a week id or for ``current``."""
    week = await weeks.resolve_week(db, week_ref)
    order = await orders.get_order_for_week(db, user.id, week.id)
    if order is None:
        return JSONResponse(status_code=404, content=None)
    return order


@router.get("/{order_id}/items", response_model=list[OrderItemWithMeal])
async def order_items(
    order_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    order = await orders.get_user_order(db, user, order_id)
    return [
        {"id": item.id, "meal_id": item.meal_id, "portion_size": item.portion_size,
         "price": item.price, "meal": meal}
        for item, meal in await orders.get_order_items_with_meals(db, order.id)
    ]


@router.post("/{order_id}/items", response_model=OrderItemResponse, status_code=201)
async def add_order_item(
    order_id: int,
    payload: OrderItemCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await orders.add_item(db, user, order_id, payload.meal_id, payload.portion_size)


@router.delete("/{order_id}/items/{item_id}", response_model=OrderResponse)
async def remove_order_item(
    order_id: int,
    item_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await orders.remove_item(db, user, order_id, item_id)


@router.patch("/{order_id}/skip", response_model=OrderResponse)
async def skip_order(
    order_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await orders.skip_order(db, user, order_id)


@router.patch("/{order_id}/unskip", response_model=OrderResponse)
async def unskip_order(
    order_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await orders.unskip_order(db, user, order_id)
