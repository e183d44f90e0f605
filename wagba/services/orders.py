"""
Order composition.

An order is one customer's box for one menu week. Its lifecycle:

    not_selected ──(items added)──▶ selected
         │                             │
         └──────────(skip)──▶ skipped ◀┘
                                 │
              (unskip) restores previous_status or not_selected

Totals are recomputed from the items on every change, using the current
pricing table. Nothing about a week can change once its order deadline has
passed.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wagba.core.config import get_settings
from wagba.core.exceptions import (
    DeadlinePassedError,
    NotFoundError,
    PaymentGatewayError,
    PermissionDeniedError,
    ValidationError,
)
from wagba.models import (
    DeliverySlot,
    Meal,
    Order,
    OrderItem,
    OrderStatus,
    PaymentStatus,
    PortionSize,
    User,
    Week,
    utcnow,
)
from wagba.services import weeks as week_service
from wagba.services.payment import BillingData, PaymentItem, get_payment_service
from wagba.services.phone import validate_egyptian_phone
from wagba.services.pricing import (
    BASE_DELIVERY_KEY,
    MAX_MEALS,
    MIN_MEALS,
    calculate_order_totals,
    item_price,
    pricing_service,
)

logger = logging.getLogger(__name__)

SETTLED_PAYMENT_STATUSES = (PaymentStatus.CONFIRMED, PaymentStatus.PAID)
CARD = "card"
CASH = "cash"


@dataclass
class SelectedMeal:
    meal_id: int
    portion_size: PortionSize = PortionSize.STANDARD


@dataclass
class CheckoutResult:
    order: Order
    payment_url: Optional[str] = None


# =============================================================================
# LOOKUPS
# =============================================================================

async def get_order(db: AsyncSession, order_id: int) -> Order:
    order = await db.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    return order


async def get_user_order(db: AsyncSession, user: User, order_id: int) -> Order:
    """An order owned by ``user``; other users' orders are reported as missing."""
    order = await db.get(Order, order_id)
    if order is None or order.user_id != user.id:
        raise NotFoundError("Order not found")
    return order


async def get_order_items(db: AsyncSession, order_id: int) -> list[OrderItem]:
    result = await db.execute(
        select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.id)
    )
    return list(result.scalars().all())


async def get_order_items_with_meals(db: AsyncSession, order_id: int) -> list[tuple[OrderItem, Meal]]:
    result = await db.execute(
        select(OrderItem, Meal)
        .join(Meal, Meal.id == OrderItem.meal_id)
        .where(OrderItem.order_id == order_id)
        .order_by(OrderItem.id)
    )
    return [(item, meal) for item, meal in result.all()]


async def list_user_orders(db: AsyncSession, user_id: int) -> list[Order]:
    result = await db.execute(select(Order).where(Order.user_id == user_id).order_by(Order.id))
    return list(result.scalars().all())


async def get_order_for_week(db: AsyncSession, user_id: int, week_id: int) -> Optional[Order]:
    result = await db.execute(
        select(Order).where(Order.user_id == user_id, Order.week_id == week_id)
    )
    return result.scalars().first()


async def get_pending_order(db: AsyncSession, user_id: int) -> Optional[Order]:
    """The latest order with meals chosen but not yet paid."""
    result = await db.execute(
        select(Order)
        .where(
            Order.user_id == user_id,
            Order.status == OrderStatus.SELECTED,
            Order.payment_status.in_((PaymentStatus.PENDING, PaymentStatus.PROCESSING)),
        )
        .order_by(Order.id.desc())
        .limit(1)
    )
    return result.scalars().first()


# =============================================================================
# RULES
# =============================================================================

def ensure_open(week: Week, now: Optional[datetime] = None) -> None:
    if week.deadline_passed(now or utcnow()):
        raise DeadlinePassedError()


def ensure_unpaid(order: Order) -> None:
    if order.payment_status == PaymentStatus.PAID:
        raise ValidationError("Order is already paid")


def mark_selected(order: Order) -> None:
    """Move an order to ``selected``; a skipped order must be unskipped first."""
    if order.status == OrderStatus.SKIPPED:
        raise ValidationError("Cannot select meals for a skipped order")
    order.status = OrderStatus.SELECTED


def _validate_meal_count(meal_count: int) -> None:
    if not MIN_MEALS <= meal_count <= MAX_MEALS:
        raise ValidationError(f"Meal count must be between {MIN_MEALS} and {MAX_MEALS}")


def _item_portion(portion_size: Union[PortionSize, str]) -> PortionSize:
    try:
        portion = PortionSize(portion_size)
    except ValueError:
        raise ValidationError(f"Invalid portion size: {portion_size}") from None
    if portion == PortionSize.MIXED:
        raise ValidationError("Each meal must be standard or large")
    return portion


async def _ensure_meals_exist(db: AsyncSession, meal_ids: Iterable[int]) -> None:
    wanted = set(meal_ids)
    if not wanted:
        return
    result = await db.execute(select(Meal.id).where(Meal.id.in_(wanted)))
    missing = wanted - set(result.scalars().all())
    if missing:
        raise NotFoundError("Meal not found", details={"meal_ids": sorted(missing)})


async def recompute_totals(db: AsyncSession, order: Order) -> None:
    """Re-price every item of ``order`` and store subtotal, discount and total."""
    table = await pricing_service.get_table(db)
    items = await get_order_items(db, order.id)

    for item in items:
        item.price = item_price(order.meal_count, item.portion_size, table)
    totals = calculate_order_totals(order.meal_count, [item.portion_size for item in items], table)
    order.subtotal = totals.subtotal
    order.discount = totals.discount
    order.total = totals.total


async def has_settled_order(db: AsyncSession, user_id: int) -> bool:
    result = await db.execute(
        select(Order.id)
        .where(Order.user_id == user_id, Order.payment_status.in_(SETTLED_PAYMENT_STATUSES))
        .limit(1)
    )
    return result.scalars().first() is not None


async def auto_skip_preceding_weeks(
    db: AsyncSession,
    user: User,
    week: Week,
    now: Optional[datetime] = None,
) -> int:
    """
    Skip the still-open weeks before ``week`` for a first-time customer.

    A customer who starts with a later week should not be billed for the
    weeks in between. Does nothing once the customer has a paid order.
    Returns the number of orders skipped.
    """
    now = now or utcnow()
    if await has_settled_order(db, user.id):
        return 0

    result = await db.execute(
        select(Week)
        .where(Week.delivery_date < week.delivery_date, Week.order_deadline > now)
        .order_by(Week.delivery_date)
    )
    skipped = 0
    for preceding in result.scalars().all():
        order = await get_order_for_week(db, user.id, preceding.id)
        if order is None:
            db.add(Order(
                user_id=user.id,
                week_id=preceding.id,
                status=OrderStatus.SKIPPED,
                meal_count=get_settings().default_meal_count,
                default_portion_size=PortionSize.STANDARD,
                order_type=user.user_type,
                delivery_date=preceding.delivery_date,
            ))
            skipped += 1
        elif order.status == OrderStatus.NOT_SELECTED:
            order.previous_status = order.status
            order.status = OrderStatus.SKIPPED
            skipped += 1

    if skipped:
        await db.flush()
        logger.info(f"Auto-skipped {skipped} week(s) before {week.label} for user {user.id}")
    return skipped


# =============================================================================
# COMPOSITION
# =============================================================================

async def create_order(
    db: AsyncSession,
    user: User,
    week_ref: Union[str, int],
    meal_count: int,
    default_portion_size: Union[PortionSize, str] = PortionSize.STANDARD,
    items: Iterable[SelectedMeal] = (),
    delivery_slot: Union[DeliverySlot, str] = DeliverySlot.MORNING,
    now: Optional[datetime] = None,
) -> Order:
    """
    Create (or re-plan) the customer's order for a week.

    An existing order for the same week, such as the placeholder created for
    the account page, gets the new plan and replaces its items.
    """
    now = now or utcnow()
    items = list(items)
    week = await week_service.resolve_week(db, week_ref)
    ensure_open(week, now)

    _validate_meal_count(meal_count)
    if len(items) > meal_count:
        raise ValidationError(f"Cannot select more than {meal_count} meals")
    portions = [_item_portion(item.portion_size) for item in items]
    await _ensure_meals_exist(db, [item.meal_id for item in items])

    await auto_skip_preceding_weeks(db, user, week, now)

    order = await get_order_for_week(db, user.id, week.id)
    if order is None:
        order = Order(
            user_id=user.id,
            week_id=week.id,
            status=OrderStatus.NOT_SELECTED,
            order_type=user.user_type,
            delivery_date=week.delivery_date,
        )
        db.add(order)
    else:
        ensure_unpaid(order)
        if items and order.status == OrderStatus.SKIPPED:
            raise ValidationError("Cannot select meals for a skipped order")

    order.meal_count = meal_count
    order.default_portion_size = PortionSize(default_portion_size)
    order.delivery_slot = DeliverySlot(delivery_slot)
    await db.flush()

    for old_item in await get_order_items(db, order.id):
        await db.delete(old_item)
    for item, portion in zip(items, portions):
        db.add(OrderItem(order_id=order.id, meal_id=item.meal_id, portion_size=portion, price=0.0))
    await db.flush()

    await recompute_totals(db, order)
    if items:
        mark_selected(order)
    elif order.status == OrderStatus.SELECTED:
        order.status = OrderStatus.NOT_SELECTED

    await db.commit()
    logger.info(f"Order #{order.id} planned for {week.label}: {len(items)}/{meal_count} meals")
    return order


async def add_item(
    db: AsyncSession,
    user: User,
    order_id: int,
    meal_id: int,
    portion_size: Union[PortionSize, str] = PortionSize.STANDARD,
    now: Optional[datetime] = None,
) -> OrderItem:
    now = now or utcnow()
    order = await get_user_order(db, user, order_id)
    week = await week_service.get_week(db, order.week_id)
    ensure_open(week, now)

    ensure_unpaid(order)
    if order.status == OrderStatus.SKIPPED:
        raise ValidationError("Cannot select meals for a skipped order")

    portion = _item_portion(portion_size)
    await _ensure_meals_exist(db, [meal_id])

    items = await get_order_items(db, order.id)
    if len(items) >= order.meal_count:
        raise ValidationError(f"Order already has {order.meal_count} meals")

    await auto_skip_preceding_weeks(db, user, week, now)

    item = OrderItem(order_id=order.id, meal_id=meal_id, portion_size=portion, price=0.0)
    db.add(item)
    await db.flush()

    await recompute_totals(db, order)
    if order.status == OrderStatus.NOT_SELECTED:
        mark_selected(order)

    await db.commit()
    logger.debug(f"Order #{order.id}: added meal {meal_id} ({portion.value})")
    return item


async def remove_item(
    db: AsyncSession,
    user: User,
    order_id: int,
    item_id: int,
    now: Optional[datetime] = None,
) -> Order:
    order = await get_user_order(db, user, order_id)
    week = await week_service.get_week(db, order.week_id)
    ensure_open(week, now)

    item = await db.get(OrderItem, item_id)
    if item is None or item.order_id != order.id:
        raise NotFoundError("Order item not found")
    ensure_unpaid(order)

    await db.delete(item)
    await db.flush()
    await recompute_totals(db, order)

    if order.status == OrderStatus.SELECTED and not await get_order_items(db, order.id):
        order.status = OrderStatus.NOT_SELECTED

    await db.commit()
    logger.debug(f"Order #{order.id}: removed item {item_id}")
    return order


# =============================================================================
# SKIPPING
# =============================================================================

async def skip_order(db: AsyncSession, user: User, order_id: int, now: Optional[datetime] = None) -> Order:
    order = await get_user_order(db, user, order_id)
    week = await week_service.get_week(db, order.week_id)
    ensure_open(week, now)

    if order.status != OrderStatus.SKIPPED:
        order.previous_status = order.status
        order.status = OrderStatus.SKIPPED
        await db.commit()
        logger.info(f"Order #{order.id} skipped ({week.label})")
    return order


async def unskip_order(db: AsyncSession, user: User, order_id: int, now: Optional[datetime] = None) -> Order:
    order = await get_user_order(db, user, order_id)
    week = await week_service.get_week(db, order.week_id)
    ensure_open(week, now)

    if order.status != OrderStatus.SKIPPED:
        raise ValidationError("Order is not skipped")

    order.status = order.previous_status or OrderStatus.NOT_SELECTED
    order.previous_status = None
    await db.commit()
    logger.info(f"Order #{order.id} unskipped ({week.label}) -> {order.status.value}")
    return order


# =============================================================================
# ACCOUNT PAGE
# =============================================================================

async def get_upcoming_meals(db: AsyncSession, user: User, now: Optional[datetime] = None) -> list[dict]:
    """
    The customer's next weeks with their orders and selected meals.

    Creates ``not_selected`` orders for weeks the customer has not touched,
    using the meal count of their latest order.
    """
    settings = get_settings()
    now = now or utcnow()
    await week_service.ensure_future_weeks(db, now)

    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    result = await db.execute(
        select(Week)
        .where(Week.delivery_date >= today)
        .order_by(Week.delivery_date)
        .limit(settings.upcoming_weeks)
    )
    upcoming_weeks = list(result.scalars().all())

    user_orders = await list_user_orders(db, user.id)
    default_meal_count = user_orders[-1].meal_count if user_orders else settings.default_meal_count
    by_week = {order.week_id: order for order in user_orders}

    created = False
    for week in upcoming_weeks:
        if week.id not in by_week:
            order = Order(
                user_id=user.id,
                week_id=week.id,
                status=OrderStatus.NOT_SELECTED,
                meal_count=default_meal_count,
                default_portion_size=PortionSize.STANDARD,
                order_type=user.user_type,
                delivery_date=week.delivery_date,
            )
            db.add(order)
            by_week[week.id] = order
            created = True
    if created:
        await db.commit()

    upcoming = []
    for week in upcoming_weeks:
        order = by_week[week.id]
        is_open = not week.deadline_passed(now)
        is_skipped = order.status == OrderStatus.SKIPPED
        upcoming.append({
            "order_id": order.id,
            "week_id": week.id,
            "week_label": week.label,
            "delivery_date": week.delivery_date,
            "order_deadline": week.order_deadline,
            "status": order.status,
            "meal_count": order.meal_count,
            "items": [
                {"id": item.id, "meal_id": item.meal_id, "portion_size": item.portion_size,
                 "price": item.price, "meal": meal}
                for item, meal in await get_order_items_with_meals(db, order.id)
            ],
            "is_skipped": is_skipped,
            "can_edit": is_open,
            "can_skip": is_open and not is_skipped,
            "can_unskip": is_open and is_skipped,
        })
    return upcoming


# =============================================================================
# CHECKOUT
# =============================================================================

async def checkout(
    db: AsyncSession,
    user: User,
    order_id: int,
    address: Mapping[str, Any],
    payment_method: str = CARD,
    delivery_notes: Optional[str] = None,
    delivery_slot: Optional[Union[DeliverySlot, str]] = None,
    now: Optional[datetime] = None,
) -> CheckoutResult:
    """
    Attach delivery details to an order and start payment.

    Card payments get a hosted checkout URL; the order is marked paid by the
    payment callback. Cash orders stay ``pending`` until delivery.
    """
    settings = get_settings()
    order = await get_order(db, order_id)
    if order.user_id != user.id:
        raise PermissionDeniedError()

    week = await week_service.get_week(db, order.week_id)
    ensure_open(week, now)

    if order.status == OrderStatus.SKIPPED:
        raise ValidationError("Cannot check out a skipped order")
    ensure_unpaid(order)
    items = await get_order_items(db, order.id)
    if not items:
        raise ValidationError("Select at least one meal before checkout")
    if payment_method not in (CARD, CASH):
        raise ValidationError(f"Unsupported payment method: {payment_method}")

    phone = validate_egyptian_phone(address.get("phone") or user.phone)
    if not phone.is_valid:
        raise ValidationError(phone.error, details={"field": "phone"})

    delivery_address = {**address, "phone": phone.normalized}
    order.delivery_address = json.dumps(delivery_address)
    order.delivery_notes = delivery_notes
    order.payment_method = payment_method
    if delivery_slot is not None:
        order.delivery_slot = DeliverySlot(delivery_slot)
    mark_selected(order)

    if not user.address:
        user.address = order.delivery_address
    if not user.phone:
        user.phone = phone.normalized

    payment_url = None
    if payment_method == CARD:
        table = await pricing_service.get_table(db)
        amount = order.total + table.get(BASE_DELIVERY_KEY, 0.0)
        link = await get_payment_service().create_payment_link(
            amount=amount,
            billing=BillingData.for_customer(user.name, user.email, phone.normalized, delivery_address),
            items=[PaymentItem(name=f"Wagba box - {week.label}", amount=amount)],
            merchant_order_id=str(order.id),
            redirect_url=f"{settings.app_base_url}/payment/response",
        )
        if not link.success:
            await db.rollback()
            raise PaymentGatewayError(link.error_message)
        order.paymob_order_id = link.gateway_order_id
        order.payment_status = PaymentStatus.PROCESSING
        payment_url = link.payment_url

    await db.commit()
    logger.info(f"Order #{order.id} checked out ({payment_method}, EGP {order.total:.2f})")
    return CheckoutResult(order=order, payment_url=payment_url)


async def create_order_from_selections(
    db: AsyncSession,
    user: User,
    selections: Mapping[str, Any],
) -> Optional[Order]:
    """
    Turn the meal selections made before signing up into an order.

    A failure here must not fail registration, so business errors are
    logged and None is returned.
    """
    try:
        items = [
            SelectedMeal(int(meal["meal_id"]), PortionSize(meal.get("portion_size") or PortionSize.STANDARD))
            for meal in selections.get("selected_meals", [])
        ]
        return await create_order(
            db,
            user,
            selections["week_id"],
            int(selections["meal_count"]),
            selections.get("portion_size") or PortionSize.STANDARD,
            items,
            selections.get("delivery_slot") or DeliverySlot.MORNING,
        )
    except (ValidationError, NotFoundError, KeyError, ValueError) as e:
        user_id = user.id
        await db.rollback()
        await db.refresh(user)
        logger.warning(f"Could not create order from onboarding selections for user {user_id}: {e}")
        return None


# =============================================================================
# ADMIN
# =============================================================================

async def list_orders(db: AsyncSession, week_id: Optional[int] = None) -> list[Order]:
    query = select(Order).order_by(Order.id.desc())
    if week_id is not None:
        query = query.where(Order.week_id == week_id)
    result = await db.execute(query)
    return list(result.scalars().all())


ADMIN_EDITABLE_FIELDS = {
    "status", "meal_count", "delivery_slot", "delivery_notes", "delivery_address",
    "payment_status", "payment_method", "default_portion_size",
}


async def admin_update_order(db: AsyncSession, order_id: int, changes: Mapping[str, Any]) -> Order:
    """
    Apply an admin edit.

    ``delivered`` is a separate flag and is applied on its own; ``delivered``
    is not an order status.
    """
    order = await get_order(db, order_id)

    if changes.get("delivered") is not None:
        order.delivered = bool(changes["delivered"])
        await db.commit()
        logger.info(f"Order #{order.id} delivered={order.delivered}")
        return order

    if changes.get("status") == "delivered":
        raise ValidationError("Use delivered field to track delivery status")

    unknown = set(changes) - ADMIN_EDITABLE_FIELDS - {"delivered"}
    if unknown:
        raise ValidationError("Unknown order fields", details={"fields": sorted(unknown)})

    enum_fields = {
        "status": OrderStatus,
        "payment_status": PaymentStatus,
        "delivery_slot": DeliverySlot,
        "default_portion_size": PortionSize,
    }
    for field_name, value in changes.items():
        if value is None or field_name == "delivered":
            continue
        if field_name in enum_fields:
            try:
                value = enum_fields[field_name](value)
            except ValueError:
                raise ValidationError(f"Invalid {field_name}: {value}") from None
        elif field_name == "delivery_address" and not isinstance(value, str):
            value = json.dumps(value)
        elif field_name == "meal_count":
            _validate_meal_count(int(value))
            if len(await get_order_items(db, order.id)) > int(value):
                raise ValidationError(f"Order already has more than {int(value)} meals")
        setattr(order, field_name, value)

    if "meal_count" in changes:
        await recompute_totals(db, order)

    await db.commit()
    logger.info(f"Order #{order.id} updated by admin: {sorted(changes)}")
    return order
