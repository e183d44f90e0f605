"""
Payment callbacks.

Applies verified Paymob callbacks to orders:
    - TRANSACTION callbacks (processed webhook and browser redirect) settle
      the order's payment status
    - TOKEN callbacks store the tokenized card for subscription billing

Signatures are checked by the caller (``BasePaymentService.verify_callback``).
"""

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wagba.models import (
    Order,
    OrderType,
    PaymentMethod,
    PaymentStatus,
    User,
    Week,
    utcnow,
)

logger = logging.getLogger(__name__)


@dataclass
class PaymentOutcome:
    """What a transaction callback did to our order."""
    success: bool
    message: str
    order: Optional[Order] = None
    newly_paid: bool = False


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.lower() == "true"
    return bool(value)


def _gateway_order_id(data: Mapping[str, Any]) -> Optional[str]:
    order = data.get("order")
    if isinstance(order, Mapping):
        order = order.get("id")
    return str(order) if order not in (None, "") else None


def _merchant_order_id(data: Mapping[str, Any]) -> Optional[int]:
    order = data.get("order")
    raw = order.get("merchant_order_id") if isinstance(order, Mapping) else None
    raw = raw or data.get("merchant_order_id")
    if not raw:
        return None
    # Sent as "<order id>-<timestamp>" so retries stay unique at Paymob
    head = str(raw).split("-", 1)[0]
    return int(head) if head.isdigit() else None


async def find_order_for_transaction(db: AsyncSession, data: Mapping[str, Any]) -> Optional[Order]:
    gateway_order_id = _gateway_order_id(data)
    if gateway_order_id:
        result = await db.execute(select(Order).where(Order.paymob_order_id == gateway_order_id))
        order = result.scalars().first()
        if order is not None:
            return order

    merchant_order_id = _merchant_order_id(data)
    if merchant_order_id is not None:
        return await db.get(Order, merchant_order_id)
    return None


async def apply_transaction(db: AsyncSession, data: Mapping[str, Any]) -> PaymentOutcome:
    """
    Record a transaction result on its order.

    A paid order is never downgraded by a late or replayed callback.
    """
    order = await find_order_for_transaction(db, data)
    if order is None:
        logger.warning(f"Paymob transaction {data.get('id')} matches no order")
        return PaymentOutcome(False, "Order not found")

    success = _truthy(data.get("success"))
    pending = _truthy(data.get("pending"))

    if order.payment_status == PaymentStatus.PAID:
        logger.info(f"Order #{order.id} already paid, ignoring transaction {data.get('id')}")
        return PaymentOutcome(True, "Payment already confirmed", order)

    if success and not pending:
        order.payment_status = PaymentStatus.PAID
        order.paymob_transaction_id = str(data.get("id")) if data.get("id") is not None else None
        user = await db.get(User, order.user_id)
        if user is not None:
            _activate_subscription(user, order)
        await db.commit()
        logger.info(f"Order #{order.id} paid (transaction {order.paymob_transaction_id})")
        return PaymentOutcome(True, "Payment successful", order, newly_paid=True)

    if pending:
        order.payment_status = PaymentStatus.PROCESSING
        await db.commit()
        logger.info(f"Order #{order.id} payment pending")
        return PaymentOutcome(False, "Payment is being processed", order)

    order.payment_status = PaymentStatus.FAILED
    await db.commit()
    details = data.get("data")
    reason = details.get("message") if isinstance(details, Mapping) else data.get("data.message")
    logger.warning(f"Order #{order.id} payment failed: {reason or 'declined'}")
    return PaymentOutcome(False, "Payment failed", order)


def _activate_subscription(user: User, order: Order) -> None:
    if user.subscription_started_at is None:
        user.subscription_started_at = utcnow()
    if order.order_type == OrderType.TRIAL:
        user.has_used_trial_box = True
    else:
        user.is_subscriber = True
        user.user_type = OrderType.SUBSCRIPTION


async def save_card_token(db: AsyncSession, data: Mapping[str, Any]) -> Optional[PaymentMethod]:
    """
    Store a tokenized card from a TOKEN callback.

    The card belongs to the user of the gateway order it was saved with,
    falling back to the callback email.
    """
    token = data.get("token")
    if not token:
        return None

    user = None
    gateway_order_id = data.get("order_id")
    if gateway_order_id:
        result = await db.execute(select(Order).where(Order.paymob_order_id == str(gateway_order_id)))
        order = result.scalars().first()
        if order is not None:
            user = await db.get(User, order.user_id)
    if user is None and data.get("email"):
        result = await db.execute(select(User).where(User.email == data["email"]))
        user = result.scalars().first()
    if user is None:
        logger.warning(f"Card token callback {data.get('id')} matches no user")
        return None

    existing = await db.execute(
        select(PaymentMethod).where(PaymentMethod.user_id == user.id, PaymentMethod.paymob_card_token == token)
    )
    method = existing.scalars().first()
    if method is not None:
        return method

    has_default = await db.execute(
        select(PaymentMethod.id).where(
            PaymentMethod.user_id == user.id,
            PaymentMethod.is_default.is_(True),
            PaymentMethod.is_active.is_(True),
        )
    )
    method = PaymentMethod(
        user_id=user.id,
        paymob_card_token=token,
        masked_pan=data.get("masked_pan"),
        card_brand=data.get("card_subtype"),
        is_default=has_default.scalars().first() is None,
        is_active=True,
    )
    db.add(method)
    await db.commit()
    logger.info(f"Saved card {method.masked_pan} for user {user.id}")
    return method


async def confirmation_details(db: AsyncSession, order: Order) -> Optional[dict]:
    """Arguments for the order confirmation email, or None without a user."""
    user = await db.get(User, order.user_id)
    if user is None:
        return None
    week = await db.get(Week, order.week_id)
    return {
        "to_email": user.email,
        "order_id": order.id,
        "customer_name": user.name or user.username,
        "week_label": week.label if week else "",
        "meal_count": order.meal_count,
        "total_amount": order.total,
        "delivery_slot": order.delivery_slot.value,
    }
