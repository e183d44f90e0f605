"""
Subscriptions & weekly billing.

Subscribers are charged once per week, ``BILLING_DELAY_HOURS`` after the
week's order deadline, on their saved Paymob card. The billing job runs
hourly (Celery beat) and looks back ``BILLING_WINDOW_MINUTES`` so a late or
restarted worker still picks the week up; orders already charged or failed
are never charged twice.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wagba.core.config import get_settings
from wagba.core.exceptions import ValidationError
from wagba.models import (
    BillingStatus,
    Order,
    OrderStatus,
    OrderType,
    PaymentMethod,
    PaymentStatus,
    SubscriptionStatus,
    User,
    Week,
    utcnow,
)
from wagba.services.payment import BillingData, get_payment_service
from wagba.services.pricing import BASE_DELIVERY_KEY, pricing_service

logger = logging.getLogger(__name__)


# =============================================================================
# SUBSCRIPTION STATUS
# =============================================================================

async def list_payment_methods(db: AsyncSession, user_id: int) -> list[PaymentMethod]:
    result = await db.execute(
        select(PaymentMethod)
        .where(PaymentMethod.user_id == user_id, PaymentMethod.is_active.is_(True))
        .order_by(PaymentMethod.is_default.desc(), PaymentMethod.id)
    )
    return list(result.scalars().all())


async def get_subscription(db: AsyncSession, user: User) -> dict:
    return {
        "status": user.subscription_status,
        "is_subscriber": user.is_subscriber,
        "user_type": user.user_type,
        "started_at": user.subscription_started_at,
        "paused_at": user.subscription_paused_at,
        "cancelled_at": user.subscription_cancelled_at,
        "payment_methods": await list_payment_methods(db, user.id),
    }


async def pause_subscription(db: AsyncSession, user: User) -> User:
    if user.subscription_status != SubscriptionStatus.ACTIVE:
        raise ValidationError(f"Cannot pause a {user.subscription_status.value} subscription")
    user.subscription_status = SubscriptionStatus.PAUSED
    user.subscription_paused_at = utcnow()
    await db.commit()
    logger.info(f"Subscription paused for user {user.id}")
    return user


async def resume_subscription(db: AsyncSession, user: User) -> User:
    if user.subscription_status != SubscriptionStatus.PAUSED:
        raise ValidationError(f"Cannot resume a {user.subscription_status.value} subscription")
    user.subscription_status = SubscriptionStatus.ACTIVE
    user.subscription_paused_at = None
    await db.commit()
    logger.info(f"Subscription resumed for user {user.id}")
    return user


async def cancel_subscription(db: AsyncSession, user: User) -> User:
    if user.subscription_status == SubscriptionStatus.CANCELLED:
        raise ValidationError("Subscription is already cancelled")
    user.subscription_status = SubscriptionStatus.CANCELLED
    user.subscription_cancelled_at = utcnow()
    user.is_subscriber = False
    await db.commit()
    logger.info(f"Subscription cancelled for user {user.id}")
    return user


# =============================================================================
# WEEKLY BILLING
# =============================================================================

@dataclass
class BillingReport:
    weeks: list[int] = field(default_factory=list)
    charged: int = 0
    failed: int = 0
    skipped: int = 0
    already_running: bool = False

    def to_dict(self) -> dict:
        return {
            "weeks": self.weeks,
            "charged": self.charged,
            "failed": self.failed,
            "skipped": self.skipped,
            "already_running": self.already_running,
        }


async def weeks_due_for_billing(db: AsyncSession, now: datetime) -> list[Week]:
    """Weeks whose billing time (deadline + delay) fell within the look-back window."""
    settings = get_settings()
    delay = timedelta(hours=settings.billing_delay_hours)
    window_start = now - timedelta(minutes=settings.billing_window_minutes)

    result = await db.execute(
        select(Week)
        .where(Week.order_deadline >= window_start - delay, Week.order_deadline <= now - delay)
        .order_by(Week.delivery_date)
    )
    return list(result.scalars().all())


async def billable_orders(db: AsyncSession, week_id: int) -> list[Order]:
    result = await db.execute(
        select(Order)
        .where(
            Order.week_id == week_id,
            Order.order_type == OrderType.SUBSCRIPTION,
            Order.status != OrderStatus.SKIPPED,
            Order.status != OrderStatus.CANCELLED,
            Order.payment_status != PaymentStatus.PAID,
            (Order.subscription_billing_status.is_(None))
            | (Order.subscription_billing_status == BillingStatus.PENDING),
        )
        .order_by(Order.id)
    )
    return list(result.scalars().all())


async def _payment_method_for(db: AsyncSession, order: Order) -> Optional[PaymentMethod]:
    if order.payment_method_id is not None:
        return await db.get(PaymentMethod, order.payment_method_id)
    methods = await list_payment_methods(db, order.user_id)
    return methods[0] if methods else None


def _mark(order: Order, status: BillingStatus, error: Optional[str] = None) -> None:
    order.subscription_billing_status = status
    order.subscription_billing_attempted_at = utcnow()
    order.subscription_billing_error = error


async def bill_order(db: AsyncSession, order: Order) -> BillingStatus:
    """Charge one subscription order and record the outcome on it."""
    user = await db.get(User, order.user_id)
    if user is None:
        logger.error(f"Order #{order.id}: user {order.user_id} not found")
        _mark(order, BillingStatus.FAILED, "User not found")
        await db.commit()
        return BillingStatus.FAILED

    if user.subscription_status in (SubscriptionStatus.PAUSED, SubscriptionStatus.CANCELLED):
        logger.info(f"Order #{order.id}: subscription {user.subscription_status.value}, not billing")
        _mark(order, BillingStatus.SKIPPED, f"Subscription {user.subscription_status.value}")
        await db.commit()
        return BillingStatus.SKIPPED

    method = await _payment_method_for(db, order)
    if method is None or not method.is_active:
        logger.warning(f"Order #{order.id}: no active payment method")
        _mark(order, BillingStatus.FAILED, "No active payment method")
        await db.commit()
        return BillingStatus.FAILED

    table = await pricing_service.get_table(db)
    amount = order.total + table.get(BASE_DELIVERY_KEY, 0.0)

    # Attempt is recorded before the charge goes out
    _mark(order, BillingStatus.PENDING)
    order.payment_method_id = method.id
    order.subscription_billing_retry_count = (order.subscription_billing_retry_count or 0) + 1
    await db.commit()

    address = json.loads(order.delivery_address) if order.delivery_address else None
    billing = BillingData.for_customer(user.name, user.email, user.phone, address)
    result = await get_payment_service().charge_saved_card(
        card_token=method.paymob_card_token,
        amount=amount,
        billing=billing,
        merchant_order_id=str(order.id),
    )

    if result.success:
        _mark(order, BillingStatus.SUCCESS)
        order.payment_status = PaymentStatus.PAID
        order.paymob_transaction_id = result.transaction_id
        order.paymob_order_id = result.gateway_order_id
        logger.info(f"Order #{order.id} charged EGP {amount:.2f} (transaction {result.transaction_id})")
        status = BillingStatus.SUCCESS
    else:
        _mark(order, BillingStatus.FAILED, result.error_message or "Payment declined")
        logger.warning(f"Order #{order.id} charge failed: {result.error_message}")
        status = BillingStatus.FAILED

    await db.commit()
    return status


class BillingScheduler:
    """Runs weekly billing; overlapping runs in one process are refused."""

    def __init__(self):
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def process_weekly_billing(self, db: AsyncSession, now: Optional[datetime] = None) -> BillingReport:
        if self._lock.locked():
            logger.info("Billing job already running, skipping")
            return BillingReport(already_running=True)

        async with self._lock:
            now = now or utcnow()
            report = BillingReport()
            weeks = await weeks_due_for_billing(db, now)
            logger.info(f"Billing job: {len(weeks)} week(s) in window ending {now:%Y-%m-%d %H:%M}")

            for week in weeks:
                report.weeks.append(week.id)
                for order in await billable_orders(db, week.id):
                    status = await bill_order(db, order)
                    if status == BillingStatus.SUCCESS:
                        report.charged += 1
                    elif status == BillingStatus.SKIPPED:
                        report.skipped += 1
                    else:
                        report.failed += 1

            logger.info(
                f"Billing job done: {report.charged} charged, "
                f"{report.failed} failed, {report.skipped} skipped"
            )
            return report


billing_scheduler = BillingScheduler()


async def process_weekly_billing(db: AsyncSession, now: Optional[datetime] = None) -> BillingReport:
    return await billing_scheduler.process_weekly_billing(db, now)
