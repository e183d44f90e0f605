"""
Meal catalog, week editing and price point administration.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from wagba.core.config import get_settings
from wagba.core.exceptions import ConflictError, NotFoundError, ValidationError
from wagba.models import Meal, PricingConfig, Week, WeekMeal
from wagba.services.pricing import pricing_service
from wagba.services.weeks import build_week, format_week_label, get_week

logger = logging.getLogger(__name__)

MEAL_FIELDS = (
    "title", "description", "image_url", "calories", "protein", "calories_large",
    "protein_large", "ingredients", "tags", "category",
)
WEEK_FIELDS = ("label", "order_deadline", "delivery_date", "is_active", "is_selectable")


# =============================================================================
# MEALS
# =============================================================================

async def list_meals(db: AsyncSession) -> list[Meal]:
    result = await db.execute(select(Meal).order_by(Meal.id))
    return list(result.scalars().all())


async def get_meal(db: AsyncSession, meal_id: int) -> Meal:
    meal = await db.get(Meal, meal_id)
    if meal is None:
        raise NotFoundError("Meal not found")
    return meal


async def create_meal(db: AsyncSession, data: Mapping[str, Any]) -> Meal:
    meal = Meal(**{k: v for k, v in data.items() if k in MEAL_FIELDS and v is not None})
    db.add(meal)
    await db.commit()
    logger.info(f"Created meal #{meal.id} ({meal.title})")
    return meal


async def update_meal(db: AsyncSession, meal_id: int, changes: Mapping[str, Any]) -> Meal:
    meal = await get_meal(db, meal_id)
    for field_name in MEAL_FIELDS:
        if changes.get(field_name) is not None:
            setattr(meal, field_name, changes[field_name])
    await db.commit()
    return meal


async def delete_meal(db: AsyncSession, meal_id: int) -> None:
    meal = await get_meal(db, meal_id)
    for week_meal in (await db.execute(select(WeekMeal).where(WeekMeal.meal_id == meal_id))).scalars():
        await db.delete(week_meal)
    await db.delete(meal)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Meal is part of existing orders and cannot be deleted") from None
    logger.info(f"Deleted meal #{meal_id}")


# =============================================================================
# WEEKS
# =============================================================================

async def create_week(db: AsyncSession, delivery_date: datetime, label: Optional[str] = None) -> Week:
    week = build_week(delivery_date, get_settings().order_deadline_days)
    if label:
        week.label = label
    existing = await db.execute(select(Week.id).where(Week.identifier == week.identifier))
    if existing.scalars().first() is not None:
        raise ConflictError(f"Week {week.identifier} already exists")
    db.add(week)
    await db.commit()
    logger.info(f"Created week #{week.id} ({week.label})")
    return week


async def update_week(db: AsyncSession, week_id: int, changes: Mapping[str, Any]) -> Week:
    week = await get_week(db, week_id)
    for field_name in WEEK_FIELDS:
        if changes.get(field_name) is not None:
            setattr(week, field_name, changes[field_name])

    if changes.get("delivery_date") is not None:
        week.start_date = week.delivery_date
        week.end_date = week.delivery_date + timedelta(days=6)
        if changes.get("label") is None:
            week.label = format_week_label(week.start_date, week.end_date)
    if week.order_deadline > week.delivery_date:
        raise ValidationError("Order deadline must be before the delivery date")

    await db.commit()
    return week


# =============================================================================
# PRICING
# =============================================================================

async def list_pricing_configs(db: AsyncSession) -> list[PricingConfig]:
    result = await db.execute(
        select(PricingConfig).order_by(PricingConfig.config_type, PricingConfig.id)
    )
    return list(result.scalars().all())


async def upsert_pricing_config(
    db: AsyncSession,
    config_type: str,
    config_key: str,
    price: float,
    description: Optional[str] = None,
    is_active: bool = True,
) -> PricingConfig:
    if price < 0:
        raise ValidationError("Price cannot be negative")

    result = await db.execute(
        select(PricingConfig).where(
            PricingConfig.config_type == config_type,
            PricingConfig.config_key == config_key,
        )
    )
    config = result.scalars().first()
    if config is None:
        config = PricingConfig(config_type=config_type, config_key=config_key)
        db.add(config)

    config.price = price
    config.is_active = is_active
    if description is not None:
        config.description = description
    await db.commit()

    pricing_service.clear_cache()
    logger.info(f"Pricing {config.key} set to {price}")
    return config


async def update_pricing_config(db: AsyncSession, config_id: int, changes: Mapping[str, Any]) -> PricingConfig:
    config = await db.get(PricingConfig, config_id)
    if config is None:
        raise NotFoundError("Pricing config not found")
    if changes.get("price") is not None and changes["price"] < 0:
        raise ValidationError("Price cannot be negative")
    for field_name in ("price", "description", "is_active"):
        if changes.get(field_name) is not None:
            setattr(config, field_name, changes[field_name])
    await db.commit()

    pricing_service.clear_cache()
    logger.info(f"Pricing {config.key} updated")
    return config
