"""
Menu weeks.

Weeks follow a weekly cadence keyed on the delivery date. Ordering closes
``ORDER_DEADLINE_DAYS`` before delivery. New weeks are generated on demand
up to ``FUTURE_WEEKS_HORIZON`` weeks ahead, and receive the menu of the
template week (the oldest week).
"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wagba.core.config import get_settings
from wagba.core.exceptions import ConflictError, NotFoundError
from wagba.models import Meal, Week, WeekMeal, utcnow

logger = logging.getLogger(__name__)

MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def format_week_label(start: Union[date, datetime], end: Union[date, datetime]) -> str:
    """``"Jan 5-11, 2026"`` or ``"Jan 29-Feb 4, 2026"`` (year of the start date)."""
    start_month = MONTHS[start.month - 1]
    end_month = MONTHS[end.month - 1]
    if start_month == end_month:
        return f"{start_month} {start.day}-{end.day}, {start.year}"
    return f"{start_month} {start.day}-{end_month} {end.day}, {start.year}"


def week_identifier(delivery: Union[date, datetime]) -> str:
    year, week, _ = delivery.isocalendar()
    return f"{year}-W{week:02d}"


def build_week(delivery_date: datetime, deadline_days: Optional[int] = None) -> Week:
    """Unsaved ``Week`` delivering on ``delivery_date``."""
    if deadline_days is None:
        deadline_days = get_settings().order_deadline_days
    end_date = delivery_date + timedelta(days=6)
    return Week(
        identifier=week_identifier(delivery_date),
        label=format_week_label(delivery_date, end_date),
        start_date=delivery_date,
        end_date=end_date,
        order_deadline=delivery_date - timedelta(days=deadline_days),
        delivery_date=delivery_date,
        is_active=True,
        is_selectable=True,
    )


async def list_weeks(db: AsyncSession) -> list[Week]:
    result = await db.execute(select(Week).order_by(Week.delivery_date))
    return list(result.scalars().all())


async def get_week(db: AsyncSession, week_id: int) -> Week:
    week = await db.get(Week, week_id)
    if week is None:
        raise NotFoundError("Week not found")
    return week


async def get_current_week(db: AsyncSession, now: Optional[datetime] = None) -> Optional[Week]:
    """The earliest active week still open for ordering."""
    now = now or utcnow()
    result = await db.execute(
        select(Week)
        .where(Week.is_active.is_(True), Week.order_deadline > now)
        .order_by(Week.delivery_date)
        .limit(1)
    )
    return result.scalars().first()


async def resolve_week(db: AsyncSession, week_ref: Union[str, int]) -> Week:
    """Look up a week by id or by the alias ``"current"``."""
    if week_ref == "current":
        week = await get_current_week(db)
        if week is None:
            raise NotFoundError("No current week found")
        return week
    try:
        week_id = int(week_ref)
    except (TypeError, ValueError):
        raise NotFoundError("Week not found") from None
    return await get_week(db, week_id)


async def ensure_future_weeks(
    db: AsyncSession,
    now: Optional[datetime] = None,
    horizon_weeks: Optional[int] = None,
) -> list[Week]:
    """
    Generate weekly menus after the latest delivery date until the horizon.

    Does nothing on an empty database (the first week is created by seeding
    or by an admin). Returns the created weeks.
    """
    settings = get_settings()
    now = now or utcnow()
    horizon_weeks = horizon_weeks if horizon_weeks is not None else settings.future_weeks_horizon

    weeks = await list_weeks(db)
    if not weeks:
        return []

    template = min(weeks, key=lambda w: w.id)
    template_meals = (
        await db.execute(select(WeekMeal).where(WeekMeal.week_id == template.id))
    ).scalars().all()
    existing = {w.identifier for w in weeks}

    horizon = now + timedelta(weeks=horizon_weeks)
    delivery = weeks[-1].delivery_date
    created: list[Week] = []

    while delivery <= horizon:
        delivery = delivery + timedelta(days=7)
        week = build_week(delivery, settings.order_deadline_days)
        if week.identifier in existing:
            continue
        db.add(week)
        await db.flush()

        for template_meal in template_meals:
            db.add(WeekMeal(
                week_id=week.id,
                meal_id=template_meal.meal_id,
                is_available=template_meal.is_available,
                is_featured=template_meal.is_featured,
                sort_order=template_meal.sort_order,
            ))
        existing.add(week.identifier)
        created.append(week)

    if created:
        await db.commit()
        logger.info(f"Generated {len(created)} future week(s) up to {created[-1].label}")
    return created


async def get_meals_for_week(db: AsyncSession, week_id: int) -> list[Meal]:
    """Available meals on a week's menu, in menu order."""
    result = await db.execute(
        select(Meal)
        .join(WeekMeal, WeekMeal.meal_id == Meal.id)
        .where(WeekMeal.week_id == week_id, WeekMeal.is_available.is_(True))
        .order_by(WeekMeal.sort_order, Meal.id)
    )
    return list(result.scalars().all())


async def add_meal_to_week(
    db: AsyncSession,
    week_id: int,
    meal_id: int,
    is_featured: bool = False,
    sort_order: int = 0,
) -> WeekMeal:
    await get_week(db, week_id)
    if await db.get(Meal, meal_id) is None:
        raise NotFoundError("Meal not found")

    existing = await db.execute(
        select(WeekMeal).where(WeekMeal.week_id == week_id, WeekMeal.meal_id == meal_id)
    )
    if existing.scalars().first() is not None:
        raise ConflictError("Meal already on this week's menu")

    week_meal = WeekMeal(week_id=week_id, meal_id=meal_id, is_featured=is_featured, sort_order=sort_order)
    db.add(week_meal)
    await db.commit()
    return week_meal


async def remove_meal_from_week(db: AsyncSession, week_id: int, meal_id: int) -> None:
    result = await db.execute(
        select(WeekMeal).where(WeekMeal.week_id == week_id, WeekMeal.meal_id == meal_id)
    )
    week_meal = result.scalars().first()
    if week_meal is None:
        raise NotFoundError("Meal is not on this week's menu")
    await db.delete(week_meal)
    await db.commit()
