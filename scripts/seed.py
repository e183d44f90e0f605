"""
Database Seeding Script

Creates the starter catalog: meals, the first menu week (future weeks are
generated from it), neighborhoods, an invitation code, pricing tiers and a
super admin.
Run from project root: python scripts/seed.py [--admin-password ...]

Author: Wagba Engineering
Version: 1.0.0
"""

import argparse
import asyncio
import os
import sys
from datetime import datetime, timedelta

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from sqlalchemy import func, select

from wagba.core.config import get_settings, setup_logging
from wagba.database import async_session_maker, engine, init_db
from wagba.models import AdminRole, Meal, utcnow
from wagba.services import accounts, menu, onboarding, weeks
from wagba.services.pricing import DEFAULT_PRICING

MEALS = [
    {
        "title": "Grilled Chicken Freekeh",
        "description": "Charred chicken thigh over smoky freekeh with roasted vegetables.",
        "image_url": "/images/meals/chicken-freekeh.jpg",
        "calories": 540, "protein": 42, "calories_large": 760, "protein_large": 60,
        "ingredients": "Chicken, freekeh, zucchini, peppers, tahini",
        "tags": ["high-protein"], "category": "Main Dishes",
    },
    {
        "title": "Beef Kofta Bowl",
        "description": "Spiced kofta with herbed rice, tomato salad and yogurt sauce.",
        "image_url": "/images/meals/kofta-bowl.jpg",
        "calories": 610, "protein": 38, "calories_large": 850, "protein_large": 54,
        "ingredients": "Beef, rice, tomato, cucumber, yogurt, parsley",
        "tags": ["signature"], "category": "Main Dishes",
    },
    {
        "title": "Koshary Power Bowl",
        "description": "Lentils, rice and pasta with crispy onions and a spicy tomato sauce.",
        "image_url": "/images/meals/koshary.jpg",
        "calories": 580, "protein": 21, "calories_large": 810, "protein_large": 29,
        "ingredients": "Lentils, rice, pasta, chickpeas, onion, tomato",
        "tags": ["vegan"], "category": "Main Dishes",
    },
    {
        "title": "Salmon with Dill Potatoes",
        "description": "Oven-roasted salmon, baby potatoes and a lemon dill dressing.",
        "image_url": "/images/meals/salmon.jpg",
        "calories": 520, "protein": 36, "calories_large": 730, "protein_large": 51,
        "ingredients": "Salmon, potatoes, dill, lemon, green beans",
        "tags": ["pescatarian"], "category": "Main Dishes",
    },
    {
        "title": "Molokhia with Chicken",
        "description": "Classic molokhia with garlic and coriander, shredded chicken and vermicelli rice.",
        "image_url": "/images/meals/molokhia.jpg",
        "calories": 560, "protein": 40, "calories_large": 780, "protein_large": 56,
        "ingredients": "Jute leaves, chicken, garlic, coriander, rice",
        "tags": ["classic"], "category": "Main Dishes",
    },
    {
        "title": "Halloumi Quinoa Salad",
        "description": "Grilled halloumi over quinoa, rocket, pomegranate and mint.",
        "image_url": "/images/meals/halloumi.jpg",
        "calories": 470, "protein": 24, "calories_large": 650, "protein_large": 33,
        "ingredients": "Halloumi, quinoa, rocket, pomegranate, mint",
        "tags": ["vegetarian"], "category": "Salads",
    },
]

NEIGHBORHOODS = [
    ("Zamalek", True),
    ("Maadi", True),
    ("Heliopolis", True),
    ("New Cairo", True),
    ("Sheikh Zayed", False),
    ("6th of October", False),
]


def first_delivery_date(now: datetime, deadline_days: int) -> datetime:
    """Next Saturday whose ordering window is still open."""
    delivery = (now + timedelta(days=deadline_days + 1)).replace(hour=10, minute=0, second=0, microsecond=0)
    while delivery.weekday() != 5:
        delivery += timedelta(days=1)
    return delivery


def split_pricing_key(key: str) -> tuple[str, str]:
    for config_type in ("meal_bundle", "meal_addon", "delivery"):
        prefix = config_type + "_"
        if key.startswith(prefix):
            return config_type, key[len(prefix):]
    raise ValueError(f"Unknown pricing key: {key}")


async def seed(admin_username: str, admin_email: str, admin_password: str, invitation_code: str) -> None:
    settings = get_settings()
    await init_db()

    async with async_session_maker() as db:
        meal_count = (await db.execute(select(func.count(Meal.id)))).scalar() or 0
        if meal_count:
            print(f"⚠️ Database already has {meal_count} meals, skipping seed")
            return

        meals = [await menu.create_meal(db, data) for data in MEALS]
        print(f"✅ Meals: {len(meals)}")

        week = await menu.create_week(
            db, first_delivery_date(utcnow(), settings.order_deadline_days)
        )
        for position, meal in enumerate(meals):
            await weeks.add_meal_to_week(db, week.id, meal.id, is_featured=position < 2, sort_order=position)
        created = await weeks.ensure_future_weeks(db)
        print(f"✅ Weeks: {week.label} plus {len(created)} generated")

        for name, serviced in NEIGHBORHOODS:
            await onboarding.create_neighborhood(db, name, serviced)
        print(f"✅ Neighborhoods: {len(NEIGHBORHOODS)}")

        await onboarding.create_invitation_code(db, invitation_code, description="Launch invitations")
        print(f"✅ Invitation code: {invitation_code.upper()}")

        for key, price in DEFAULT_PRICING.items():
            config_type, config_key = split_pricing_key(key)
            await menu.upsert_pricing_config(db, config_type, config_key, price)
        print(f"✅ Pricing configs: {len(DEFAULT_PRICING)}")

        await accounts.create_admin(
            db,
            username=admin_username,
            email=admin_email,
            password=admin_password,
            name="Wagba Admin",
            role=AdminRole.SUPER_ADMIN,
        )
        print(f"✅ Super admin: {admin_username}")

    await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed the Wagba database")
    parser.add_argument("--admin-username", default="admin")
    parser.add_argument("--admin-email", default="admin@wagba.food")
    parser.add_argument("--admin-password", default=os.environ.get("WAGBA_ADMIN_PASSWORD", "change-me-now"))
    parser.add_argument("--invitation-code", default="WAGBA2026")
    args = parser.parse_args()

    setup_logging()
    print("=" * 60)
    print("🌱 SEEDING WAGBA DATABASE")
    print("=" * 60)
    asyncio.run(seed(args.admin_username, args.admin_email, args.admin_password, args.invitation_code))
    print("=" * 60)


if __name__ == "__main__":
    main()
