"""
Shared fixtures.

The app runs against an in-memory SQLite database (one per test) with the
mock payment and notification services; failures and latency are disabled
so results are deterministic.
"""

import os

os.environ["ENV_MODE"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["SECRET_KEY"] = "wagba-test-secret"
os.environ["PAYMOB_HMAC_SECRET"] = "test-hmac-secret"
os.environ["MOCK_FAILURE_RATE"] = "0"
os.environ["MOCK_MAX_LATENCY"] = "0"
os.environ["APP_BASE_URL"] = "http://test"

from datetime import timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from wagba.core.security import ADMIN_KIND, USER_KIND, create_access_token
from wagba.database import Base, get_db
from wagba.main import app
from wagba.models import Admin, AdminRole, Meal, User, Week, WeekMeal, utcnow
from wagba.services import accounts
from wagba.services.billing import BillingScheduler
from wagba.services.notifications import reset_notification_service
from wagba.services.payment import reset_payment_service
from wagba.services.pricing import pricing_service
from wagba.services.weeks import build_week

HMAC_SECRET = "test-hmac-secret"
PASSWORD = "secret123"


@pytest.fixture(autouse=True)
def fresh_services(monkeypatch):
    pricing_service.clear_cache()
    reset_payment_service()
    reset_notification_service()
    monkeypatch.setattr("wagba.services.billing.billing_scheduler", BillingScheduler())
    yield
    reset_payment_service()
    reset_notification_service()


@pytest_asyncio.fixture
async def session_maker():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_maker):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# =============================================================================
# DATA HELPERS
# =============================================================================

async def make_meal(db: AsyncSession, title: str = "Chicken Freekeh") -> Meal:
    meal = Meal(
        title=title,
        description=f"{title} with seasonal vegetables",
        image_url="/images/meals/test.jpg",
        calories=550,
        protein=40,
        calories_large=760,
        protein_large=58,
        tags=["test"],
    )
    db.add(meal)
    await db.commit()
    return meal


async def make_week(db: AsyncSession, days_ahead: int = 10, meals: list = ()) -> Week:
    delivery = (utcnow() + timedelta(days=days_ahead)).replace(hour=10, minute=0, second=0, microsecond=0)
    week = build_week(delivery, deadline_days=3)
    db.add(week)
    await db.flush()
    for position, meal in enumerate(meals):
        db.add(WeekMeal(week_id=week.id, meal_id=meal.id, sort_order=position))
    await db.commit()
    return week


async def make_user(db: AsyncSession, username: str = "mariam", phone: str = "01012345678") -> User:
    return await accounts.register_user(
        db,
        username=username,
        email=f"{username}@mail.com",
        password=PASSWORD,
        name=username.title(),
        phone=phone,
    )


async def make_admin(db: AsyncSession, username: str = "ops", role: AdminRole = AdminRole.SUPER_ADMIN) -> Admin:
    return await accounts.create_admin(
        db,
        username=username,
        email=f"{username}@wagba.food",
        password=PASSWORD,
        name=username.title(),
        role=role,
    )


def user_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id, USER_KIND)}"}


def admin_headers(admin: Admin) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(admin.id, ADMIN_KIND)}"}


@pytest_asyncio.fixture
async def menu_week(db):
    """An open week with three meals on its menu."""
    meals = [await make_meal(db, title) for title in ("Kofta Bowl", "Koshary", "Salmon")]
    week = await make_week(db, meals=meals)
    return week, meals
