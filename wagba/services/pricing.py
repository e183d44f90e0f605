"""
Pricing Service

Per-meal price comes from a meal-count tier table (bigger boxes are cheaper
per meal), large portions carry a flat add-on, and the order totals are the
sum of item prices plus delivery.

Price points are admin-editable ``PricingConfig`` rows; any key missing from
the database falls back to ``DEFAULT_PRICING``. Loaded tables are cached for
``PRICING_CACHE_SECONDS``.
"""

import logging
import time
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wagba.core.config import get_settings
from wagba.models import PortionSize, PricingConfig

logger = logging.getLogger(__name__)

BASE_MEAL_PRICE = 249.0
MIN_MEALS = 4
MAX_MEALS = 15

LARGE_ADDON_KEY = "meal_addon_large_meal_addon"
BASE_DELIVERY_KEY = "delivery_base_delivery"
EXPRESS_DELIVERY_KEY = "delivery_express_delivery"

DEFAULT_PRICING: dict[str, float] = {
    "meal_bundle_4_meals": 249.0,
    "meal_bundle_5_meals": 239.0,
    "meal_bundle_6_meals": 239.0,
    "meal_bundle_7_meals": 219.0,
    "meal_bundle_8_meals": 219.0,
    "meal_bundle_9_meals": 219.0,
    "meal_bundle_10_meals": 199.0,
    "meal_bundle_11_meals": 199.0,
    "meal_bundle_12_meals": 199.0,
    "meal_bundle_13_meals": 199.0,
    "meal_bundle_14_meals": 199.0,
    "meal_bundle_15_meals": 199.0,
    BASE_DELIVERY_KEY: 0.0,
    EXPRESS_DELIVERY_KEY: 30.0,
    LARGE_ADDON_KEY: 99.0,
}


def bundle_key(meal_count: int) -> str:
    return f"meal_bundle_{meal_count}_meals"


def _lookup(table: Optional[Mapping[str, float]], key: str, fallback: float) -> float:
    if table is not None and key in table:
        return float(table[key])
    return float(DEFAULT_PRICING.get(key, fallback))


def price_per_meal(meal_count: int, table: Optional[Mapping[str, float]] = None) -> float:
    """Tier price for a box of ``meal_count`` meals (base price when off-table)."""
    return _lookup(table, bundle_key(meal_count), BASE_MEAL_PRICE)


def large_addon_price(table: Optional[Mapping[str, float]] = None) -> float:
    return _lookup(table, LARGE_ADDON_KEY, 99.0)


def delivery_price(express: bool = False, table: Optional[Mapping[str, float]] = None) -> float:
    key = EXPRESS_DELIVERY_KEY if express else BASE_DELIVERY_KEY
    return _lookup(table, key, 0.0)


def item_price(
    meal_count: int,
    portion_size: PortionSize | str,
    table: Optional[Mapping[str, float]] = None,
) -> float:
    """Price of one meal in a box of ``meal_count`` meals."""
    price = price_per_meal(meal_count, table)
    if PortionSize(portion_size) == PortionSize.LARGE:
        price += large_addon_price(table)
    return price


@dataclass(frozen=True)
class OrderTotals:
    subtotal: float
    discount: float
    total: float
    price_per_meal: float

    def as_dict(self) -> dict[str, float]:
        return {"subtotal": self.subtotal, "discount": self.discount, "total": self.total}


def calculate_order_totals(
    meal_count: int,
    portions: Iterable[PortionSize | str],
    table: Optional[Mapping[str, float]] = None,
    delivery_fee: float = 0.0,
) -> OrderTotals:
    """
    Compute totals for an order's items.

    Args:
        meal_count: Box size, selects the price tier
        portions: Portion size of every selected item
        table: Loaded pricing table (defaults when None)
        delivery_fee: Added to the total

    Returns:
        OrderTotals where ``subtotal`` is the sum of item prices, ``discount``
        is the bundle saving against the base meal price, counted over
        the selected items only (not the box size), and ``total`` is
        ``subtotal + delivery_fee``.
    """
    portions = list(portions)
    tier = price_per_meal(meal_count, table)
    subtotal = sum(item_price(meal_count, p, table) for p in portions)
    discount = max(BASE_MEAL_PRICE - tier, 0.0) * len(portions)
    return OrderTotals(
        subtotal=round(subtotal, 2),
        discount=round(discount, 2),
        total=round(subtotal + delivery_fee, 2),
        price_per_meal=tier,
    )


class PricingService:
    """
    Loads active ``PricingConfig`` rows into a flat ``{"type_key": price}``
    table and caches it per process.
    """

    def __init__(self, ttl_seconds: Optional[int] = None):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else get_settings().pricing_cache_seconds
        self._cache: Optional[dict[str, float]] = None
        self._loaded_at = 0.0

    def clear_cache(self) -> None:
        """Force the next lookup to reload from the database."""
        self._cache = None
        self._loaded_at = 0.0
        logger.debug("Pricing cache cleared")

    def _is_fresh(self) -> bool:
        return self._cache is not None and (time.monotonic() - self._loaded_at) < self.ttl_seconds

    async def get_table(self, db: AsyncSession) -> dict[str, float]:
        if self._is_fresh():
            return self._cache  # type: ignore[return-value]

        table = dict(DEFAULT_PRICING)
        result = await db.execute(select(PricingConfig).where(PricingConfig.is_active.is_(True)))
        for config in result.scalars().all():
            table[config.key] = float(config.price)

        self._cache = table
        self._loaded_at = time.monotonic()
        logger.debug(f"Pricing table loaded ({len(table)} keys)")
        return table

    async def get_price_for_meal_count(self, db: AsyncSession, meal_count: int) -> float:
        return price_per_meal(meal_count, await self.get_table(db))

    async def get_large_meal_addon_price(self, db: AsyncSession) -> float:
        return large_addon_price(await self.get_table(db))

    async def get_delivery_price(self, db: AsyncSession, express: bool = False) -> float:
        return delivery_price(express, await self.get_table(db))

    async def get_all_meal_pricing(self, db: AsyncSession) -> dict[int, float]:
        """Tier price for every supported box size (for plan pickers)."""
        table = await self.get_table(db)
        return {count: price_per_meal(count, table) for count in range(MIN_MEALS, MAX_MEALS + 1)}

    async def calculate_totals(
        self,
        db: AsyncSession,
        meal_count: int,
        portions: Iterable[PortionSize | str],
        delivery_fee: float = 0.0,
    ) -> OrderTotals:
        return calculate_order_totals(meal_count, portions, await self.get_table(db), delivery_fee)


pricing_service = PricingService()
