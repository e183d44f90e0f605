"""
Cache bookkeeping after order mutations.

Adding or removing a meal, skipping a delivery and changing an order's
status all touch several cached views of the same orders (the admin list,
the customer's list, item lists, upcoming meals). ``CacheManager`` knows
which keys those are and keeps them consistent, including the
optimistic-update-then-rollback flow used for admin status changes.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from wagba.client.query_cache import QueryCache, QueryKey

logger = logging.getLogger(__name__)

ADMIN_ORDERS_KEY = ("/api/admin/orders",)
ORDERS_KEY = ("/api/orders",)
USER_ORDERS_KEY = ("/api/user/orders",)
UPCOMING_MEALS_KEY = ("/api/user/upcoming-meals",)
SUBSCRIPTION_KEY = ("/api/user/subscription",)
AUTH_ME_KEY = ("/api/auth/me",)
ADMIN_AUTH_ME_KEY = ("/api/admin/auth/me",)

ORDER_URL_FRAGMENTS = (
    "/api/orders",
    "/api/admin/orders",
    "/api/user/orders",
    "/api/user/upcoming-meals",
)


def is_order_key(key: QueryKey) -> bool:
    first = key[0] if key else None
    return isinstance(first, str) and any(fragment in first for fragment in ORDER_URL_FRAGMENTS)


def _with_status(orders: list, order_id: int, status: str) -> list:
    stamp = datetime.now(timezone.utc).isoformat()
    return [
        {**order, "status": status, "updated_at": stamp} if order.get("id") == order_id else order
        for order in orders
    ]


class CacheManager:
    def __init__(self, cache: QueryCache):
        self.cache = cache

    async def invalidate_order_queries(self, order_id: Optional[int] = None) -> None:
        """Mark every order view stale, then refetch each of them once."""
        targets = [ADMIN_ORDERS_KEY, ORDERS_KEY, USER_ORDERS_KEY, UPCOMING_MEALS_KEY]
        if order_id is not None:
            targets += [(f"/api/orders/{order_id}/items",), ("/api/orders", order_id, "items")]

        for key in targets:
            await self.cache.invalidate_queries(key, refetch=False)
        await self.cache.invalidate_queries(predicate=is_order_key, refetch=False)
        await self.cache.refetch_queries(stale_only=True)

    async def refetch_order_queries(self) -> None:
        for key in (ADMIN_ORDERS_KEY, ORDERS_KEY, UPCOMING_MEALS_KEY):
            await self.cache.refetch_queries(key)

    def optimistic_update_order_status(self, order_id: int, status: str) -> None:
        """Write ``status`` into the cached order lists before the server confirms it."""
        def update(data: Any) -> Any:
            if isinstance(data, list):
                return _with_status(data, order_id, status)
            if isinstance(data, dict) and isinstance(data.get("orders"), list):
                return {**data, "orders": _with_status(data["orders"], order_id, status)}
            return data

        for key in (ADMIN_ORDERS_KEY, ORDERS_KEY):
            if self.cache.get_query_state(key) is not None:
                self.cache.set_query_data(key, update)

    async def update_order_status_with_cache(
        self,
        order_id: int,
        status: str,
        update_fn: Callable[[], Awaitable[Any]],
    ) -> Any:
        """
        Apply a status change optimistically and run ``update_fn``.

        On success every order view is invalidated and refetched. On failure
        the cached lists are restored to their snapshots and the error is
        re-raised.
        """
        admin_orders = self.cache.get_query_data(ADMIN_ORDERS_KEY)
        user_orders = self.cache.get_query_data(ORDERS_KEY)

        try:
            self.optimistic_update_order_status(order_id, status)
            result = await update_fn()
            await self.invalidate_order_queries(order_id)
            await self.refetch_order_queries()
            return result
        except Exception:
            logger.warning(f"Status update of order #{order_id} failed, restoring cache")
            if admin_orders is not None:
                self.cache.set_query_data(ADMIN_ORDERS_KEY, admin_orders)
            if user_orders is not None:
                self.cache.set_query_data(ORDERS_KEY, user_orders)
            raise

    async def after_meal_change(self, order_id: int) -> None:
        """Call after a meal is added to or removed from an order."""
        await self.invalidate_order_queries(order_id)

    async def after_skip_change(self) -> None:
        """Call after a delivery is skipped or unskipped."""
        await self.invalidate_order_queries()
        await self.cache.invalidate_queries(SUBSCRIPTION_KEY)

    async def reset_auth_cache(self) -> None:
        """Drop everything cached for the previous session and reload both identities."""
        fetchers = {}
        for key in (AUTH_ME_KEY, ADMIN_AUTH_ME_KEY):
            state = self.cache.get_query_state(key)
            if state is not None and state.fetcher is not None:
                fetchers[key] = state.fetcher

        self.cache.clear()
        for key, fetcher in fetchers.items():
            try:
                await self.cache.fetch_query(key, fetcher)
            except Exception as exc:
                logger.warning(f"Reloading {key[0]} failed: {exc}")
