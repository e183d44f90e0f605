"""
Route gating for browser-side pages.

Three independent queries decide where a visitor may go:

    user      GET /api/auth/me                  (401 -> anonymous)
    profile   GET /api/user/profile and GET /api/orders/pending
    admin     GET /api/admin/auth/me            (401 -> no admin session)

Customer pages send anonymous visitors to ``/auth``, onboarding pages send
customers who finished onboarding to ``/account``, and admin pages send
visitors without an admin session to ``/admin/login``. While a query that
matters for the current route is still loading the visitor stays put.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from wagba.client.api import ApiClient, ApiError
from wagba.client.query_cache import LOADING, SUCCESS, QueryCache, QueryState

logger = logging.getLogger(__name__)

AUTH_ROUTE = "/auth"
ACCOUNT_ROUTE = "/account"
ADMIN_LOGIN_ROUTE = "/admin/login"

PROTECTED_ROUTES = ("/checkout", "/account")
ONBOARDING_ROUTES = ("/meal-plans", "/menu", "/auth", "/checkout")


def _route_in(path: str, routes: tuple[str, ...]) -> bool:
    return any(path == route or path.startswith(route + "/") for route in routes)


def is_admin_route(path: str) -> bool:
    return _route_in(path, ("/admin",)) and not _route_in(path, (ADMIN_LOGIN_ROUTE,))


@dataclass(frozen=True)
class GateQuery:
    key: tuple
    url: str
    retry: int


USER_QUERY = GateQuery(("/api/auth/me",), "/api/auth/me", retry=0)
PROFILE_QUERY = GateQuery(("/api/user/profile",), "/api/user/profile", retry=3)
PENDING_ORDER_QUERY = GateQuery(("/api/orders/pending",), "/api/orders/pending", retry=3)
ADMIN_QUERY = GateQuery(("/api/admin/auth/me",), "/api/admin/auth/me", retry=0)


class SessionGate:
    def __init__(self, api: ApiClient, cache: QueryCache):
        self.api = api
        self.cache = cache

    # -------------------------------------------------------------------------
    # Query plumbing
    # -------------------------------------------------------------------------

    def _fetcher(self, query: GateQuery):
        async def fetch() -> Any:
            if query is PENDING_ORDER_QUERY:
                try:
                    return await self.api.query(query.url)
                except ApiError as exc:
                    if exc.status == 404:
                        return None
                    raise
            return await self.api.query(query.url, on_401="return_null")
        return fetch

    async def _load(self, query: GateQuery) -> None:
        state = self.cache.get_query_state(query.key)
        if state is not None and state.status == SUCCESS and not state.is_invalidated:
            return
        try:
            await self.cache.fetch_query(query.key, self._fetcher(query), retry=query.retry)
        except Exception as exc:
            logger.warning(f"{query.url} failed: {exc}")

    def _state(self, query: GateQuery) -> Optional[QueryState]:
        return self.cache.get_query_state(query.key)

    def _loading(self, *queries: GateQuery) -> bool:
        for query in queries:
            state = self._state(query)
            if state is None or state.status == LOADING:
                return True
        return False

    def _data(self, query: GateQuery) -> Any:
        state = self._state(query)
        if state is None or state.status != SUCCESS:
            return None
        return state.data

    # -------------------------------------------------------------------------
    # Derived session facts
    # -------------------------------------------------------------------------

    @property
    def user(self) -> Optional[dict]:
        return self._data(USER_QUERY)

    @property
    def admin(self) -> Optional[dict]:
        return self._data(ADMIN_QUERY)

    @property
    def has_completed_onboarding(self) -> bool:
        """Settled order on record and nothing waiting for payment."""
        profile = self._data(PROFILE_QUERY)
        if not profile or not profile.get("has_completed_onboarding"):
            return False
        return self._data(PENDING_ORDER_QUERY) is None

    # -------------------------------------------------------------------------
    # Decisions
    # -------------------------------------------------------------------------

    def redirect_for(self, path: str) -> Optional[str]:
        """Where to send a visitor on ``path`` given what is cached now.

        ``None`` means stay, which includes "still loading".
        """
        if is_admin_route(path):
            if self._loading(ADMIN_QUERY):
                return None
            return None if self.admin else ADMIN_LOGIN_ROUTE

        if _route_in(path, PROTECTED_ROUTES):
            if self._loading(USER_QUERY):
                return None
            if not self.user:
                return AUTH_ROUTE

        if _route_in(path, ONBOARDING_ROUTES):
            if self._loading(USER_QUERY):
                return None
            if not self.user:
                return None
            if self._loading(PROFILE_QUERY, PENDING_ORDER_QUERY):
                return None
            if self.has_completed_onboarding:
                return ACCOUNT_ROUTE

        return None

    async def resolve(self, path: str) -> Optional[str]:
        """Load whatever ``path`` depends on, then decide."""
        if is_admin_route(path):
            await self._load(ADMIN_QUERY)
            return self.redirect_for(path)

        if _route_in(path, PROTECTED_ROUTES + ONBOARDING_ROUTES):
            await self._load(USER_QUERY)
            if self.user and _route_in(path, ONBOARDING_ROUTES):
                await self._load(PROFILE_QUERY)
                await self._load(PENDING_ORDER_QUERY)
        return self.redirect_for(path)
