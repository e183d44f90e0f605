"""
HTTP client for the Wagba API.

Sends the customer token, or the admin token for ``/admin/`` URLs, as a
Bearer header alongside whatever cookies the server has set, so either
authentication path works.

Usage:
    async with ApiClient("http://localhost:5000") as api:
        auth = await api.request("POST", "/api/auth/login", {"email": ..., "password": ...})
        api.set_token(auth["token"])
        user = await api.query("/api/auth/me", on_401="return_null")
"""

import logging
from typing import Any, Literal, Optional

import httpx

logger = logging.getLogger(__name__)

UnauthorizedBehavior = Literal["return_null", "throw"]


class ApiError(Exception):
    """Non-2xx response. ``str(error)`` reads ``"<status>: <text>"``."""

    def __init__(self, status: int, text: str):
        self.status = status
        self.text = text
        super().__init__(f"{status}: {text}")


def is_admin_url(url: str) -> bool:
    return "/admin/" in url


class ApiClient:
    """Thin async wrapper over ``httpx.AsyncClient``."""

    def __init__(
        self,
        base_url: str = "http://localhost:5000",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ):
        self._client = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=timeout)
        self.auth_token: Optional[str] = None
        self.admin_token: Optional[str] = None

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def set_token(self, token: Optional[str], admin: bool = False) -> None:
        if admin:
            self.admin_token = token
        else:
            self.auth_token = token

    def clear_tokens(self) -> None:
        self.auth_token = None
        self.admin_token = None
        self._client.cookies.clear()

    def _headers(self, url: str) -> dict[str, str]:
        token = self.admin_token if is_admin_url(url) else self.auth_token
        if token:
            return {"Authorization": f"Bearer {token}"}
        return {}

    @staticmethod
    def _body(response: httpx.Response) -> Any:
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if not response.is_success:
            raise ApiError(response.status_code, response.text or response.reason_phrase)

    async def request(self, method: str, url: str, data: Any = None) -> Any:
        """Send a mutation and return the decoded JSON body."""
        response = await self._client.request(
            method,
            url,
            json=data,
            headers=self._headers(url),
        )
        logger.debug(f"{method} {url} -> {response.status_code}")
        self._raise_for_status(response)
        return self._body(response)

    async def query(self, url: str, on_401: UnauthorizedBehavior = "throw") -> Any:
        """
        GET ``url``.

        With ``on_401="return_null"`` an unauthenticated response yields
        ``None`` instead of raising.
        """
        response = await self._client.get(url, headers=self._headers(url))
        if on_401 == "return_null" and response.status_code == 401:
            return None
        self._raise_for_status(response)
        return self._body(response)
