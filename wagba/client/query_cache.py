"""
Keyed request cache.

Entries are addressed by tuple keys whose first element is normally the
request URL, e.g. ``("/api/orders",)`` or ``("/api/orders", 7, "items")``.
Matching by key is a prefix match on the tuple. Each entry remembers the
fetcher that last loaded it so invalidation and refetching can re-run it.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Optional, Sequence, Union

from wagba.client.api import ApiError

logger = logging.getLogger(__name__)

QueryKey = tuple
KeyLike = Union[str, Sequence[Any]]
Fetcher = Callable[[], Awaitable[Any]]
KeyPredicate = Callable[[QueryKey], bool]

DEFAULT_RETRY = 3

IDLE = "idle"
LOADING = "loading"
SUCCESS = "success"
ERROR = "error"


def to_key(key: KeyLike) -> QueryKey:
    if isinstance(key, str):
        return (key,)
    return tuple(key)


def key_matches(key: QueryKey, prefix: QueryKey) -> bool:
    return key[:len(prefix)] == prefix


@dataclass
class QueryState:
    data: Any = None
    status: str = IDLE
    error: Optional[BaseException] = None
    is_invalidated: bool = False
    fetcher: Optional[Fetcher] = None
    updated_at: Optional[float] = None

    @property
    def is_loading(self) -> bool:
        return self.status == LOADING


class QueryCache:
    def __init__(self, retry: int = DEFAULT_RETRY):
        self.retry = retry
        self._queries: dict[QueryKey, QueryState] = {}

    def keys(self) -> list[QueryKey]:
        return list(self._queries)

    def get_query_state(self, key: KeyLike) -> Optional[QueryState]:
        return self._queries.get(to_key(key))

    def get_query_data(self, key: KeyLike) -> Any:
        state = self.get_query_state(key)
        return state.data if state else None

    def set_query_data(self, key: KeyLike, value: Any) -> Any:
        """
        Store ``value`` under ``key``.

        A callable ``value`` is an updater: it receives the current data
        (``None`` when absent) and returns the new data.
        """
        key = to_key(key)
        state = self._queries.setdefault(key, QueryState())
        state.data = value(state.data) if callable(value) else value
        state.status = SUCCESS
        state.error = None
        state.is_invalidated = False
        state.updated_at = time.time()
        return state.data

    async def fetch_query(self, key: KeyLike, fetcher: Fetcher, retry: Optional[int] = None) -> Any:
        """
        Run ``fetcher`` and cache its result.

        Failures are retried up to ``retry`` more times (the cache default
        otherwise); a 401 is never retried. The last error is stored on the
        entry and raised.
        """
        key = to_key(key)
        retries = self.retry if retry is None else retry
        state = self._queries.setdefault(key, QueryState())
        state.fetcher = fetcher
        state.status = LOADING

        attempt = 0
        while True:
            try:
                data = await fetcher()
            except Exception as exc:
                unauthorized = isinstance(exc, ApiError) and exc.status == 401
                if unauthorized or attempt >= retries:
                    state.status = ERROR
                    state.error = exc
                    raise
                attempt += 1
                logger.debug(f"Retrying {key} ({attempt}/{retries}) after: {exc}")
                continue

            state.data = data
            state.status = SUCCESS
            state.error = None
            state.is_invalidated = False
            state.updated_at = time.time()
            return data

    def _select(self, key: Optional[KeyLike], predicate: Optional[KeyPredicate]) -> list[QueryKey]:
        prefix = to_key(key) if key is not None else None
        return [
            k for k in self._queries
            if (prefix is None or key_matches(k, prefix)) and (predicate is None or predicate(k))
        ]

    async def invalidate_queries(
        self,
        key: Optional[KeyLike] = None,
        predicate: Optional[KeyPredicate] = None,
        refetch: bool = True,
    ) -> list[QueryKey]:
        """Mark matching entries stale and, unless told otherwise, refetch them.

        With neither ``key`` nor ``predicate`` every entry matches.
        """
        matched = self._select(key, predicate)
        for k in matched:
            self._queries[k].is_invalidated = True
        if refetch:
            await self._refetch(matched)
        return matched

    async def refetch_queries(
        self,
        key: Optional[KeyLike] = None,
        predicate: Optional[KeyPredicate] = None,
        stale_only: bool = False,
    ) -> list[QueryKey]:
        matched = [
            k for k in self._select(key, predicate)
            if not stale_only or self._queries[k].is_invalidated
        ]
        await self._refetch(matched)
        return matched

    async def _refetch(self, keys: Iterable[QueryKey]) -> None:
        # Refetch errors stay on the entry; callers read them from the state
        for k in keys:
            fetcher = self._queries[k].fetcher
            if fetcher is None:
                continue
            try:
                await self.fetch_query(k, fetcher)
            except Exception as exc:
                logger.warning(f"Refetch of {k} failed: {exc}")

    def remove_queries(self, key: KeyLike) -> None:
        for k in self._select(key, None):
            del self._queries[k]

    def clear(self) -> None:
        self._queries.clear()
