"""
Python client for the Wagba API: HTTP access, a keyed request cache,
post-mutation cache bookkeeping and route gating.
"""

from wagba.client.api import ApiClient, ApiError
from wagba.client.cache_manager import CacheManager
from wagba.client.query_cache import QueryCache, QueryState
from wagba.client.session_gate import SessionGate

__all__ = [
    "ApiClient",
    "ApiError",
    "CacheManager",
    "QueryCache",
    "QueryState",
    "SessionGate",
]
