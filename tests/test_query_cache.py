import pytest

from wagba.client import ApiError, QueryCache
from wagba.client.query_cache import ERROR, SUCCESS


class Flaky:
    """Fetcher that raises the queued errors before returning ``value``."""

    def __init__(self, value=None, errors=()):
        self.value = value
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.value


class TestFetch:
    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        cache = QueryCache(retry=3)
        fetcher = Flaky(["week"], errors=[ApiError(500, "down"), ApiError(502, "down")])

        assert await cache.fetch_query("/api/weeks", fetcher) == ["week"]

        assert fetcher.calls == 3
        assert cache.get_query_state("/api/weeks").status == SUCCESS

    @pytest.mark.asyncio
    async def test_gives_up_and_keeps_error(self):
        cache = QueryCache(retry=1)
        fetcher = Flaky(errors=[ApiError(500, "a"), ApiError(500, "b"), ApiError(500, "c")])

        with pytest.raises(ApiError, match="500: b"):
            await cache.fetch_query("/api/weeks", fetcher)

        state = cache.get_query_state("/api/weeks")
        assert fetcher.calls == 2
        assert state.status == ERROR
        assert str(state.error) == "500: b"

    @pytest.mark.asyncio
    async def test_unauthorized_is_not_retried(self):
        cache = QueryCache(retry=3)
        fetcher = Flaky(errors=[ApiError(401, "Unauthorized")])

        with pytest.raises(ApiError):
            await cache.fetch_query("/api/user/profile", fetcher)

        assert fetcher.calls == 1


class TestData:
    def test_updater_receives_current_data(self):
        cache = QueryCache()
        cache.set_query_data("/api/orders", [{"id": 1}])

        cache.set_query_data("/api/orders", lambda orders: orders + [{"id": 2}])

        assert cache.get_query_data("/api/orders") == [{"id": 1}, {"id": 2}]

    def test_updater_on_missing_entry(self):
        cache = QueryCache()
        assert cache.set_query_data(("/api/orders", 4, "items"), lambda data: data or []) == []

    def test_missing_entry(self):
        assert QueryCache().get_query_data("/api/nothing") is None


class TestInvalidation:
    @pytest.mark.asyncio
    async def test_prefix_match_refetches_once(self):
        cache = QueryCache(retry=0)
        items = Flaky(["item"])
        orders = Flaky(["order"])
        weeks = Flaky(["week"])
        await cache.fetch_query(("/api/orders", 7, "items"), items)
        await cache.fetch_query("/api/orders", orders)
        await cache.fetch_query("/api/weeks", weeks)

        matched = await cache.invalidate_queries("/api/orders")

        assert set(matched) == {("/api/orders", 7, "items"), ("/api/orders",)}
        assert (items.calls, orders.calls, weeks.calls) == (2, 2, 1)
        assert not cache.get_query_state("/api/orders").is_invalidated

    @pytest.mark.asyncio
    async def test_predicate_without_refetch(self):
        cache = QueryCache(retry=0)
        await cache.fetch_query("/api/orders", Flaky([]))
        await cache.fetch_query("/api/weeks", Flaky([]))

        await cache.invalidate_queries(predicate=lambda key: key[0].endswith("weeks"), refetch=False)

        assert cache.get_query_state("/api/weeks").is_invalidated
        assert not cache.get_query_state("/api/orders").is_invalidated

    @pytest.mark.asyncio
    async def test_failed_refetch_is_stored(self):
        cache = QueryCache(retry=0)
        fetcher = Flaky(["order"])
        await cache.fetch_query("/api/orders", fetcher)
        fetcher.errors.append(ApiError(503, "maintenance"))

        await cache.invalidate_queries("/api/orders")

        state = cache.get_query_state("/api/orders")
        assert state.status == ERROR
        assert state.data == ["order"]

    def test_remove_and_clear(self):
        cache = QueryCache()
        cache.set_query_data(("/api/orders", 1, "items"), [])
        cache.set_query_data("/api/weeks", [])

        cache.remove_queries("/api/orders")
        assert cache.keys() == [("/api/weeks",)]

        cache.clear()
        assert cache.keys() == []
