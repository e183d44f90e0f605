import httpx
import pytest

from wagba.client import ApiClient, ApiError


class Recorder:
    def __init__(self, status=200, body=None):
        self.status = status
        self.body = body
        self.seen: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.seen.append(request)
        if self.status == 204:
            return httpx.Response(204)
        if self.status >= 400:
            return httpx.Response(self.status, text="boom")
        return httpx.Response(self.status, json=self.body)


def client_for(recorder: Recorder) -> ApiClient:
    return ApiClient("http://test", transport=httpx.MockTransport(recorder))


class TestTokens:
    @pytest.mark.asyncio
    async def test_admin_urls_use_admin_token(self):
        recorder = Recorder(body={})
        async with client_for(recorder) as api:
            api.set_token("customer-token")
            api.set_token("admin-token", admin=True)

            await api.query("/api/orders/pending")
            await api.request("PATCH", "/api/admin/orders/3", {"delivered": True})

        assert recorder.seen[0].headers["authorization"] == "Bearer customer-token"
        assert recorder.seen[1].headers["authorization"] == "Bearer admin-token"

    @pytest.mark.asyncio
    async def test_no_token_no_header(self):
        recorder = Recorder(body={})
        async with client_for(recorder) as api:
            await api.query("/api/weeks")
        assert "authorization" not in recorder.seen[0].headers

    @pytest.mark.asyncio
    async def test_clear_tokens(self):
        recorder = Recorder(body={})
        async with client_for(recorder) as api:
            api.set_token("customer-token")
            api.clear_tokens()
            await api.query("/api/user/profile")
        assert "authorization" not in recorder.seen[0].headers


class TestResponses:
    @pytest.mark.asyncio
    async def test_json_body(self):
        recorder = Recorder(body={"weeks": []})
        async with client_for(recorder) as api:
            body = await api.request("POST", "/api/orders", {"week_id": "current", "meal_count": 4})
        assert body == {"weeks": []}
        assert recorder.seen[0].method == "POST"

    @pytest.mark.asyncio
    async def test_no_content(self):
        async with client_for(Recorder(status=204)) as api:
            assert await api.request("DELETE", "/api/admin/meals/1") is None

    @pytest.mark.asyncio
    async def test_error_text(self):
        async with client_for(Recorder(status=500)) as api:
            with pytest.raises(ApiError) as excinfo:
                await api.request("POST", "/api/orders/checkout")
        assert excinfo.value.status == 500
        assert str(excinfo.value) == "500: boom"

    @pytest.mark.asyncio
    async def test_unauthorized_query(self):
        async with client_for(Recorder(status=401)) as api:
            assert await api.query("/api/auth/me", on_401="return_null") is None
            with pytest.raises(ApiError):
                await api.query("/api/auth/me")
