import json

import httpx
import pytest

from wagba.core.config import get_settings
from wagba.services.payment import BillingData, PaymentItem
from wagba.services.payment.paymob import PaymobPaymentService

BILLING = BillingData.for_customer("Mariam Adel", "mariam@mail.com", "+201012345678", {"street": "Road 9"})


@pytest.fixture
def paymob_env(monkeypatch):
    monkeypatch.setenv("PAYMOB_API_KEY", "api-key")
    monkeypatch.setenv("PAYMOB_INTEGRATION_ID", "111")
    monkeypatch.setenv("PAYMOB_SUBSCRIPTION_INTEGRATION_ID", "222")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class FakePaymob:
    """Records requests and answers them like the Paymob API."""

    def __init__(self, pay_response=None, auth_status=200):
        self.requests: dict[str, dict] = {}
        self.pay_response = pay_response or {"id": 9001, "success": True, "pending": False}
        self.auth_status = auth_status

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/api/")
        payload = json.loads(request.content)
        self.requests[path] = payload
        if path == "auth/tokens":
            if self.auth_status != 200:
                return httpx.Response(self.auth_status, json={"detail": "Incorrect credentials"})
            return httpx.Response(201, json={"token": "auth-token"})
        if path == "ecommerce/orders":
            return httpx.Response(201, json={"id": 555})
        if path == "acceptance/payment_keys":
            return httpx.Response(201, json={"token": "payment-key"})
        if path == "acceptance/payments/pay":
            return httpx.Response(200, json=self.pay_response)
        return httpx.Response(404)

    def service(self) -> PaymobPaymentService:
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(self.handler), base_url="https://accept.paymob.com/api/"
        )
        return PaymobPaymentService(client=client)


class TestConfiguration:
    def test_requires_api_key(self, monkeypatch):
        monkeypatch.delenv("PAYMOB_API_KEY", raising=False)
        get_settings.cache_clear()
        try:
            with pytest.raises(ValueError, match="PAYMOB_API_KEY"):
                PaymobPaymentService()
        finally:
            get_settings.cache_clear()


class TestCheckout:
    @pytest.mark.asyncio
    async def test_creates_hosted_checkout(self, paymob_env):
        fake = FakePaymob()

        result = await fake.service().create_payment_link(
            amount=498.0,
            billing=BILLING,
            items=[PaymentItem(name="Wagba box", amount=498.0)],
            merchant_order_id="12",
            redirect_url="http://test/payment/response",
        )

        assert result.success
        assert result.gateway_order_id == "555"
        assert result.payment_url.endswith("payment_token=payment-key")
        order = fake.requests["ecommerce/orders"]
        assert order["amount_cents"] == 49800
        assert order["merchant_order_id"].startswith("12-")
        key = fake.requests["acceptance/payment_keys"]
        assert key["integration_id"] == 111
        assert key["redirection_url"] == "http://test/payment/response"
        assert key["billing_data"]["first_name"] == "Mariam"
        assert key["billing_data"]["floor"] == "NA"

    @pytest.mark.asyncio
    async def test_configured_iframe(self, paymob_env, monkeypatch):
        monkeypatch.setenv("PAYMOB_IFRAME_ID", "8421")
        get_settings.cache_clear()

        result = await FakePaymob().service().create_payment_link(
            amount=249.0, billing=BILLING, items=[PaymentItem(name="Wagba box", amount=249.0)]
        )

        assert result.payment_url == "https://accept.paymob.com/api/acceptance/iframes/8421?payment_token=payment-key"

    @pytest.mark.asyncio
    async def test_gateway_error_is_reported(self, paymob_env):
        result = await FakePaymob(auth_status=403).service().create_payment_link(
            amount=249.0, billing=BILLING, items=[PaymentItem(name="Wagba box", amount=249.0)]
        )
        assert not result.success
        assert result.error_message == "Failed to create payment session"

    @pytest.mark.asyncio
    async def test_zero_amount(self, paymob_env):
        result = await FakePaymob().service().create_payment_link(amount=0, billing=BILLING, items=[])
        assert not result.success


class TestSavedCardCharge:
    @pytest.mark.asyncio
    async def test_successful_charge(self, paymob_env):
        fake = FakePaymob()

        result = await fake.service().charge_saved_card("tok_saved", 249.0, BILLING, merchant_order_id="7")

        assert result.success
        assert result.transaction_id == "9001"
        assert fake.requests["acceptance/payment_keys"]["integration_id"] == 222
        assert fake.requests["acceptance/payments/pay"] == {
            "source": {"identifier": "tok_saved", "subtype": "TOKEN"},
            "payment_token": "payment-key",
        }

    @pytest.mark.asyncio
    async def test_declined_charge(self, paymob_env):
        fake = FakePaymob(pay_response={"id": 9002, "success": False, "pending": False,
                                        "data": {"message": "Insufficient funds"}})

        result = await fake.service().charge_saved_card("tok_saved", 249.0, BILLING)

        assert not result.success
        assert result.error_code == "declined"
        assert result.error_message == "Insufficient funds"
        assert result.transaction_id == "9002"

    @pytest.mark.asyncio
    async def test_missing_subscription_integration(self, paymob_env, monkeypatch):
        monkeypatch.delenv("PAYMOB_SUBSCRIPTION_INTEGRATION_ID")
        get_settings.cache_clear()

        result = await FakePaymob().service().charge_saved_card("tok_saved", 249.0, BILLING)

        assert result.error_code == "configuration_error"

    @pytest.mark.asyncio
    async def test_health_check_authenticates(self, paymob_env):
        assert await FakePaymob().service().health_check() is True
        assert await FakePaymob(auth_status=500).service().health_check() is False
