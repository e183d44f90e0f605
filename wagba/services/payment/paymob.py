"""
Paymob Payment Service Implementation

Production implementation against the Paymob Accept REST API using httpx.
Used when ENV_MODE=production or ENV_MODE=staging.

Every payment goes through the same three calls:
    1. POST auth/tokens                 -> short-lived auth token
    2. POST ecommerce/orders            -> gateway order id
    3. POST acceptance/payment_keys     -> payment key for an integration

Card checkout redirects the customer to the hosted page with the payment
key; subscription billing pays the key with a saved card token through the
MOTO integration.

Requirements:
    - PAYMOB_API_KEY, PAYMOB_INTEGRATION_ID, PAYMOB_HMAC_SECRET
    - PAYMOB_SUBSCRIPTION_INTEGRATION_ID for saved-card charges
"""

import logging
from datetime import datetime
from typing import Any, Optional

import httpx

from wagba.core.config import get_settings
from wagba.services.payment.base import (
    BasePaymentService,
    BillingData,
    PaymentItem,
    PaymentLinkResult,
    PaymentResult,
    to_cents,
)

logger = logging.getLogger(__name__)

HOSTED_CHECKOUT_URL = "https://accept.paymob.com/api/acceptance/payments/pay"
IFRAME_URL = "https://accept.paymob.com/api/acceptance/iframes"
PAYMENT_KEY_EXPIRATION = 3600


class PaymobError(Exception):
    """A Paymob API call failed."""


class PaymobPaymentService(BasePaymentService):
    """
    Production Paymob payment service.

    Args:
        client: Optional preconfigured ``httpx.AsyncClient`` (tests pass one
            built on ``httpx.MockTransport``)
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        settings = get_settings()

        if not settings.paymob_api_key or not settings.paymob_integration_id:
            raise ValueError(
                "PAYMOB_API_KEY and PAYMOB_INTEGRATION_ID are required for production mode. "
                "Set them in your .env file or environment variables."
            )

        super().__init__(settings.paymob_hmac_secret)
        self._api_key = settings.paymob_api_key
        self._integration_id = settings.paymob_integration_id
        self._subscription_integration_id = settings.paymob_subscription_integration_id
        self._currency = settings.currency
        self._iframe_id = settings.paymob_iframe_id
        self._client = client or httpx.AsyncClient(
            base_url=settings.paymob_base_url.rstrip("/") + "/",
            timeout=httpx.Timeout(30.0),
        )

        logger.info(f"PaymobPaymentService initialized ({settings.paymob_base_url})")

    @property
    def provider_name(self) -> str:
        return "paymob"

    def _checkout_url(self, payment_token: str) -> str:
        if self._iframe_id:
            return f"{IFRAME_URL}/{self._iframe_id}?payment_token={payment_token}"
        return f"{HOSTED_CHECKOUT_URL}?payment_token={payment_token}"

    async def _post(self, path: str, payload: dict) -> dict[str, Any]:
        try:
            response = await self._client.post(path, json=payload)
        except httpx.HTTPError as e:
            raise PaymobError(f"Paymob {path} unreachable: {e}") from e

        if response.status_code >= 400:
            raise PaymobError(f"Paymob {path} returned {response.status_code}: {response.text[:200]}")
        return response.json()

    async def _authenticate(self) -> str:
        data = await self._post("auth/tokens", {"api_key": self._api_key})
        token = data.get("token")
        if not token:
            raise PaymobError("Paymob authentication returned no token")
        return token

    async def _register_order(
        self,
        auth_token: str,
        amount_cents: int,
        items: list[PaymentItem],
        merchant_order_id: Optional[str],
    ) -> int:
        payload: dict[str, Any] = {
            "auth_token": auth_token,
            "delivery_needed": False,
            "amount_cents": amount_cents,
            "currency": self._currency,
            "items": [item.to_dict() for item in items],
        }
        if merchant_order_id:
            # Paymob requires merchant ids to be unique across retries
            payload["merchant_order_id"] = f"{merchant_order_id}-{int(datetime.now().timestamp())}"
        data = await self._post("ecommerce/orders", payload)
        return data["id"]

    async def _payment_key(
        self,
        auth_token: str,
        gateway_order_id: int,
        amount_cents: int,
        billing: BillingData,
        integration_id: int,
        redirect_url: Optional[str] = None,
    ) -> str:
        payload: dict[str, Any] = {
            "auth_token": auth_token,
            "amount_cents": amount_cents,
            "expiration": PAYMENT_KEY_EXPIRATION,
            "order_id": gateway_order_id,
            "billing_data": billing.to_dict(),
            "currency": self._currency,
            "integration_id": integration_id,
        }
        if redirect_url:
            payload["redirection_url"] = redirect_url
        data = await self._post("acceptance/payment_keys", payload)
        return data["token"]

    async def create_payment_link(
        self,
        amount: float,
        billing: BillingData,
        items: list[PaymentItem],
        merchant_order_id: Optional[str] = None,
        redirect_url: Optional[str] = None,
    ) -> PaymentLinkResult:
        start_time = datetime.now()
        amount_cents = to_cents(amount)

        if amount_cents <= 0:
            return PaymentLinkResult(success=False, error_message="Amount must be greater than 0")

        try:
            auth_token = await self._authenticate()
            gateway_order_id = await self._register_order(auth_token, amount_cents, items, merchant_order_id)
            payment_token = await self._payment_key(
                auth_token, gateway_order_id, amount_cents, billing, self._integration_id, redirect_url
            )
        except (PaymobError, KeyError) as e:
            elapsed_ms = (datetime.now() - start_time).total_seconds() * 1000
            logger.error(f"Paymob: Failed to create checkout - {e}")
            return PaymentLinkResult(
                success=False,
                error_message="Failed to create payment session",
                response_time_ms=elapsed_ms,
            )

        elapsed_ms = (datetime.now() - start_time).total_seconds() * 1000
        logger.info(f"Paymob: Checkout created - order {gateway_order_id} - EGP {amount:.2f}")

        return PaymentLinkResult(
            success=True,
            payment_url=self._checkout_url(payment_token),
            payment_token=payment_token,
            gateway_order_id=str(gateway_order_id),
            response_time_ms=elapsed_ms,
        )

    async def charge_saved_card(
        self,
        card_token: str,
        amount: float,
        billing: BillingData,
        merchant_order_id: Optional[str] = None,
    ) -> PaymentResult:
        start_time = datetime.now()
        amount_cents = to_cents(amount)

        if amount_cents <= 0:
            return PaymentResult(
                success=False,
                error_message="Amount must be greater than 0",
                error_code="invalid_amount",
            )
        if not self._subscription_integration_id:
            logger.critical("Paymob: PAYMOB_SUBSCRIPTION_INTEGRATION_ID not configured")
            return PaymentResult(
                success=False,
                error_message="Payment service configuration error",
                error_code="configuration_error",
            )

        items = [PaymentItem(name="Weekly meal subscription", amount=amount)]
        try:
            auth_token = await self._authenticate()
            gateway_order_id = await self._register_order(auth_token, amount_cents, items, merchant_order_id)
            payment_token = await self._payment_key(
                auth_token, gateway_order_id, amount_cents, billing, self._subscription_integration_id
            )
            data = await self._post(
                "acceptance/payments/pay",
                {
                    "source": {"identifier": card_token, "subtype": "TOKEN"},
                    "payment_token": payment_token,
                },
            )
        except (PaymobError, KeyError) as e:
            elapsed_ms = (datetime.now() - start_time).total_seconds() * 1000
            logger.error(f"Paymob: Saved-card charge failed - {e}")
            return PaymentResult(
                success=False,
                amount=amount,
                error_message="Payment service temporarily unavailable",
                error_code="connection_error",
                response_time_ms=elapsed_ms,
            )

        elapsed_ms = (datetime.now() - start_time).total_seconds() * 1000
        success = data.get("success") is True and not data.get("pending")

        if not success:
            message = (data.get("data") or {}).get("message") or "Payment declined"
            logger.warning(f"Paymob: Charge declined - {message}")
            return PaymentResult(
                success=False,
                transaction_id=str(data["id"]) if data.get("id") else None,
                gateway_order_id=str(gateway_order_id),
                amount=amount,
                error_message=message,
                error_code="pending" if data.get("pending") else "declined",
                response_time_ms=elapsed_ms,
            )

        logger.info(f"Paymob: Charge successful - {data.get('id')} - EGP {amount:.2f}")
        return PaymentResult(
            success=True,
            transaction_id=str(data.get("id")),
            gateway_order_id=str(gateway_order_id),
            amount=amount,
            response_time_ms=elapsed_ms,
        )

    async def health_check(self) -> bool:
        try:
            await self._authenticate()
            return True
        except PaymobError as e:
            logger.error(f"Paymob: Health check failed - {e}")
            return False
