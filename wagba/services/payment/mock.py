"""
Mock Payment Service Implementation

Simulates the Paymob flows without making real API calls.
Used in development mode (ENV_MODE=development) to:
    - Walk through checkout locally (the "hosted page" is the response
      callback of this API, pre-signed when an HMAC secret is configured)
    - Exercise weekly subscription billing without charging cards

Behavior:
    - Simulates response times up to ``max_latency``
    - Randomly declines ``failure_rate`` of saved-card charges
    - Generates Paymob-like numeric ids
"""

import asyncio
import itertools
import logging
import random
from datetime import datetime
from typing import Optional
from urllib.parse import urlencode

from wagba.services.payment.base import (
    BasePaymentService,
    BillingData,
    PaymentItem,
    PaymentLinkResult,
    PaymentResult,
    to_cents,
)
from wagba.services.payment.signature import compute_paymob_hmac

logger = logging.getLogger(__name__)


class MockPaymentService(BasePaymentService):
    """
    Mock implementation of the payment service.

    Attributes:
        failure_rate: Probability of a simulated card decline (0.0-1.0)
        min_latency: Minimum simulated response time in seconds
        max_latency: Maximum simulated response time in seconds
        base_url: Public URL of this API, used for the fake checkout page
    """

    DECLINE_REASONS = [
        ("card_declined", "Do not honour"),
        ("insufficient_funds", "Insufficient funds"),
        ("expired_card", "Expired card"),
        ("processing_error", "Transaction could not be processed"),
    ]

    _ids = itertools.count(400_000_001)

    def __init__(
        self,
        failure_rate: float = 0.10,
        min_latency: float = 0.2,
        max_latency: float = 0.8,
        hmac_secret: Optional[str] = None,
        base_url: str = "http://localhost:5000",
    ):
        super().__init__(hmac_secret)
        self.failure_rate = failure_rate
        self.min_latency = min(min_latency, max_latency)
        self.max_latency = max_latency
        self.base_url = base_url.rstrip("/")

        logger.info(
            f"MockPaymentService initialized "
            f"(failure_rate={failure_rate:.0%}, "
            f"latency={self.min_latency}-{self.max_latency}s)"
        )

    @property
    def provider_name(self) -> str:
        return "mock"

    def _next_id(self) -> int:
        return next(self._ids)

    async def _simulate_latency(self) -> float:
        """Sleep for a random latency; returns it in milliseconds."""
        latency = random.uniform(self.min_latency, self.max_latency)
        if latency > 0:
            await asyncio.sleep(latency)
        return latency * 1000

    def _should_fail(self) -> bool:
        return random.random() < self.failure_rate

    def _signed_response_query(self, gateway_order_id: int, amount: float, merchant_order_id: Optional[str]) -> str:
        """Query string of a successful redirect callback."""
        params = {
            "amount_cents": to_cents(amount),
            "created_at": datetime.now().isoformat(timespec="seconds"),
            "currency": "EGP",
            "error_occured": "false",
            "has_parent_transaction": "false",
            "id": self._next_id(),
            "integration_id": 0,
            "is_3d_secure": "true",
            "is_auth": "false",
            "is_capture": "false",
            "is_refunded": "false",
            "is_standalone_payment": "true",
            "is_voided": "false",
            "order": gateway_order_id,
            "owner": 0,
            "pending": "false",
            "source_data.pan": "2346",
            "source_data.sub_type": "MasterCard",
            "source_data.type": "card",
            "success": "true",
        }
        if merchant_order_id:
            params["merchant_order_id"] = merchant_order_id
        if self._hmac_secret:
            params["hmac"] = compute_paymob_hmac(params, self._hmac_secret)
        return urlencode(params)

    async def create_payment_link(
        self,
        amount: float,
        billing: BillingData,
        items: list[PaymentItem],
        merchant_order_id: Optional[str] = None,
        redirect_url: Optional[str] = None,
    ) -> PaymentLinkResult:
        latency_ms = await self._simulate_latency()

        if amount <= 0:
            return PaymentLinkResult(
                success=False,
                error_message="Amount must be greater than 0",
                response_time_ms=latency_ms,
            )

        gateway_order_id = self._next_id()
        token = f"mock_pk_{gateway_order_id}"
        query = self._signed_response_query(gateway_order_id, amount, merchant_order_id)
        payment_url = f"{self.base_url}/api/payments/paymob/response?{query}"

        logger.info(f"Mock: Checkout created - order {gateway_order_id} - EGP {amount:.2f}")

        return PaymentLinkResult(
            success=True,
            payment_url=payment_url,
            payment_token=token,
            gateway_order_id=str(gateway_order_id),
            response_time_ms=latency_ms,
        )

    async def charge_saved_card(
        self,
        card_token: str,
        amount: float,
        billing: BillingData,
        merchant_order_id: Optional[str] = None,
    ) -> PaymentResult:
        logger.debug(f"Mock: Charging saved card EGP {amount:.2f}")

        if amount <= 0:
            return PaymentResult(
                success=False,
                error_message="Amount must be greater than 0",
                error_code="invalid_amount",
            )

        latency_ms = await self._simulate_latency()

        if self._should_fail():
            error_code, error_message = random.choice(self.DECLINE_REASONS)
            logger.debug(f"Mock: Charge declined - {error_code}")
            return PaymentResult(
                success=False,
                amount=amount,
                error_message=error_message,
                error_code=error_code,
                response_time_ms=latency_ms,
            )

        transaction_id = str(self._next_id())
        logger.info(f"Mock: Charge successful - {transaction_id} - EGP {amount:.2f}")

        return PaymentResult(
            success=True,
            transaction_id=transaction_id,
            gateway_order_id=str(self._next_id()),
            amount=amount,
            response_time_ms=latency_ms,
            metadata={"merchant_order_id": merchant_order_id, "mock": True},
        )

    async def health_check(self) -> bool:
        logger.debug("Mock: Health check passed")
        return True
