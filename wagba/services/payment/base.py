"""
Payment Service Abstract Base Class

Defines the interface contract for all payment service implementations.
Both MockPaymentService and PaymobPaymentService implement these methods,
so order checkout and subscription billing behave identically regardless of
which service is active.

Design Pattern: Strategy Pattern
    - Allows runtime switching between payment providers
    - Facilitates testing with mock implementations
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence

from wagba.services.payment.signature import HMAC_FIELDS, verify_paymob_hmac


@dataclass
class BillingData:
    """
    Customer details Paymob requires on every payment key.

    Paymob rejects empty strings, so unknown fields are sent as ``"NA"``.
    """
    first_name: str = "Customer"
    last_name: str = "NA"
    email: str = "NA"
    phone_number: str = "+201000000000"
    street: str = "NA"
    building: str = "NA"
    floor: str = "NA"
    apartment: str = "NA"
    city: str = "Cairo"
    state: str = "Cairo"
    country: str = "EG"

    @classmethod
    def for_customer(
        cls,
        name: Optional[str],
        email: str,
        phone: Optional[str] = None,
        address: Optional[Mapping[str, Any]] = None,
    ) -> "BillingData":
        parts = (name or "").split()
        address = address or {}
        return cls(
            first_name=parts[0] if parts else "Customer",
            last_name=" ".join(parts[1:]) or "NA",
            email=email,
            phone_number=phone or "+201000000000",
            street=address.get("street") or "NA",
            building=address.get("building") or "NA",
            floor=address.get("floor") or "NA",
            apartment=address.get("apartment") or "NA",
            city=address.get("city") or "Cairo",
        )

    def to_dict(self) -> dict:
        return {
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone_number": self.phone_number,
            "street": self.street,
            "building": self.building,
            "floor": self.floor,
            "apartment": self.apartment,
            "city": self.city,
            "state": self.state,
            "country": self.country,
        }


@dataclass
class PaymentItem:
    """One line on the Paymob order."""
    name: str
    amount: float
    quantity: int = 1
    description: str = ""

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "amount_cents": to_cents(self.amount),
            "description": self.description or self.name,
            "quantity": self.quantity,
        }


@dataclass
class PaymentLinkResult:
    """
    Result of preparing a hosted checkout.

    Attributes:
        success: Whether the checkout session was created
        payment_url: Hosted page the customer is redirected to
        payment_token: Paymob payment key
        gateway_order_id: Paymob order id, echoed back on callbacks
        error_message: Error description if creation failed
    """
    success: bool
    payment_url: Optional[str] = None
    payment_token: Optional[str] = None
    gateway_order_id: Optional[str] = None
    error_message: Optional[str] = None
    response_time_ms: float = 0.0


@dataclass
class PaymentResult:
    """
    Standardized result of a direct charge (saved-card subscription billing).

    Attributes:
        success: Whether the payment was captured
        transaction_id: Gateway transaction identifier
        gateway_order_id: Gateway order the transaction belongs to
        amount: Amount charged in EGP
        currency: Currency code
        error_message: Error description if payment failed
        error_code: Machine-readable error code
        response_time_ms: Time taken to process the payment
        metadata: Additional data from the payment provider
    """
    success: bool
    transaction_id: Optional[str] = None
    gateway_order_id: Optional[str] = None
    amount: Optional[float] = None
    currency: str = "EGP"
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    response_time_ms: float = 0.0
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "transaction_id": self.transaction_id,
            "gateway_order_id": self.gateway_order_id,
            "amount": self.amount,
            "currency": self.currency,
            "error_message": self.error_message,
            "error_code": self.error_code,
            "response_time_ms": self.response_time_ms,
            "metadata": self.metadata,
        }


def to_cents(amount: float) -> int:
    """Paymob expects amounts in piasters."""
    return int(round(amount * 100))


class BasePaymentService(ABC):
    """
    Abstract base class for payment services.

    Callback verification is shared: both implementations check Paymob's
    HMAC with the configured secret, so development webhooks are signed the
    same way as production ones.
    """

    def __init__(self, hmac_secret: Optional[str] = None):
        self._hmac_secret = hmac_secret

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the name of the payment provider ("mock", "paymob")."""
        pass

    @abstractmethod
    async def create_payment_link(
        self,
        amount: float,
        billing: BillingData,
        items: list[PaymentItem],
        merchant_order_id: Optional[str] = None,
        redirect_url: Optional[str] = None,
    ) -> PaymentLinkResult:
        """
        Register an order with the gateway and return the hosted checkout URL.

        Args:
            amount: Amount in EGP (converted to piasters by the implementation)
            billing: Customer billing details
            items: Order lines shown on the checkout page
            merchant_order_id: Our order id, echoed back in callbacks
            redirect_url: Where the customer lands after paying
        """
        pass

    @abstractmethod
    async def charge_saved_card(
        self,
        card_token: str,
        amount: float,
        billing: BillingData,
        merchant_order_id: Optional[str] = None,
    ) -> PaymentResult:
        """
        Charge a tokenized card without customer interaction.

        Used by weekly subscription billing.
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Verify connectivity to the payment service."""
        pass

    def verify_callback(
        self,
        data: Mapping[str, Any],
        received_hmac: Optional[str],
        fields: Sequence[str] = HMAC_FIELDS,
    ) -> bool:
        """Check the HMAC of a transaction or saved-card callback."""
        return verify_paymob_hmac(data, received_hmac, self._hmac_secret, fields)
