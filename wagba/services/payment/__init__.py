"""
Payment Service Factory

Provides a single entry point for obtaining a payment service instance.

Usage:
    from wagba.services.payment import get_payment_service

    # Returns MockPaymentService or PaymobPaymentService based on ENV_MODE
    payment_service = get_payment_service()

    link = await payment_service.create_payment_link(1196.0, billing, items)

Environment Switching:
    - ENV_MODE=development → MockPaymentService (no API calls)
    - ENV_MODE=staging → PaymobPaymentService (test integration)
    - ENV_MODE=production → PaymobPaymentService (live integration)
"""

import logging
from functools import lru_cache

from wagba.core.config import get_settings
from wagba.services.payment.base import (
    BasePaymentService,
    BillingData,
    PaymentItem,
    PaymentLinkResult,
    PaymentResult,
)
from wagba.services.payment.mock import MockPaymentService
from wagba.services.payment.paymob import PaymobPaymentService
from wagba.services.payment.signature import (
    HMAC_FIELDS,
    TOKEN_HMAC_FIELDS,
    compute_paymob_hmac,
    verify_paymob_hmac,
)

logger = logging.getLogger(__name__)


@lru_cache()
def get_payment_service() -> BasePaymentService:
    """
    Get the configured payment service instance.

    The instance is cached; call ``reset_payment_service()`` after changing
    the environment.

    Raises:
        ValueError: If production mode but Paymob keys are not configured
    """
    settings = get_settings()

    if settings.is_development:
        logger.info("Payment Service: Using MockPaymentService (development mode)")
        return MockPaymentService(
            failure_rate=settings.mock_failure_rate,
            min_latency=0.2,
            max_latency=settings.mock_max_latency,
            hmac_secret=settings.paymob_hmac_secret,
            base_url=settings.app_base_url,
        )

    logger.info(
        f"Payment Service: Using PaymobPaymentService "
        f"({settings.env_mode.value} mode)"
    )
    return PaymobPaymentService()


def reset_payment_service() -> None:
    """Clear the cached payment service instance."""
    get_payment_service.cache_clear()
    logger.debug("Payment service cache cleared")


__all__ = [
    "get_payment_service",
    "reset_payment_service",
    "BasePaymentService",
    "BillingData",
    "PaymentItem",
    "PaymentLinkResult",
    "PaymentResult",
    "MockPaymentService",
    "PaymobPaymentService",
    "HMAC_FIELDS",
    "TOKEN_HMAC_FIELDS",
    "compute_paymob_hmac",
    "verify_paymob_hmac",
]
