"""
Mock Notification Service

Keeps every "sent" email in an in-memory outbox instead of delivering it,
so development servers and tests can inspect exactly what a customer
would have received.
"""

import asyncio
import logging
import random
import uuid
from typing import Optional

from wagba.services.notifications.base import BaseNotificationService, NotificationResult

logger = logging.getLogger(__name__)


class MockNotificationService(BaseNotificationService):
    """
    Outbox-backed email service.

    Args:
        failure_rate: Share of sends that report a delivery failure (0.0-1.0)
        max_latency: Upper bound of the random delay per send, in seconds
    """

    def __init__(self, failure_rate: float = 0.05, max_latency: float = 0.3):
        self.failure_rate = failure_rate
        self.max_latency = max_latency
        self.outbox: list[dict] = []
        logger.info(f"MockNotificationService ready (failure_rate={failure_rate:.0%}, outbox enabled)")

    @property
    def provider_name(self) -> str:
        return "mock"

    def emails_to(self, address: str) -> list[dict]:
        return [mail for mail in self.outbox if mail["to"] == address]

    async def send_email(
        self,
        to_email: str,
        subject: str,
        body_html: str,
        body_text: Optional[str] = None,
    ) -> NotificationResult:
        if self.max_latency > 0:
            await asyncio.sleep(random.uniform(0, self.max_latency))

        if random.random() < self.failure_rate:
            logger.warning(f"Mock outbox rejected '{subject}' for {to_email}")
            return NotificationResult(success=False, error_message="Simulated email failure", provider="mock")

        message_id = f"outbox_{uuid.uuid4().hex[:12]}"
        self.outbox.append({"to": to_email, "subject": subject, "text": body_text, "html": body_html, "id": message_id})
        logger.info(f"Outbox <- {to_email}: {subject} [{message_id}]")
        return NotificationResult(success=True, message_id=message_id, provider="mock")

    async def health_check(self) -> bool:
        return True
