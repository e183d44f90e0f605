"""
Notification Service Abstract Base Class

Defines the interface for customer emails. Supports Mock (development) and
SendGrid (production) implementations; the message bodies are built here so
both send identical content.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class NotificationResult:
    """Result from sending a notification."""
    success: bool
    message_id: Optional[str] = None
    error_message: Optional[str] = None
    provider: str = "unknown"


@dataclass
class EmailMessage:
    subject: str
    body_html: str
    body_text: str


def _layout(title: str, content: str) -> str:
    return f"""
    <div style="max-width: 600px; margin: 0 auto; font-family: Arial, sans-serif; color: #333;">
        <div style="background: #FF6B35; padding: 30px 20px; text-align: center;">
            <h1 style="color: white; margin: 0;">Wagba</h1>
            <p style="color: white; margin: 10px 0 0;">{title}</p>
        </div>
        <div style="padding: 30px 20px; background: white;">{content}</div>
        <div style="background: #f8f9fa; padding: 20px; text-align: center;">
            <p style="font-size: 14px; color: #666; margin: 0;">The Wagba Team</p>
        </div>
    </div>
    """


def password_reset_email(reset_url: str, valid_minutes: int = 60) -> EmailMessage:
    html = _layout(
        "Reset Your Password",
        f"""
        <p>We received a request to reset the password of your Wagba account.</p>
        <p style="text-align: center; margin: 30px 0;">
            <a href="{reset_url}" style="background: #FF6B35; color: white; padding: 15px 30px;
               text-decoration: none; border-radius: 5px;">Reset Password</a>
        </p>
        <p style="font-size: 14px; color: #666;">
            If you didn't request this, ignore this email. The link expires in {valid_minutes} minutes.
        </p>
        <p style="font-size: 14px; color: #666;">{reset_url}</p>
        """,
    )
    text = (
        "Password Reset Request\n\n"
        "We received a request to reset the password of your Wagba account.\n\n"
        f"To reset your password, visit this link: {reset_url}\n\n"
        f"If you didn't request this, ignore this email. The link expires in {valid_minutes} minutes."
    )
    return EmailMessage("Password Reset - Wagba", html, text)


def welcome_email(
    customer_name: str,
    meal_count: int,
    portion_size: str,
    first_delivery_date: str,
    order_total: float,
) -> EmailMessage:
    html = _layout(
        "Welcome aboard",
        f"""
        <p>Hi {customer_name},</p>
        <p>Your first box of <strong>{meal_count} {portion_size} meals</strong> arrives on
           <strong>{first_delivery_date}</strong>.</p>
        <p>Order total: <strong>EGP {order_total:.2f}</strong></p>
        """,
    )
    text = (
        f"Hi {customer_name},\n\n"
        f"Your first box of {meal_count} {portion_size} meals arrives on {first_delivery_date}.\n"
        f"Order total: EGP {order_total:.2f}"
    )
    return EmailMessage("Welcome to Wagba", html, text)


def order_confirmation_email(
    order_id: int,
    customer_name: str,
    week_label: str,
    meal_count: int,
    total_amount: float,
    delivery_slot: str,
) -> EmailMessage:
    html = _layout(
        "Order Confirmed",
        f"""
        <p>Hi {customer_name},</p>
        <p>Your order <strong>#{order_id}</strong> for <strong>{week_label}</strong> is confirmed.</p>
        <div style="background: #f8f9fa; padding: 15px; border-radius: 8px; margin: 20px 0;">
            <p>{meal_count} meals, {delivery_slot} delivery</p>
            <p>Total: <strong>EGP {total_amount:.2f}</strong></p>
        </div>
        """,
    )
    text = (
        f"Hi {customer_name}! Your order #{order_id} for {week_label} is confirmed.\n"
        f"{meal_count} meals, {delivery_slot} delivery\n"
        f"Total: EGP {total_amount:.2f}"
    )
    return EmailMessage(f"Order Confirmed #{order_id} - Wagba", html, text)


class BaseNotificationService(ABC):
    """Abstract base class for notification services."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def send_email(
        self,
        to_email: str,
        subject: str,
        body_html: str,
        body_text: Optional[str] = None,
    ) -> NotificationResult:
        """Send an email."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check service connectivity."""
        pass

    async def _send(self, to_email: str, message: EmailMessage) -> NotificationResult:
        return await self.send_email(to_email, message.subject, message.body_html, message.body_text)

    async def send_password_reset(
        self,
        to_email: str,
        reset_url: str,
        valid_minutes: int = 60,
    ) -> NotificationResult:
        return await self._send(to_email, password_reset_email(reset_url, valid_minutes))

    async def send_welcome(
        self,
        to_email: str,
        customer_name: str,
        meal_count: int,
        portion_size: str,
        first_delivery_date: str,
        order_total: float,
    ) -> NotificationResult:
        message = welcome_email(customer_name, meal_count, portion_size, first_delivery_date, order_total)
        return await self._send(to_email, message)

    async def send_order_confirmation(
        self,
        to_email: str,
        order_id: int,
        customer_name: str,
        week_label: str,
        meal_count: int,
        total_amount: float,
        delivery_slot: str,
    ) -> NotificationResult:
        message = order_confirmation_email(
            order_id, customer_name, week_label, meal_count, total_amount, delivery_slot
        )
        return await self._send(to_email, message)
