"""
SQLAlchemy Database Models

Tables for the meal-subscription platform:
- Customers and admins (separate tables, separate sessions)
- Menu weeks, meals and the week/meal association
- Orders, order items and per-week skipping
- Service areas, invitation codes and the waitlist
- Pricing configuration, password reset tokens and saved cards
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)

from wagba.database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp; all datetimes are stored naive in UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _enum(enum_cls: type[enum.Enum]) -> Enum:
    # Persist the lowercase values the API exposes, not the member names
    return Enum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=32,
    )


# =============================================================================
# ENUMS
# =============================================================================

class OrderStatus(str, enum.Enum):
    """Weekly order workflow. Delivery is tracked by ``Order.delivered``."""
    NOT_SELECTED = "not_selected"
    SELECTED = "selected"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    CONFIRMED = "confirmed"
    PAID = "paid"
    FAILED = "failed"


class PortionSize(str, enum.Enum):
    STANDARD = "standard"
    LARGE = "large"
    MIXED = "mixed"  # plan default only; each item is standard or large


class DeliverySlot(str, enum.Enum):
    MORNING = "morning"
    EVENING = "evening"


class OrderType(str, enum.Enum):
    TRIAL = "trial"
    SUBSCRIPTION = "subscription"


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"
    SUSPENDED = "suspended"


class BillingStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class AdminRole(str, enum.Enum):
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class WaitlistReason(str, enum.Enum):
    INVALID_CODE = "invalid_code"
    AREA_NOT_SERVICED = "area_not_serviced"


# =============================================================================
# ACCOUNTS
# =============================================================================

class User(Base):
    """Customer account. Admins live in their own table."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    username = Column(String(100), nullable=False, unique=True)
    password = Column(String(255), nullable=False)
    name = Column(String(100), nullable=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    phone = Column(String(20), nullable=True)
    address = Column(Text, nullable=True)  # JSON-encoded address object

    # =========================================================================
    # SUBSCRIPTION
    # =========================================================================
    subscription_status = Column(
        _enum(SubscriptionStatus), default=SubscriptionStatus.ACTIVE, nullable=False
    )
    subscription_paused_at = Column(DateTime, nullable=True)
    subscription_cancelled_at = Column(DateTime, nullable=True)
    subscription_started_at = Column(DateTime, nullable=True)
    has_used_trial_box = Column(Boolean, default=False, nullable=False)
    user_type = Column(_enum(OrderType), default=OrderType.TRIAL, nullable=False)
    is_subscriber = Column(Boolean, default=False, nullable=False)
    paymob_subscription_id = Column(String(100), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<User #{self.id} - {self.email}>"


class Admin(Base):
    __tablename__ = "admins"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    username = Column(String(100), nullable=False, unique=True)
    password = Column(String(255), nullable=False)
    name = Column(String(100), nullable=True)
    email = Column(String(255), nullable=False, unique=True)
    role = Column(_enum(AdminRole), default=AdminRole.ADMIN, nullable=False)
    permissions = Column(JSON, default=lambda: ["orders", "meals", "users", "weeks"])
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<Admin #{self.id} - {self.username} - {self.role.value}>"


class PasswordResetToken(Base):
    __tablename__ = "password_reset_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    token = Column(String(100), nullable=False, unique=True)
    expires_at = Column(DateTime, nullable=False)
    used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


# =============================================================================
# MENU
# =============================================================================

class Meal(Base):
    __tablename__ = "meals"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    image_url = Column(String(500), nullable=False)
    calories = Column(Integer, nullable=False)
    protein = Column(Integer, nullable=False)
    calories_large = Column(Integer, nullable=False)
    protein_large = Column(Integer, nullable=False)
    ingredients = Column(Text, nullable=True)
    tags = Column(JSON, default=list)
    category = Column(String(100), default="Main Dishes")
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<Meal #{self.id} - {self.title}>"


class Week(Base):
    """A menu week with its ordering deadline and delivery date."""
    __tablename__ = "weeks"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    identifier = Column(String(50), nullable=False, unique=True)  # e.g. "2026-W42"
    label = Column(String(100), nullable=False)  # e.g. "Oct 12-18, 2026"
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    order_deadline = Column(DateTime, nullable=False)
    delivery_date = Column(DateTime, nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    is_selectable = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def deadline_passed(self, now: datetime) -> bool:
        return self.order_deadline <= now

    def __repr__(self):
        return f"<Week #{self.id} - {self.label}>"


class WeekMeal(Base):
    __tablename__ = "week_meals"
    __table_args__ = (UniqueConstraint("week_id", "meal_id", name="uq_week_meal"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    week_id = Column(Integer, ForeignKey("weeks.id"), nullable=False, index=True)
    meal_id = Column(Integer, ForeignKey("meals.id", ondelete="CASCADE"), nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)
    is_featured = Column(Boolean, default=False, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


# =============================================================================
# ORDERS
# =============================================================================

class Order(Base):
    """
    One customer's box for one menu week.

    Totals are recomputed from the order items on every change.
    """
    __tablename__ = "orders"
    __table_args__ = (UniqueConstraint("user_id", "week_id", name="uq_order_user_week"),)

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    week_id = Column(Integer, ForeignKey("weeks.id"), nullable=False, index=True)

    # =========================================================================
    # STATUS
    # =========================================================================
    status = Column(_enum(OrderStatus), default=OrderStatus.NOT_SELECTED, nullable=False, index=True)
    previous_status = Column(_enum(OrderStatus), nullable=True)  # restored on unskip
    delivered = Column(Boolean, default=False, nullable=False)

    # =========================================================================
    # PLAN
    # =========================================================================
    meal_count = Column(Integer, nullable=False)
    default_portion_size = Column(_enum(PortionSize), default=PortionSize.STANDARD, nullable=False)
    delivery_slot = Column(_enum(DeliverySlot), default=DeliverySlot.MORNING, nullable=False)
    order_type = Column(_enum(OrderType), default=OrderType.TRIAL, nullable=False)

    # =========================================================================
    # PRICING
    # =========================================================================
    subtotal = Column(Float, nullable=False, default=0.0)
    discount = Column(Float, nullable=False, default=0.0)
    total = Column(Float, nullable=False, default=0.0)

    # =========================================================================
    # DELIVERY
    # =========================================================================
    delivery_address = Column(Text, nullable=True)  # JSON-encoded address object
    delivery_notes = Column(Text, nullable=True)
    delivery_date = Column(DateTime, nullable=True)

    # =========================================================================
    # PAYMENT
    # =========================================================================
    payment_method = Column(String(50), nullable=True)  # card, cash
    payment_status = Column(_enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)
    paymob_transaction_id = Column(String(100), nullable=True)
    paymob_order_id = Column(String(100), nullable=True, index=True)
    payment_method_id = Column(Integer, ForeignKey("payment_methods.id"), nullable=True)

    # =========================================================================
    # SUBSCRIPTION BILLING
    # =========================================================================
    subscription_billing_attempted_at = Column(DateTime, nullable=True)
    subscription_billing_status = Column(_enum(BillingStatus), nullable=True)
    subscription_billing_error = Column(Text, nullable=True)
    subscription_billing_retry_count = Column(Integer, default=0, nullable=False)

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<Order #{self.id} - user {self.user_id} - week {self.week_id} - {self.status.value}>"


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    meal_id = Column(Integer, ForeignKey("meals.id"), nullable=False)
    portion_size = Column(_enum(PortionSize), nullable=False)
    price = Column(Float, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class PaymentMethod(Base):
    """Tokenized card saved by Paymob for subscription charges."""
    __tablename__ = "payment_methods"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    paymob_card_token = Column(String(255), nullable=False)
    masked_pan = Column(String(32), nullable=True)
    card_brand = Column(String(32), nullable=True)
    expiry_month = Column(String(2), nullable=True)
    expiry_year = Column(String(4), nullable=True)
    is_default = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


# =============================================================================
# SERVICE AREAS & ONBOARDING
# =============================================================================

class Neighborhood(Base):
    __tablename__ = "neighborhoods"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True)
    is_serviced = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class InvitationCode(Base):
    """Controls onboarding capacity. ``max_uses`` of None means unlimited."""
    __tablename__ = "invitation_codes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(50), nullable=False, unique=True)
    is_active = Column(Boolean, default=True, nullable=False)
    max_uses = Column(Integer, nullable=True)
    current_uses = Column(Integer, default=0, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    @property
    def is_exhausted(self) -> bool:
        return self.max_uses is not None and self.current_uses >= self.max_uses


class WaitlistEntry(Base):
    __tablename__ = "waitlist"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, index=True)
    neighborhood = Column(String(100), nullable=False)
    rejection_reason = Column(_enum(WaitlistReason), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


# =============================================================================
# PRICING
# =============================================================================

class PricingConfig(Base):
    """
    Admin-editable price points.

    ``config_type``/``config_key`` pairs: ("meal_bundle", "4_meals"),
    ("delivery", "base_delivery"), ("meal_addon", "large_meal_addon").
    """
    __tablename__ = "pricing_configs"
    __table_args__ = (UniqueConstraint("config_type", "config_key", name="uq_pricing_key"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    config_type = Column(String(50), nullable=False)
    config_key = Column(String(50), nullable=False)
    price = Column(Float, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def key(self) -> str:
        return f"{self.config_type}_{self.config_key}"
