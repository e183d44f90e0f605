"""
Pydantic Schemas for Request/Response Validation

Request bodies and response shapes of the public, customer and admin APIs.
Response schemas read straight from ORM rows (``from_attributes``); address
columns hold JSON text and are decoded on the way out.
"""

import json
from datetime import datetime
from typing import Any, List, Optional, Union

from pydantic import BaseModel, EmailStr, Field, field_validator

from wagba.models import (
    AdminRole,
    DeliverySlot,
    OrderStatus,
    OrderType,
    PaymentStatus,
    PortionSize,
    SubscriptionStatus,
    WaitlistReason,
)
from wagba.services.pricing import MAX_MEALS, MIN_MEALS


def _decode_json_text(value: Any) -> Any:
    if isinstance(value, str) and value:
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


class MessageResponse(BaseModel):
    success: bool = True
    message: str


# =============================================================================
# AUTH
# =============================================================================

class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=100, examples=["mariam"])
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    name: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=20, examples=["01012345678"])


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=6, max_length=128)


class AdminLoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class UserResponse(BaseModel):
    """A customer as the API exposes it; never carries the password hash."""
    id: int
    username: str
    name: Optional[str]
    email: str
    phone: Optional[str]
    address: Optional[Any]
    subscription_status: SubscriptionStatus
    user_type: OrderType
    is_subscriber: bool
    has_used_trial_box: bool
    created_at: datetime

    @field_validator("address", mode="before")
    @classmethod
    def decode_address(cls, v: Any) -> Any:
        return _decode_json_text(v)

    class Config:
        from_attributes = True


class AuthResponse(BaseModel):
    user: UserResponse
    token: str
    order_id: Optional[int] = None


class AdminResponse(BaseModel):
    id: int
    username: str
    name: Optional[str]
    email: str
    role: AdminRole
    permissions: Optional[List[str]]
    created_at: datetime

    class Config:
        from_attributes = True


class AdminAuthResponse(BaseModel):
    admin: AdminResponse
    token: str


# =============================================================================
# PROFILE & SUBSCRIPTION
# =============================================================================

class Address(BaseModel):
    """Delivery address; unknown keys (floor, landmark, ...) are kept."""
    street: Optional[str] = Field(None, max_length=255)
    building: Optional[str] = Field(None, max_length=50)
    apartment: Optional[str] = Field(None, max_length=50)
    area: Optional[str] = Field(None, max_length=100)
    city: str = Field(default="Cairo", max_length=50)
    phone: Optional[str] = Field(None, max_length=20)

    model_config = {"extra": "allow"}


class ProfileResponse(BaseModel):
    name: Optional[str]
    email: str
    phone: Optional[str]
    address: Optional[Any]
    has_completed_onboarding: bool

    @field_validator("address", mode="before")
    @classmethod
    def decode_address(cls, v: Any) -> Any:
        return _decode_json_text(v)


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=20)
    address: Optional[Address] = None


class PaymentMethodResponse(BaseModel):
    id: int
    masked_pan: Optional[str]
    card_brand: Optional[str]
    is_default: bool
    created_at: datetime

    class Config:
        from_attributes = True


class SubscriptionResponse(BaseModel):
    status: SubscriptionStatus
    is_subscriber: bool
    user_type: OrderType
    started_at: Optional[datetime]
    paused_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    payment_methods: List[PaymentMethodResponse]


# =============================================================================
# MENU
# =============================================================================

class MealResponse(BaseModel):
    id: int
    title: str
    description: str
    image_url: str
    calories: int
    protein: int
    calories_large: int
    protein_large: int
    ingredients: Optional[str]
    tags: Optional[List[str]]
    category: Optional[str]

    class Config:
        from_attributes = True


class WeekResponse(BaseModel):
    id: int
    identifier: str
    label: str
    start_date: datetime
    end_date: datetime
    order_deadline: datetime
    delivery_date: datetime
    is_active: bool
    is_selectable: bool

    class Config:
        from_attributes = True


class WeekListResponse(BaseModel):
    weeks: List[WeekResponse]


class MealListResponse(BaseModel):
    meals: List[MealResponse]


class MenuResponse(BaseModel):
    week: WeekResponse
    meals: List[MealResponse]


class PricingResponse(BaseModel):
    meal_prices: dict[int, float]
    base_meal_price: float
    large_meal_addon: float
    base_delivery: float
    express_delivery: float
    min_meals: int = MIN_MEALS
    max_meals: int = MAX_MEALS


# =============================================================================
# ORDERS
# =============================================================================

class SelectedMealIn(BaseModel):
    meal_id: int
    portion_size: PortionSize = PortionSize.STANDARD


class OrderCreate(BaseModel):
    """Plan a week: week id (or "current"), box size and the chosen meals."""
    week_id: Union[int, str] = Field(..., examples=[12, "current"])
    meal_count: int = Field(..., ge=MIN_MEALS, le=MAX_MEALS)
    default_portion_size: PortionSize = PortionSize.STANDARD
    delivery_slot: DeliverySlot = DeliverySlot.MORNING
    items: List[SelectedMealIn] = Field(default_factory=list)


class OrderItemCreate(BaseModel):
    meal_id: int
    portion_size: PortionSize = PortionSize.STANDARD


class OrderItemResponse(BaseModel):
    id: int
    order_id: int
    meal_id: int
    portion_size: PortionSize
    price: float

    class Config:
        from_attributes = True


class OrderItemWithMeal(BaseModel):
    id: int
    meal_id: int
    portion_size: PortionSize
    price: float
    meal: MealResponse


class OrderResponse(BaseModel):
    id: int
    user_id: int
    week_id: int
    status: OrderStatus
    previous_status: Optional[OrderStatus]
    delivered: bool
    meal_count: int
    default_portion_size: PortionSize
    delivery_slot: DeliverySlot
    order_type: OrderType
    subtotal: float
    discount: float
    total: float
    delivery_address: Optional[Any]
    delivery_notes: Optional[str]
    delivery_date: Optional[datetime]
    payment_method: Optional[str]
    payment_status: PaymentStatus
    paymob_order_id: Optional[str]
    created_at: datetime
    updated_at: Optional[datetime]

    @field_validator("delivery_address", mode="before")
    @classmethod
    def decode_address(cls, v: Any) -> Any:
        return _decode_json_text(v)

    class Config:
        from_attributes = True


class OrderDetailResponse(OrderResponse):
    items: List[OrderItemWithMeal] = Field(default_factory=list)


class UpcomingMealResponse(BaseModel):
    order_id: int
    week_id: int
    week_label: str
    delivery_date: datetime
    order_deadline: datetime
    status: OrderStatus
    meal_count: int
    items: List[OrderItemWithMeal]
    is_skipped: bool
    can_edit: bool
    can_skip: bool
    can_unskip: bool


class CheckoutRequest(BaseModel):
    order_id: int
    delivery_address: Address
    delivery_notes: Optional[str] = Field(None, max_length=500)
    payment_method: str = Field(default="card", examples=["card", "cash"])
    delivery_slot: Optional[DeliverySlot] = None


class CheckoutResponse(BaseModel):
    success: bool = True
    order: OrderResponse
    payment_url: Optional[str] = None


# =============================================================================
# ONBOARDING
# =============================================================================

class TempMealSelections(BaseModel):
    """Selections made before signing up, kept in the session cookie."""
    week_id: Union[int, str]
    meal_count: int = Field(..., ge=MIN_MEALS, le=MAX_MEALS)
    portion_size: PortionSize = PortionSize.STANDARD
    selected_meals: List[SelectedMealIn] = Field(..., min_length=1)
    delivery_slot: DeliverySlot = DeliverySlot.MORNING


class PreOnboardingRequest(BaseModel):
    email: EmailStr
    neighborhood: str = Field(..., min_length=1, max_length=100)
    invitation_code: str = Field(..., min_length=1, max_length=50)


class PreOnboardingResponse(BaseModel):
    valid: bool
    message: Optional[str] = None
    reason: Optional[WaitlistReason] = None


class NeighborhoodResponse(BaseModel):
    id: int
    name: str
    is_serviced: bool

    class Config:
        from_attributes = True


# =============================================================================
# PAYMENTS
# =============================================================================

class PaymentCallbackResponse(BaseModel):
    success: bool
    message: str
    order_id: Optional[int] = None


# =============================================================================
# ADMIN
# =============================================================================

class MealCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    image_url: str = Field(..., max_length=500)
    calories: int = Field(..., ge=0)
    protein: int = Field(..., ge=0)
    calories_large: int = Field(..., ge=0)
    protein_large: int = Field(..., ge=0)
    ingredients: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    category: str = Field(default="Main Dishes", max_length=100)


class MealUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    image_url: Optional[str] = Field(None, max_length=500)
    calories: Optional[int] = Field(None, ge=0)
    protein: Optional[int] = Field(None, ge=0)
    calories_large: Optional[int] = Field(None, ge=0)
    protein_large: Optional[int] = Field(None, ge=0)
    ingredients: Optional[str] = None
    tags: Optional[List[str]] = None
    category: Optional[str] = Field(None, max_length=100)


class WeekCreate(BaseModel):
    delivery_date: datetime
    label: Optional[str] = Field(None, max_length=100)


class WeekUpdate(BaseModel):
    label: Optional[str] = Field(None, max_length=100)
    order_deadline: Optional[datetime] = None
    delivery_date: Optional[datetime] = None
    is_active: Optional[bool] = None
    is_selectable: Optional[bool] = None


class WeekMealCreate(BaseModel):
    meal_id: int
    is_featured: bool = False
    sort_order: int = 0


class AdminOrderUpdate(BaseModel):
    """Either the ``delivered`` flag or order fields; status stays a string
    so a request for ``"delivered"`` can be answered with a clear error."""
    delivered: Optional[bool] = None
    status: Optional[str] = None
    meal_count: Optional[int] = Field(None, ge=MIN_MEALS, le=MAX_MEALS)
    delivery_slot: Optional[str] = None
    delivery_notes: Optional[str] = None
    delivery_address: Optional[Address] = None
    payment_status: Optional[str] = None
    payment_method: Optional[str] = None
    default_portion_size: Optional[str] = None


class NeighborhoodCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    is_serviced: bool = False


class NeighborhoodUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    is_serviced: Optional[bool] = None


class InvitationCodeCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    max_uses: Optional[int] = Field(None, ge=1)
    description: Optional[str] = None
    is_active: bool = True


class InvitationCodeUpdate(BaseModel):
    is_active: Optional[bool] = None
    max_uses: Optional[int] = Field(None, ge=1)
    description: Optional[str] = None


class InvitationCodeResponse(BaseModel):
    id: int
    code: str
    is_active: bool
    max_uses: Optional[int]
    current_uses: int
    description: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class WaitlistResponse(BaseModel):
    id: int
    email: str
    neighborhood: str
    rejection_reason: Optional[WaitlistReason]
    created_at: datetime

    class Config:
        from_attributes = True


class PricingConfigResponse(BaseModel):
    id: int
    config_type: str
    config_key: str
    price: float
    description: Optional[str]
    is_active: bool
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class PricingConfigUpsert(BaseModel):
    config_type: str = Field(..., pattern="^(meal_bundle|delivery|meal_addon)$")
    config_key: str = Field(..., min_length=1, max_length=50)
    price: float = Field(..., ge=0)
    description: Optional[str] = None
    is_active: bool = True


class PricingConfigUpdate(BaseModel):
    price: Optional[float] = Field(None, ge=0)
    description: Optional[str] = None
    is_active: Optional[bool] = None


class AdminCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    name: Optional[str] = Field(None, max_length=100)
    role: AdminRole = AdminRole.ADMIN
    permissions: Optional[List[str]] = None


class ExportResponse(BaseModel):
    success: bool = True
    message: str
    task_id: Optional[str] = None


# =============================================================================
# HEALTH
# =============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    payment_service: str
    notification_service: str
    environment: str
    timestamp: datetime
