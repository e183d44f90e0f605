"""
Customer and admin authentication endpoints.

Login and registration set an httponly cookie and also return the token so
the browser can fall back to ``Authorization: Bearer``.
"""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from wagba.core.config import get_settings
from wagba.core.security import ADMIN_KIND, USER_KIND, create_access_token
from wagba.database import get_db
from wagba.dependencies import get_optional_admin, get_optional_user
from wagba.models import Admin, User
from wagba.routers.onboarding import TEMP_SELECTIONS_KEY
from wagba.schemas import (
    AdminAuthResponse,
    AdminLoginRequest,
    AdminResponse,
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    ResetPasswordRequest,
    UserResponse,
)
from wagba.services import accounts
from wagba.services.notifications import get_notification_service
from wagba.services.orders import create_order_from_selections
from wagba.services.weeks import get_week

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Auth"])

FORGOT_PASSWORD_MESSAGE = "Password reset instructions sent if email exists"


def _set_token_cookie(response: Response, cookie_name: str, token: str) -> None:
    settings = get_settings()
    response.set_cookie(
        cookie_name,
        token,
        max_age=settings.session_max_age_seconds,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )


async def _welcome_details(db: AsyncSession, user: User, order) -> dict:
    week = await get_week(db, order.week_id)
    return {
        "to_email": user.email,
        "customer_name": user.name or user.username,
        "meal_count": order.meal_count,
        "portion_size": order.default_portion_size.value,
        "first_delivery_date": week.delivery_date.strftime("%A, %b %d"),
        "order_total": order.total,
    }


# =============================================================================
# CUSTOMERS
# =============================================================================

@router.post("/api/auth/register", response_model=AuthResponse, status_code=201)
async def register(
    payload: RegisterRequest,
    request: Request,
    response: Response,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
) -> AuthResponse:
    """
    Create an account and sign in.

    Meal selections made before signing up become the first order.
    """
    user = await accounts.register_user(
        db,
        username=payload.username,
        email=payload.email,
        password=payload.password,
        name=payload.name,
        phone=payload.phone,
    )

    order = None
    selections = request.session.pop(TEMP_SELECTIONS_KEY, None)
    if selections:
        order = await create_order_from_selections(db, user, selections)
        if order is not None:
            background_tasks.add_task(
                get_notification_service().send_welcome, **await _welcome_details(db, user, order)
            )

    token = create_access_token(user.id, USER_KIND)
    _set_token_cookie(response, get_settings().auth_cookie_name, token)
    return AuthResponse(
        user=UserResponse.model_validate(user),
        token=token,
        order_id=order.id if order else None,
    )


@router.post("/api/auth/login", response_model=AuthResponse)
async def login(
    payload: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> AuthResponse:
    user = await accounts.authenticate_user(db, payload.email, payload.password)
    token = create_access_token(user.id, USER_KIND)
    _set_token_cookie(response, get_settings().auth_cookie_name, token)
    logger.info(f"User {user.id} logged in")
    return AuthResponse(user=UserResponse.model_validate(user), token=token)


@router.post("/api/auth/logout", response_model=MessageResponse)
async def logout(request: Request, response: Response) -> MessageResponse:
    response.delete_cookie(get_settings().auth_cookie_name)
    request.session.clear()
    return MessageResponse(message="Logged out successfully")


@router.post("/api/auth/forgot-password", response_model=MessageResponse)
async def forgot_password(
    payload: ForgotPasswordRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """Same answer whether or not the email has an account."""
    settings = get_settings()
    issued = await accounts.create_password_reset(db, payload.email)
    if issued is not None:
        user, token = issued
        background_tasks.add_task(
            get_notification_service().send_password_reset,
            user.email,
            f"{settings.app_base_url}/reset-password?token={token}",
            settings.password_reset_minutes,
        )
    return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)


@router.post("/api/auth/reset-password", response_model=MessageResponse)
async def reset_password(
    payload: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    await accounts.reset_password(db, payload.token, payload.password)
    return MessageResponse(message="Password has been reset")


@router.get("/api/auth/me", response_model=Optional[UserResponse])
async def me(user: Optional[User] = Depends(get_optional_user)):
    if user is None:
        return JSONResponse(status_code=401, content=None)
    return UserResponse.model_validate(user)


# =============================================================================
# ADMINS
# =============================================================================

@router.post("/api/admin/auth/login", response_model=AdminAuthResponse)
async def admin_login(
    payload: AdminLoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> AdminAuthResponse:
    admin = await accounts.authenticate_admin(db, payload.username, payload.password)
    token = create_access_token(admin.id, ADMIN_KIND)
    _set_token_cookie(response, get_settings().admin_cookie_name, token)
    logger.info(f"Admin {admin.username} logged in")
    return AdminAuthResponse(admin=AdminResponse.model_validate(admin), token=token)


@router.post("/api/admin/auth/logout", response_model=MessageResponse)
async def admin_logout(response: Response) -> MessageResponse:
    response.delete_cookie(get_settings().admin_cookie_name)
    return MessageResponse(message="Logged out successfully")


@router.get("/api/admin/auth/me", response_model=Optional[AdminResponse])
async def admin_me(admin: Optional[Admin] = Depends(get_optional_admin)):
    if admin is None:
        return JSONResponse(status_code=401, content=None)
    return AdminResponse.model_validate(admin)
