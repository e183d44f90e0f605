"""
Customer and admin accounts.

Registration, credential checks, password resets, profile edits and admin
account management. Session tokens are issued by the routers.
"""

import json
import logging
from datetime import timedelta
from typing import Any, Mapping, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from wagba.core.config import get_settings
from wagba.core.exceptions import AuthenticationError, ConflictError, NotFoundError, ValidationError
from wagba.core.security import generate_reset_token, hash_password, verify_password
from wagba.models import Admin, AdminRole, PasswordResetToken, User, utcnow
from wagba.services.phone import validate_egyptian_phone

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def _check_password(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")


def _normalized_phone(phone: Optional[str]) -> Optional[str]:
    if not phone:
        return None
    result = validate_egyptian_phone(phone)
    if not result.is_valid:
        raise ValidationError(result.error, details={"field": "phone"})
    return result.normalized


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(func.lower(User.email) == _normalize_email(email)))
    return result.scalars().first()


# =============================================================================
# CUSTOMERS
# =============================================================================

async def register_user(
    db: AsyncSession,
    username: str,
    email: str,
    password: str,
    name: Optional[str] = None,
    phone: Optional[str] = None,
) -> User:
    """Create a customer account; duplicate usernames or emails are rejected."""
    _check_password(password)

    existing = await db.execute(select(User.id).where(User.username == username))
    if existing.scalars().first() is not None:
        raise ValidationError("Username already exists")
    if await get_user_by_email(db, email) is not None:
        raise ValidationError("Email already exists")

    user = User(
        username=username,
        email=_normalize_email(email),
        password=hash_password(password),
        name=name,
        phone=_normalized_phone(phone),
    )
    db.add(user)
    await db.commit()
    logger.info(f"Registered user #{user.id} ({user.email})")
    return user


async def authenticate_user(db: AsyncSession, email: str, password: str) -> User:
    user = await get_user_by_email(db, email)
    if user is None or not verify_password(password, user.password):
        raise ValidationError("Invalid credentials")
    return user


async def update_profile(db: AsyncSession, user: User, changes: Mapping[str, Any]) -> User:
    if changes.get("email") and _normalize_email(changes["email"]) != user.email:
        other = await get_user_by_email(db, changes["email"])
        if other is not None and other.id != user.id:
            raise ConflictError("Email already exists")
        user.email = _normalize_email(changes["email"])

    if changes.get("name") is not None:
        user.name = changes["name"]
    if changes.get("phone") is not None:
        user.phone = _normalized_phone(changes["phone"])
    if changes.get("address") is not None:
        address = changes["address"]
        user.address = address if isinstance(address, str) else json.dumps(address)

    await db.commit()
    return user


# =============================================================================
# PASSWORD RESET
# =============================================================================

async def create_password_reset(db: AsyncSession, email: str) -> Optional[tuple[User, str]]:
    """
    Issue a one-time reset token.

    Returns None for unknown emails; callers answer the same either way.
    """
    user = await get_user_by_email(db, email)
    if user is None:
        logger.info("Password reset requested for unknown email")
        return None

    token = generate_reset_token()
    minutes = get_settings().password_reset_minutes
    db.add(PasswordResetToken(
        user_id=user.id,
        token=token,
        expires_at=utcnow() + timedelta(minutes=minutes),
    ))
    await db.commit()
    logger.info(f"Password reset token issued for user #{user.id}")
    return user, token


async def reset_password(db: AsyncSession, token: str, new_password: str) -> User:
    _check_password(new_password)

    result = await db.execute(select(PasswordResetToken).where(PasswordResetToken.token == token))
    reset = result.scalars().first()
    if reset is None or reset.used_at is not None or reset.expires_at <= utcnow():
        raise ValidationError("Invalid or expired reset token")

    user = await db.get(User, reset.user_id)
    if user is None:
        raise ValidationError("Invalid or expired reset token")

    user.password = hash_password(new_password)
    reset.used_at = utcnow()
    await db.commit()
    logger.info(f"Password reset for user #{user.id}")
    return user


# =============================================================================
# ADMINS
# =============================================================================

async def authenticate_admin(db: AsyncSession, username: str, password: str) -> Admin:
    result = await db.execute(select(Admin).where(Admin.username == username))
    admin = result.scalars().first()
    if admin is None or not verify_password(password, admin.password):
        raise AuthenticationError("Invalid credentials")
    return admin


async def list_admins(db: AsyncSession) -> list[Admin]:
    result = await db.execute(select(Admin).order_by(Admin.id))
    return list(result.scalars().all())


async def create_admin(
    db: AsyncSession,
    username: str,
    email: str,
    password: str,
    name: Optional[str] = None,
    role: AdminRole = AdminRole.ADMIN,
    permissions: Optional[list[str]] = None,
) -> Admin:
    _check_password(password)
    existing = await db.execute(
        select(Admin.id).where((Admin.username == username) | (Admin.email == _normalize_email(email)))
    )
    if existing.scalars().first() is not None:
        raise ConflictError("Admin username or email already exists")

    admin = Admin(
        username=username,
        email=_normalize_email(email),
        password=hash_password(password),
        name=name,
        role=role,
    )
    if permissions is not None:
        admin.permissions = permissions
    db.add(admin)
    await db.commit()
    logger.info(f"Created admin #{admin.id} ({admin.username}, {admin.role.value})")
    return admin


async def list_users(db: AsyncSession) -> list[User]:
    result = await db.execute(select(User).order_by(User.id))
    return list(result.scalars().all())


async def get_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user
