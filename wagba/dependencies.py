"""
FastAPI dependencies for authentication.

Tokens are read from ``Authorization: Bearer`` first, then from the httponly
cookie, so browsers that block cookies keep working.
"""

import logging
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from wagba.core.config import get_settings
from wagba.core.exceptions import AuthenticationError, PermissionDeniedError
from wagba.core.security import ADMIN_KIND, USER_KIND, decode_access_token
from wagba.database import get_db
from wagba.models import Admin, AdminRole, User

logger = logging.getLogger(__name__)


def _candidate_tokens(request: Request, cookie_name: str) -> list[str]:
    tokens = []
    authorization = request.headers.get("Authorization", "")
    if authorization.lower().startswith("bearer "):
        tokens.append(authorization[7:].strip())
    cookie = request.cookies.get(cookie_name)
    if cookie:
        tokens.append(cookie)
    return tokens


def _subject_id(request: Request, cookie_name: str, kind: str) -> Optional[int]:
    # A bearer token of the other kind must not hide a valid cookie
    for token in _candidate_tokens(request, cookie_name):
        subject_id = decode_access_token(token, kind)
        if subject_id is not None:
            return subject_id
    return None


async def get_optional_user(request: Request, db: AsyncSession = Depends(get_db)) -> Optional[User]:
    user_id = _subject_id(request, get_settings().auth_cookie_name, USER_KIND)
    if user_id is None:
        return None
    return await db.get(User, user_id)


async def get_current_user(user: Optional[User] = Depends(get_optional_user)) -> User:
    if user is None:
        raise AuthenticationError()
    return user


async def get_optional_admin(request: Request, db: AsyncSession = Depends(get_db)) -> Optional[Admin]:
    admin_id = _subject_id(request, get_settings().admin_cookie_name, ADMIN_KIND)
    if admin_id is None:
        return None
    return await db.get(Admin, admin_id)


async def get_current_admin(admin: Optional[Admin] = Depends(get_optional_admin)) -> Admin:
    if admin is None:
        raise AuthenticationError("Unauthorized - Admin access required")
    return admin


async def require_super_admin(admin: Admin = Depends(get_current_admin)) -> Admin:
    if admin.role != AdminRole.SUPER_ADMIN:
        logger.warning(f"Admin {admin.username} denied super admin action")
        raise PermissionDeniedError("Super admin access required")
    return admin
