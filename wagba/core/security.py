"""
Password hashing and signed session tokens.

Tokens are itsdangerous signatures over ``{"uid": ..., "kind": ...}``. The same
token is stored in an httponly cookie and returned to the browser so it can be
replayed as ``Authorization: Bearer`` when cookies are blocked.
"""

import logging
import secrets
from typing import Optional

import bcrypt
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from wagba.core.config import get_settings

logger = logging.getLogger(__name__)

TOKEN_SALT = "wagba-auth"
USER_KIND = "user"
ADMIN_KIND = "admin"


def hash_password(password: str) -> str:
    """Hash a password with a fresh bcrypt salt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=10)).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    """Check a password against a stored bcrypt hash ($2a$/$2b$)."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(get_settings().secret_key, salt=TOKEN_SALT)


def create_access_token(subject_id: int, kind: str = USER_KIND) -> str:
    return _serializer().dumps({"uid": subject_id, "kind": kind})


def decode_access_token(token: str, kind: str = USER_KIND) -> Optional[int]:
    """
    Return the subject id carried by ``token``.

    Returns None for tampered, expired or wrong-kind tokens.
    """
    settings = get_settings()
    try:
        data = _serializer().loads(token, max_age=settings.session_max_age_seconds)
    except SignatureExpired:
        logger.debug("Expired %s token", kind)
        return None
    except BadSignature:
        logger.debug("Invalid %s token signature", kind)
        return None

    if not isinstance(data, dict) or data.get("kind") != kind:
        return None
    uid = data.get("uid")
    return uid if isinstance(uid, int) else None


def generate_reset_token() -> str:
    """Random URL-safe token for password reset links."""
    return secrets.token_urlsafe(32)
