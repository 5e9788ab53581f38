"""
Security Utilities
Password hashing, session tokens and one-time tokens for email flows
"""

import logging
import secrets
from datetime import timedelta
from typing import Any, Optional

from jose import JWTError
from jose import jwt as jose_jwt
from passlib.context import CryptContext

from .config import JWT_SECRET, SESSION_TTL_DAYS
from .utils.dates import utcnow

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


# ============================================================================
# PASSWORD SECURITY
# ============================================================================


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify password against bcrypt hash"""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError as e:
        # Malformed hash stored for the user
        logger.error(f"Password verification error: {e}")
        return False


# ============================================================================
# TOKENS
# ============================================================================


def generate_secure_token(length: int = 32) -> str:
    """Generate a cryptographically secure random token"""
    return secrets.token_urlsafe(length)


def create_session_token(user_id: int, email: str, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create the signed session JWT stored in the session cookie.

    Args:
        user_id: Authenticated user id
        email: Authenticated user email
        expires_delta: Token lifetime (default SESSION_TTL_DAYS)
    """
    expire = utcnow() + (expires_delta or timedelta(days=SESSION_TTL_DAYS))
    payload = {"user_id": user_id, "email": email, "exp": expire}
    return jose_jwt.encode(payload, JWT_SECRET, algorithm=ALGORITHM)


def verify_session_token(token: str) -> Optional[dict[str, Any]]:
    """
    Verify and decode a session JWT

    Returns:
        Decoded payload if valid, None if invalid or expired
    """
    try:
        payload = jose_jwt.decode(token, JWT_SECRET, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        return None

    if not isinstance(payload.get("user_id"), int):
        logger.warning("JWT verification failed: missing user_id claim")
        return None
    return payload
