import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session

from .config import IS_PRODUCTION, SESSION_COOKIE_NAME, SESSION_TTL_DAYS
from .database import get_db
from .domain.auth.repository import UserRepository
from .models import User
from .security_utils import create_session_token, verify_session_token

logger = logging.getLogger(__name__)


def set_session_cookie(response: Response, user: User) -> None:
    """Issue the session cookie for a freshly authenticated user"""
    token = create_session_token(user.id, user.email)
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        max_age=SESSION_TTL_DAYS * 24 * 60 * 60,
        httponly=True,
        secure=IS_PRODUCTION,
        samesite="lax",
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(key=SESSION_COOKIE_NAME, path="/")


async def get_optional_user(request: Request, db: Session = Depends(get_db)) -> Optional[User]:
    """
    Resolve the session cookie to a user without failing.
    Routes that need a custom 401 message use this and check for None themselves.
    """
    token = request.cookies.get(SESSION_COOKIE_NAME)
    if not token:
        return None

    payload = verify_session_token(token)
    if not payload:
        return None

    return UserRepository.get_by_id(db, payload["user_id"])


async def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    """Get current user from the session cookie"""
    token = request.cookies.get(SESSION_COOKIE_NAME)
    if not token:
        raise HTTPException(status_code=401, detail="Authentication required")

    payload = verify_session_token(token)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    user = UserRepository.get_by_id(db, payload["user_id"])
    if not user:
        logger.warning(f"⚠️ Session references missing user {payload['user_id']}")
        raise HTTPException(status_code=404, detail="User not found")

    logger.debug(f"✅ User authenticated: {user.email}")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """
    Gate admin-only routes.
    Use this dependency on every /api/admin endpoint.
    """
    if not user.is_admin:
        logger.warning(f"⚠️ User {user.email} attempted to access an admin route")
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
