"""Auth router - FastAPI endpoints for sessions and the user profile"""

import logging

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ...auth import clear_session_cookie, get_current_user, set_session_cookie
from ...database import get_db
from ...models import User
from ...shared.serializers import serialize_user
from .schemas import (
    ForgotPasswordRequest,
    LoginRequest,
    ProfileUpdate,
    RegisterRequest,
    ResetPasswordRequest,
)
from .service import AuthService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])
profile_router = APIRouter(prefix="/api/user", tags=["Users"])


def get_auth_service(db: Session = Depends(get_db)) -> AuthService:
    """Dependency injection for AuthService"""
    return AuthService(db)


@router.post("/register", status_code=201)
async def register(data: RegisterRequest, service: AuthService = Depends(get_auth_service)):
    return await service.register(data)


@router.post("/login")
async def login(data: LoginRequest, response: Response, service: AuthService = Depends(get_auth_service)):
    """Authenticate and set the session cookie"""
    user = service.authenticate(data)
    set_session_cookie(response, user)
    return {"success": True, "message": "Login successful", "user": serialize_user(user)}


@router.post("/logout")
async def logout(response: Response):
    clear_session_cookie(response)
    return {"success": True, "message": "Logged out"}


@router.get("/verify-email")
async def verify_email(token: str = Query(""), service: AuthService = Depends(get_auth_service)):
    return service.verify_email(token)


@router.post("/forgot-password")
async def forgot_password(data: ForgotPasswordRequest, service: AuthService = Depends(get_auth_service)):
    return await service.forgot_password(data)


@router.post("/reset-password")
async def reset_password(data: ResetPasswordRequest, service: AuthService = Depends(get_auth_service)):
    return service.reset_password(data)


# ============================================================================
# PROFILE
# ============================================================================


@profile_router.get("/profile")
async def get_profile(user: User = Depends(get_current_user)):
    return {"user": serialize_user(user)}


@profile_router.patch("/profile")
async def update_profile(
    data: ProfileUpdate,
    user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    return await service.update_profile(user, data)
