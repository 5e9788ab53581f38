"""Auth service - Registration, login, email verification and password reset"""

import logging
from datetime import timedelta

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import APP_URL
from ...models import User
from ...queue import enqueue_email_safely
from ...security_utils import generate_secure_token, hash_password, verify_password
from ...shared.serializers import serialize_user
from ...utils.dates import utcnow
from .repository import UserRepository
from .schemas import (
    ForgotPasswordRequest,
    LoginRequest,
    ProfileUpdate,
    RegisterRequest,
    ResetPasswordRequest,
)

logger = logging.getLogger(__name__)

VERIFICATION_TOKEN_TTL = timedelta(hours=24)
RESET_TOKEN_TTL = timedelta(hours=1)


class AuthService:
    """Service for account lifecycle"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = UserRepository()

    async def _send_verification(self, user: User, action: str) -> None:
        verification_url = f"{APP_URL}/verify-email?token={user.verification_token}"
        await enqueue_email_safely(
            to=user.email,
            subject="Verifica tu correo electronico - Reservapp",
            template_name="verify-email",
            template_data={"name": user.name, "verification_url": verification_url, "action": action},
            email_type="verification",
            user_id=user.id,
        )

    async def register(self, data: RegisterRequest) -> dict:
        if self.repo.get_by_email(self.db, data.email):
            raise HTTPException(status_code=409, detail="An account with this email already exists")

        # First account on a fresh install administers the studio
        is_first_user = self.repo.count_users(self.db) == 0

        user = User(
            email=data.email,
            name=data.name,
            password_hash=hash_password(data.password),
            email_verified=False,
            is_admin=is_first_user,
            verification_token=generate_secure_token(),
            verification_token_expires=utcnow() + VERIFICATION_TOKEN_TTL,
        )
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise HTTPException(status_code=409, detail="An account with this email already exists")
        self.db.refresh(user)

        if is_first_user:
            logger.info(f"👑 First user {user.email} registered as admin")
        logger.info(f"✅ User registered: {user.email}")

        await self._send_verification(user, "registration")

        return {
            "success": True,
            "message": "Registration successful. Please check your email to verify your account.",
            "user": serialize_user(user),
        }

    def authenticate(self, data: LoginRequest) -> User:
        user = self.repo.get_by_email(self.db, data.email)
        if not user or not verify_password(data.password, user.password_hash):
            logger.warning(f"⚠️ Failed login attempt for {data.email}")
            raise HTTPException(status_code=401, detail="Invalid credentials")

        if not user.email_verified:
            raise HTTPException(
                status_code=403,
                detail={"error": "Email not verified", "message": "Please verify your email before logging in"},
            )

        logger.info(f"🔐 User logged in: {user.email}")
        return user

    def verify_email(self, token: str) -> dict:
        if not token:
            raise HTTPException(status_code=400, detail="Verification token is required")

        user = self.repo.get_by_verification_token(self.db, token)
        if not user:
            raise HTTPException(status_code=400, detail="Invalid verification token")

        if user.email_verified:
            raise HTTPException(status_code=400, detail="Email already verified")

        if not user.verification_token_expires or user.verification_token_expires < utcnow():
            raise HTTPException(status_code=400, detail="Token expired")

        user.email_verified = True
        user.verification_token = None
        user.verification_token_expires = None
        self.db.commit()

        logger.info(f"✅ Email verified: {user.email}")
        return {"success": True, "message": "Email verified successfully", "email": user.email}

    async def forgot_password(self, data: ForgotPasswordRequest) -> dict:
        """Same response whether or not the account exists"""
        user = self.repo.get_by_email(self.db, data.email)
        if user:
            user.reset_token = generate_secure_token()
            user.reset_token_expires = utcnow() + RESET_TOKEN_TTL
            self.db.commit()

            await enqueue_email_safely(
                to=user.email,
                subject="Restablece tu contrasena - Reservapp",
                template_name="password-reset",
                template_data={"name": user.name, "reset_url": f"{APP_URL}/reset-password?token={user.reset_token}"},
                email_type="password_reset",
                user_id=user.id,
            )
            logger.info(f"🔑 Password reset requested for {user.email}")

        return {
            "success": True,
            "message": "If an account exists with this email, you will receive a password reset link.",
        }

    def reset_password(self, data: ResetPasswordRequest) -> dict:
        user = self.repo.get_by_reset_token(self.db, data.token, utcnow())
        if not user:
            raise HTTPException(status_code=400, detail="Invalid or expired reset token")

        user.password_hash = hash_password(data.password)
        user.reset_token = None
        user.reset_token_expires = None
        self.db.commit()

        logger.info(f"✅ Password reset for {user.email}")
        return {"success": True, "message": "Password has been reset successfully. You can now log in."}

    # ============================================================================
    # PROFILE
    # ============================================================================

    async def update_profile(self, user: User, data: ProfileUpdate) -> dict:
        email_changed = False

        if data.name is not None:
            user.name = data.name

        if data.email is not None and data.email != user.email:
            existing = self.repo.get_by_email(self.db, data.email)
            if existing and existing.id != user.id:
                raise HTTPException(status_code=400, detail="Email already exists")
            user.email = data.email
            user.email_verified = False
            user.verification_token = generate_secure_token()
            user.verification_token_expires = utcnow() + VERIFICATION_TOKEN_TTL
            email_changed = True

        if data.new_password is not None:
            if not data.current_password or not verify_password(data.current_password, user.password_hash):
                raise HTTPException(status_code=400, detail="Current password is incorrect")
            user.password_hash = hash_password(data.new_password)

        user.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(user)

        if email_changed:
            await self._send_verification(user, "email_change")

        return {
            "success": True,
            "message": (
                "Profile updated. Please verify your new email address."
                if email_changed
                else "Profile updated successfully"
            ),
            "user": serialize_user(user),
        }
