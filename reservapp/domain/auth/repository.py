"""Auth repository - Database operations for users"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import User


class UserRepository:
    """Repository for user lookups"""

    @staticmethod
    def get_by_email(db: Session, email: str) -> Optional[User]:
        return db.query(User).filter(User.email == email.lower()).first()

    @staticmethod
    def get_by_id(db: Session, user_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def count_users(db: Session) -> int:
        return db.query(User).count()

    @staticmethod
    def get_by_verification_token(db: Session, token: str) -> Optional[User]:
        return db.query(User).filter(User.verification_token == token).first()

    @staticmethod
    def get_by_reset_token(db: Session, token: str, now: datetime) -> Optional[User]:
        return (
            db.query(User)
            .filter(User.reset_token == token, User.reset_token_expires > now)
            .first()
        )
