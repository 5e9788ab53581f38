"""Shared validation utilities"""

import re
from typing import Optional

EMAIL_PATTERN = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
PASSWORD_PATTERN = r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]{8,}$"
HHMM_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Args:
        email: Email address string

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        raise ValueError("Email is required")

    email = email.strip().lower()

    if not re.match(EMAIL_PATTERN, email):
        raise ValueError("Invalid email address")

    return email


def validate_password(password: str) -> str:
    """At least 8 characters with upper, lower, digit and one of @$!%*?&"""
    if len(password) < 8:
        raise ValueError("Password must be at least 8 characters")
    if not re.match(PASSWORD_PATTERN, password):
        raise ValueError(
            "Password must contain at least one uppercase letter, one lowercase letter, "
            "one number, and one special character"
        )
    return password


def validate_name(name: str) -> str:
    name = name.strip()
    if len(name) < 2:
        raise ValueError("Name must be at least 2 characters")
    if len(name) > 50:
        raise ValueError("Name must not exceed 50 characters")
    return name


def validate_hhmm(value: str) -> str:
    """24h "HH:MM" clock time"""
    if not re.match(HHMM_PATTERN, value or ""):
        raise ValueError("Formato de hora inválido (HH:MM)")
    return value
