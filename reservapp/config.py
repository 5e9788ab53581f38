import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./reservapp.db")

# "development" or "production" - controls secure cookies and webhook checks
ENVIRONMENT = os.getenv("ENVIRONMENT", "development").strip().lower()
IS_PRODUCTION = ENVIRONMENT == "production"

# Security - CRITICAL: No default secret key in production
JWT_SECRET = os.getenv("JWT_SECRET")
if not JWT_SECRET:
    import warnings

    warnings.warn(
        "JWT_SECRET not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    JWT_SECRET = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

SESSION_COOKIE_NAME = "session"
SESSION_TTL_DAYS = int(os.getenv("SESSION_TTL_DAYS", "7"))

# Public application URL used in email links and provider redirects
APP_URL = os.getenv("APP_URL", "http://localhost:3000")

# Business timezone: availability windows, cron schedules and CSV dates
APP_TIMEZONE = os.getenv("APP_TIMEZONE", "America/Santiago")

# MercadoPago Configuration (Chile)
MERCADOPAGO_ACCESS_TOKEN = os.getenv("MERCADOPAGO_ACCESS_TOKEN")
MERCADOPAGO_PUBLIC_KEY = os.getenv("MERCADOPAGO_PUBLIC_KEY")
MERCADOPAGO_WEBHOOK_SECRET = os.getenv("MERCADOPAGO_WEBHOOK_SECRET")
MERCADOPAGO_API_URL = os.getenv("MERCADOPAGO_API_URL", "https://api.mercadopago.com")
# Must be a publicly reachable HTTPS URL; falls back to APP_URL
MERCADOPAGO_BACK_URL = os.getenv("MERCADOPAGO_BACK_URL") or APP_URL
# CLP = Chile, ARS = Argentina, BRL = Brazil, MXN = Mexico
MERCADOPAGO_CURRENCY_ID = os.getenv("MERCADOPAGO_CURRENCY_ID", "CLP")
# Development only: overrides payer_email on preapprovals
MERCADOPAGO_TEST_PAYER_EMAIL = os.getenv("MERCADOPAGO_TEST_PAYER_EMAIL")
MERCADOPAGO_TIMEOUT_SECONDS = float(os.getenv("MERCADOPAGO_TIMEOUT_SECONDS", "5"))

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "Reservapp <noreply@reservapp.cl>")
EMAIL_REPLY_TO = os.getenv("EMAIL_REPLY_TO")

# Redis / ARQ queue
REDIS_URL = os.getenv("REDIS_URL")
