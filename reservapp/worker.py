"""
ARQ Background Worker for Async Jobs
Handles email delivery and the daily billing cron jobs
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional
from zoneinfo import ZoneInfo

from arq import Retry
from arq.cron import CronJob, cron

# Import models at module level so SQLAlchemy can resolve relationships
from . import models  # noqa: F401
from .config import APP_TIMEZONE
from .database import SessionLocal
from .email_service import send_email_with_logging
from .queue import get_redis_settings
from .services.billing_automation import apply_penalties, check_grace_periods, check_payment_reminders

logger = logging.getLogger(__name__)

EMAIL_MAX_TRIES = 3


async def send_email_task(
    ctx,
    to: str,
    subject: str,
    template_name: str,
    template_data: dict,
    email_type: str,
    user_id: Optional[int] = None,
):
    """
    Send one queued email and record it in EmailLog.
    Failed deliveries are retried with exponential backoff (1s, 2s, 4s).
    """
    job_try = ctx.get("job_try", 1)
    logger.info(f"📧 Sending '{email_type}' email to {to} (attempt {job_try}/{EMAIL_MAX_TRIES})")

    db = SessionLocal()
    try:
        result = await send_email_with_logging(
            db,
            email_type=email_type,
            to=to,
            subject=subject,
            template_name=template_name,
            template_data=template_data,
            user_id=user_id,
            extra={"job_id": ctx.get("job_id"), "attempt": job_try},
        )
    finally:
        db.close()

    if not result["success"]:
        defer = 2 ** (job_try - 1)
        logger.warning(f"⚠️ Email to {to} failed ({result['error']}), retrying in {defer}s")
        raise Retry(defer=defer)

    return result


async def check_payment_reminders_task(ctx):
    """Daily cron job: reminders 7, 3 and 1 days before the next billing date"""
    logger.info("🔔 Starting payment reminder check")

    db = SessionLocal()
    try:
        return await check_payment_reminders(db)
    except Exception as e:
        logger.error(f"❌ Payment reminder check failed: {str(e)}")
        db.rollback()
        raise
    finally:
        db.close()


async def check_grace_periods_task(ctx):
    """Daily cron job: suspend past_due subscriptions whose grace period ended"""
    logger.info("⏳ Starting grace period check")

    db = SessionLocal()
    try:
        suspended = await check_grace_periods(db)
        return {"suspended": suspended}
    except Exception as e:
        logger.error(f"❌ Grace period check failed: {str(e)}")
        db.rollback()
        raise
    finally:
        db.close()


async def apply_penalties_task(ctx):
    """Daily cron job: late fees on overdue pending payments"""
    logger.info("💸 Starting penalty run")

    db = SessionLocal()
    try:
        return await apply_penalties(db)
    except Exception as e:
        logger.error(f"❌ Penalty run failed: {str(e)}")
        db.rollback()
        raise
    finally:
        db.close()


# ============================================================================
# SCHEDULE
# ============================================================================


@dataclass(frozen=True)
class ScheduledJob:
    job_id: str
    coroutine: Callable[..., Any]
    hour: int
    minute: int = 0


# Studio-local times (WorkerSettings.timezone)
SCHEDULED_JOBS = [
    ScheduledJob("payment-reminders-daily", check_payment_reminders_task, hour=9),
    ScheduledJob("grace-periods-daily", check_grace_periods_task, hour=10),
    ScheduledJob("penalties-daily", apply_penalties_task, hour=8),
]


def build_cron_jobs(schedules: Iterable[ScheduledJob]) -> list[CronJob]:
    """
    Register cron jobs by job id. Registering an id again replaces the
    previous entry, so the result never holds two schedules for one job.
    """
    registry: dict[str, CronJob] = {}
    for schedule in schedules:
        if schedule.job_id in registry:
            logger.info(f"🔁 Replacing existing schedule for {schedule.job_id}")
            del registry[schedule.job_id]
        registry[schedule.job_id] = cron(
            schedule.coroutine,
            name=schedule.job_id,
            hour=schedule.hour,
            minute=schedule.minute,
            job_id=schedule.job_id,
            unique=True,
        )
    return list(registry.values())


class WorkerSettings:
    """ARQ Worker Settings"""

    functions = [
        send_email_task,
        check_payment_reminders_task,
        check_grace_periods_task,
        apply_penalties_task,
    ]
    redis_settings = get_redis_settings()

    max_jobs = int(os.getenv("ARQ_MAX_JOBS", "20"))
    job_timeout = int(os.getenv("ARQ_JOB_TIMEOUT", "300"))
    keep_result = int(os.getenv("ARQ_KEEP_RESULT", "3600"))

    health_check_interval = 60

    # Retry settings for failed jobs
    max_tries = EMAIL_MAX_TRIES

    timezone = ZoneInfo(APP_TIMEZONE)
    cron_jobs = build_cron_jobs(SCHEDULED_JOBS)

    logger.info(f"🔧 ARQ Worker configured: max_jobs={max_jobs}, timeout={job_timeout}s")
