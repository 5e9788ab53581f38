from datetime import datetime, timedelta

import pytest
from arq import Retry
from conftest import make_plan, make_subscription, make_user

from reservapp import email_service, worker
from reservapp.models import EmailLog, Payment
from reservapp.services.billing_automation import (
    apply_penalties,
    check_grace_periods,
    check_payment_reminders,
    reminder_subject,
)
from reservapp.utils.dates import local_to_utc, local_today, utcnow


@pytest.fixture
def sent_emails(monkeypatch):
    """Replace the Resend call; EmailLog rows are still written"""
    sent = []

    async def fake_send_email(to, subject, html_content, from_address=None):
        sent.append({"to": to, "subject": subject})
        return {"id": f"msg_{len(sent)}"}

    monkeypatch.setattr(email_service, "send_email", fake_send_email)
    return sent


def _due_in(days):
    day = local_today() + timedelta(days=days)
    return local_to_utc(datetime(day.year, day.month, day.day, 12, 0))


# ============================================================================
# PAYMENT REMINDERS
# ============================================================================


@pytest.mark.asyncio
async def test_payment_reminders_are_sent_once_per_day(db, sent_emails):
    user = make_user(db)
    make_subscription(db, user, make_plan(db), next_billing_date=_due_in(3))
    other = make_user(db, email="other@example.com")
    make_subscription(db, other, make_plan(db, name="Otro"), next_billing_date=_due_in(5))

    first = await check_payment_reminders(db)
    second = await check_payment_reminders(db)

    assert first == {"checked": 1, "sent": 1, "skipped": 0}
    assert second == {"checked": 1, "sent": 0, "skipped": 1}
    assert sent_emails == [{"to": user.email, "subject": "Tu pago vence en 3 dias - Reservapp"}]

    log = db.query(EmailLog).filter(EmailLog.type == "payment_reminder").one()
    assert log.status == "sent"
    assert log.extra["days_until_due"] == 3


@pytest.mark.asyncio
async def test_reminders_skip_inactive_subscriptions(db, sent_emails):
    user = make_user(db)
    make_subscription(db, user, make_plan(db), status="cancelled", next_billing_date=_due_in(1))

    result = await check_payment_reminders(db)
    assert result["checked"] == 0
    assert sent_emails == []


def test_reminder_subjects():
    assert reminder_subject(1) == "Tu pago vence manana - Reservapp"
    assert reminder_subject(7) == "Recordatorio de pago - Reservapp"


# ============================================================================
# GRACE PERIODS
# ============================================================================


@pytest.mark.asyncio
async def test_expired_grace_period_suspends(db, sent_emails):
    now = utcnow()
    expired_user = make_user(db)
    expired = make_subscription(
        db, expired_user, make_plan(db), status="past_due", grace_period_end=now - timedelta(hours=1)
    )
    waiting_user = make_user(db, email="waiting@example.com")
    waiting = make_subscription(
        db, waiting_user, make_plan(db, name="Otro"), status="past_due", grace_period_end=now + timedelta(days=1)
    )

    suspended = await check_grace_periods(db, now=now)

    assert suspended == 1
    db.refresh(expired)
    db.refresh(waiting)
    assert expired.status == "suspended"
    assert expired.grace_period_end is None
    assert waiting.status == "past_due"
    assert sent_emails[0]["subject"] == "Suscripcion suspendida - Reservapp"


# ============================================================================
# PENALTIES
# ============================================================================


@pytest.mark.asyncio
async def test_penalty_applied_once(db, sent_emails):
    now = datetime(2030, 3, 10, 12, 0)
    user = make_user(db)
    subscription = make_subscription(db, user, make_plan(db))
    payment = Payment(
        user_id=user.id,
        subscription_id=subscription.id,
        amount=10000,
        total_amount=10000,
        status="pending",
        due_date=datetime(2030, 3, 5, 12, 0),
    )
    db.add(payment)
    db.commit()

    first = await apply_penalties(db, now=now)
    second = await apply_penalties(db, now=now)

    assert first == {"checked": 1, "applied": 1, "failed": 0}
    assert second == {"checked": 0, "applied": 0, "failed": 0}

    db.refresh(payment)
    db.refresh(subscription)
    assert payment.penalty_fee == 650
    assert payment.total_amount == 10650
    assert subscription.status == "past_due"
    assert subscription.grace_period_end == now + timedelta(days=3)
    assert [e["subject"] for e in sent_emails] == ["Pago vencido - Reservapp"]


@pytest.mark.asyncio
async def test_penalty_waits_for_plan_grace_period(db, sent_emails):
    now = datetime(2030, 3, 10, 12, 0)
    user = make_user(db)
    subscription = make_subscription(db, user, make_plan(db, grace_period_days=7))
    db.add(
        Payment(
            user_id=user.id,
            subscription_id=subscription.id,
            amount=10000,
            total_amount=10000,
            due_date=datetime(2030, 3, 5, 12, 0),
        )
    )
    db.commit()

    result = await apply_penalties(db, now=now)
    assert result["applied"] == 0
    assert sent_emails == []


# ============================================================================
# EMAIL TASK
# ============================================================================


@pytest.mark.asyncio
async def test_send_email_task_retries_with_backoff(db, monkeypatch):
    async def failing_send(db, **kwargs):
        return {"success": False, "message_id": None, "error": "Email service not configured"}

    monkeypatch.setattr(worker, "send_email_with_logging", failing_send)

    with pytest.raises(Retry) as exc_info:
        await worker.send_email_task(
            {"job_try": 2, "job_id": "job-1"},
            to="ana@example.com",
            subject="Hola",
            template_name="verify-email",
            template_data={"name": "Ana", "verification_url": "http://x"},
            email_type="verification",
        )
    assert exc_info.value.defer_score == 2000


@pytest.mark.asyncio
async def test_send_email_task_logs_delivery(db, sent_emails):
    result = await worker.send_email_task(
        {"job_try": 1, "job_id": "job-1"},
        to="ana@example.com",
        subject="Verifica tu correo",
        template_name="verify-email",
        template_data={"name": "Ana", "verification_url": "http://localhost/verify"},
        email_type="verification",
    )
    assert result["success"] is True
    assert result["message_id"] == "msg_1"
    log = db.query(EmailLog).one()
    assert log.extra == {"job_id": "job-1", "attempt": 1}


# ============================================================================
# SCHEDULE
# ============================================================================


def test_cron_registry_keeps_one_entry_per_job_id():
    schedules = worker.SCHEDULED_JOBS + [
        worker.ScheduledJob("penalties-daily", worker.apply_penalties_task, hour=6),
    ]
    jobs = worker.build_cron_jobs(schedules)

    names = [job.name for job in jobs]
    assert sorted(names) == ["grace-periods-daily", "payment-reminders-daily", "penalties-daily"]
    penalties = next(job for job in jobs if job.name == "penalties-daily")
    assert penalties.hour == 6
    assert penalties.job_id == "penalties-daily"


def test_worker_settings_register_tasks():
    assert worker.send_email_task in worker.WorkerSettings.functions
    assert worker.WorkerSettings.max_tries == 3
    assert len(worker.WorkerSettings.cron_jobs) == 3
