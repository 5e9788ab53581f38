"""
Billing Automation
Daily jobs for payment reminders, grace period expiry and late payment penalties
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ..config import APP_URL
from ..domain.billing.penalty import GRACE_PERIOD_DAYS, calculate_penalty
from ..email_service import send_email_with_logging
from ..models import EmailLog, Payment, Subscription
from ..utils.dates import format_date_cl, local_to_utc, local_today, utcnow

logger = logging.getLogger(__name__)

REMINDER_DAYS = (7, 3, 1)
PAST_DUE_GRACE_DAYS = 3


def _local_day_bounds(day) -> tuple[datetime, datetime]:
    """UTC [start, end) of a studio-local calendar day"""
    start = local_to_utc(datetime(day.year, day.month, day.day))
    end = local_to_utc(datetime(day.year, day.month, day.day) + timedelta(days=1))
    return start, end


def reminder_subject(days_until_due: int) -> str:
    if days_until_due == 1:
        return "Tu pago vence manana - Reservapp"
    if days_until_due == 3:
        return "Tu pago vence en 3 dias - Reservapp"
    return "Recordatorio de pago - Reservapp"


def reminder_already_sent(db: Session, user_id: int, days_until_due: int) -> bool:
    today_start, today_end = _local_day_bounds(local_today())
    logs = (
        db.query(EmailLog)
        .filter(
            EmailLog.user_id == user_id,
            EmailLog.type == "payment_reminder",
            EmailLog.created_at >= today_start,
            EmailLog.created_at < today_end,
        )
        .all()
    )
    return any((log.extra or {}).get("days_until_due") == days_until_due for log in logs)


async def check_payment_reminders(db: Session) -> dict:
    """Remind active subscribers whose next billing date is 7, 3 or 1 days away"""
    checked = 0
    sent = 0
    skipped = 0
    today = local_today()

    for days_until_due in REMINDER_DAYS:
        target_start, target_end = _local_day_bounds(today + timedelta(days=days_until_due))
        subscriptions = (
            db.query(Subscription)
            .options(joinedload(Subscription.user), joinedload(Subscription.plan))
            .filter(
                Subscription.status == "active",
                Subscription.next_billing_date >= target_start,
                Subscription.next_billing_date < target_end,
            )
            .all()
        )
        logger.info(f"📅 {len(subscriptions)} subscription(s) due in {days_until_due} day(s)")
        checked += len(subscriptions)

        for subscription in subscriptions:
            if reminder_already_sent(db, subscription.user_id, days_until_due):
                skipped += 1
                continue

            result = await send_email_with_logging(
                db,
                email_type="payment_reminder",
                to=subscription.user.email,
                subject=reminder_subject(days_until_due),
                template_name="payment-reminder",
                template_data={
                    "name": subscription.user.name,
                    "amount": subscription.plan_price,
                    "plan_name": subscription.plan.name,
                    "days_until_due": days_until_due,
                    "due_date": format_date_cl(subscription.next_billing_date),
                    "payment_url": f"{APP_URL}/subscription/pay",
                },
                user_id=subscription.user_id,
                extra={
                    "subscription_id": subscription.id,
                    "days_until_due": days_until_due,
                    "due_date": subscription.next_billing_date.isoformat(),
                },
            )
            if result["success"]:
                sent += 1

    logger.info(f"✅ Payment reminders: {checked} checked, {sent} sent, {skipped} skipped")
    return {"checked": checked, "sent": sent, "skipped": skipped}


async def check_grace_periods(db: Session, now: Optional[datetime] = None) -> int:
    """Suspend past_due subscriptions whose grace period has ended. Returns the count."""
    now = now or utcnow()
    expired = (
        db.query(Subscription)
        .options(joinedload(Subscription.user), joinedload(Subscription.plan))
        .filter(
            Subscription.status == "past_due",
            Subscription.grace_period_end.isnot(None),
            Subscription.grace_period_end <= now,
        )
        .all()
    )

    for subscription in expired:
        subscription.status = "suspended"
        subscription.grace_period_end = None
    db.commit()

    for subscription in expired:
        logger.info(f"⏸️ Subscription {subscription.id} suspended after grace period")
        await send_email_with_logging(
            db,
            email_type="subscription_suspended",
            to=subscription.user.email,
            subject="Suscripcion suspendida - Reservapp",
            template_name="subscription-suspended",
            template_data={"name": subscription.user.name, "plan_name": subscription.plan.name},
            user_id=subscription.user_id,
            extra={"subscription_id": subscription.id},
        )

    logger.info(f"✅ Grace period check: {len(expired)} subscription(s) suspended")
    return len(expired)


async def apply_penalties(db: Session, now: Optional[datetime] = None) -> dict:
    """
    Charge late fees on pending payments past their plan's grace period.

    A payment is only penalised once (penalty_fee == 0 marks it untouched). The
    subscription moves to past_due with a 3 day grace window unless one is set.
    """
    now = now or utcnow()
    candidates = (
        db.query(Payment)
        .options(
            joinedload(Payment.user),
            joinedload(Payment.subscription).joinedload(Subscription.plan),
        )
        .filter(
            Payment.status == "pending",
            Payment.penalty_fee == 0,
            Payment.due_date.isnot(None),
            Payment.due_date < now,
        )
        .all()
    )

    checked = 0
    applied = 0
    failed = 0

    for payment in candidates:
        plan = payment.subscription.plan if payment.subscription else None
        grace_days = plan.grace_period_days if plan and plan.grace_period_days is not None else GRACE_PERIOD_DAYS
        if payment.due_date >= now - timedelta(days=grace_days):
            continue
        checked += 1

        try:
            penalty = calculate_penalty(
                payment.amount,
                payment.due_date,
                now,
                grace_period_days=grace_days,
                base_rate=plan.penalty_base_rate if plan else 0.05,
                daily_rate=plan.penalty_daily_rate if plan else 0.005,
                max_rate=plan.penalty_max_rate if plan else 0.50,
            )
            if penalty.penalty_amount == 0:
                continue

            total_amount = payment.amount + penalty.penalty_amount
            payment.penalty_fee = penalty.penalty_amount
            payment.total_amount = total_amount

            grace_period_end = None
            if payment.subscription is not None:
                grace_period_end = payment.subscription.grace_period_end or now + timedelta(days=PAST_DUE_GRACE_DAYS)
                payment.subscription.status = "past_due"
                payment.subscription.grace_period_end = grace_period_end
            db.commit()

            logger.info(
                f"💸 Penalty {penalty.penalty_amount} applied to payment {payment.id} "
                f"({penalty.days_late} day(s) late)"
            )

            await send_email_with_logging(
                db,
                email_type="payment_overdue",
                to=payment.user.email,
                subject="Pago vencido - Reservapp",
                template_name="payment-overdue",
                template_data={
                    "name": payment.user.name,
                    "plan_name": plan.name if plan else "",
                    "base_amount": payment.amount,
                    "penalty_fee": penalty.penalty_amount,
                    "total_amount": total_amount,
                    "grace_period_end": format_date_cl(grace_period_end),
                    "payment_url": f"{APP_URL}/subscription/pay",
                },
                user_id=payment.user_id,
                extra={
                    "payment_id": payment.id,
                    "penalty_amount": penalty.penalty_amount,
                    "days_late": penalty.days_late,
                },
            )
            applied += 1
        except Exception as e:
            db.rollback()
            logger.error(f"❌ Failed to apply penalty to payment {payment.id}: {e}")
            failed += 1

    logger.info(f"✅ Penalties: {checked} checked, {applied} applied, {failed} failed")
    return {"checked": checked, "applied": applied, "failed": failed}
