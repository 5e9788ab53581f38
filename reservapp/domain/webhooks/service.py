"""
MercadoPago webhook processing
Stores each notification once and routes payment and subscription events
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Payment, Subscription, WebhookEvent
from ...queue import enqueue_email_safely
from ...utils.dates import add_months, format_date_cl, to_naive_utc, utcnow
from ..billing.mercadopago_service import mercadopago_service
from ..billing.reconciliation import apply_provider_status
from ..billing.repository import BillingRepository

logger = logging.getLogger(__name__)

HANDLED_EVENTS = [
    "payment.created",
    "payment.updated",
    "subscription.created",
    "subscription.updated",
]


def resolve_event_type(event: dict) -> str:
    """
    MercadoPago sends type="payment" with action="payment.updated", older
    notifications send a bare action ("updated"). Preapproval notifications
    use type "subscription_preapproval".
    """
    event_type = event.get("type") or ""
    action = event.get("action") or ""

    if "." in action:
        resolved = action
    else:
        resolved = f"{event_type}.{action}" if action else event_type

    if resolved.startswith("subscription_preapproval"):
        resolved = "subscription" + resolved[len("subscription_preapproval") :]
    return resolved


def _parse_provider_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return to_naive_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        logger.warning(f"⚠️ Unparseable provider date: {value}")
        return None


class WebhookService:
    """Idempotent processing of MercadoPago notifications"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = BillingRepository()

    # ============================================================================
    # EVENT STORE
    # ============================================================================

    def _get_event(self, event_id: str) -> Optional[WebhookEvent]:
        return self.db.query(WebhookEvent).filter(WebhookEvent.event_id == event_id).first()

    def _store_event(self, event_id: str, event_type: str, data: dict) -> WebhookEvent:
        existing = self._get_event(event_id)
        if existing:
            # Previous delivery failed mid-processing; retry with the same row
            return existing

        record = WebhookEvent(event_id=event_id, event_type=event_type, data=data, processed=False)
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        return record

    async def handle_event(self, event: dict) -> dict:
        """
        Process a notification once. Returns {"processed": bool, "duplicate": bool}.
        Raises on handler failure; the event row stays unprocessed for a retry.
        """
        event_id = str(event.get("id"))
        event_type = resolve_event_type(event)
        resource_id = str((event.get("data") or {}).get("id") or "")

        existing = self._get_event(event_id)
        if existing and existing.processed:
            logger.info(f"ℹ️ Webhook event {event_id} already processed, skipping")
            return {"processed": False, "duplicate": True}

        record = self._store_event(event_id, event_type, event)

        if event_type in ("payment.created", "payment.updated"):
            await self.handle_payment(resource_id)
        elif event_type in ("subscription.created", "subscription.updated"):
            await self.handle_subscription(resource_id)
        else:
            logger.info(f"ℹ️ Unhandled webhook event type: {event_type}")

        record.processed = True
        self.db.commit()
        return {"processed": True, "duplicate": False}

    # ============================================================================
    # HANDLERS
    # ============================================================================

    async def handle_payment(self, payment_id: str) -> None:
        payment = await mercadopago_service.get_payment(payment_id)
        reference = payment.get("external_reference") or ""

        if not reference:
            logger.error(f"❌ Payment {payment_id} has no external_reference")
            return

        if reference.startswith("overdue-"):
            self._settle_overdue_payment(reference, payment)
            return

        parts = reference.split("-")
        if len(parts) != 2 or not all(p.isdigit() for p in parts):
            logger.error(f"❌ Invalid external_reference format: {reference}")
            return
        user_id = int(parts[0])

        subscription = self.repo.get_subscription_by_user(self.db, user_id)
        if not subscription:
            logger.error(f"❌ Subscription not found for user {user_id}")
            return

        status = payment.get("status")
        if status != "approved":
            logger.info(f"ℹ️ Payment {payment_id} for user {user_id} is {status}, no changes")
            return

        now = utcnow()
        paid_at = _parse_provider_datetime(payment.get("date_approved")) or now
        amount = round(payment.get("transaction_amount") or 0)

        record = self.repo.get_payment_by_mercadopago_id(self.db, str(payment.get("id") or payment_id))
        if record:
            record.status = "approved"
            record.paid_at = paid_at
            record.total_amount = amount
            record.extra = payment
        else:
            record = Payment(
                user_id=user_id,
                subscription_id=subscription.id,
                mercadopago_id=str(payment.get("id") or payment_id),
                amount=amount,
                penalty_fee=0,
                total_amount=amount,
                status="approved",
                due_date=now,
                paid_at=paid_at,
                extra=payment,
            )
            self.db.add(record)

        self._activate(subscription, now)
        self.db.commit()

        logger.info(f"✅ Payment {payment_id} approved, subscription {subscription.id} active")

        await enqueue_email_safely(
            to=subscription.user.email,
            subject="Pago recibido - Reservapp",
            template_name="payment-success",
            template_data={
                "name": subscription.user.name,
                "amount": amount,
                "plan_name": subscription.plan.name if subscription.plan else "",
                "next_billing_date": format_date_cl(subscription.next_billing_date),
            },
            email_type="payment_success",
            user_id=user_id,
        )

    def _settle_overdue_payment(self, reference: str, payment: dict) -> None:
        """One-time checkout for an overdue charge: overdue-{payment_id}-{user_id}"""
        parts = reference.split("-")
        if len(parts) != 3 or not parts[1].isdigit():
            logger.error(f"❌ Invalid overdue reference: {reference}")
            return

        if payment.get("status") != "approved":
            logger.info(f"ℹ️ Overdue checkout {reference} is {payment.get('status')}, no changes")
            return

        record = self.repo.get_payment(self.db, int(parts[1]))
        if not record:
            logger.error(f"❌ Overdue payment {parts[1]} not found")
            return

        now = utcnow()
        record.status = "approved"
        record.paid_at = _parse_provider_datetime(payment.get("date_approved")) or now
        record.extra = {**(record.extra or {}), "checkout_payment_id": str(payment.get("id"))}

        if record.subscription is not None and record.subscription.status == "past_due":
            self._activate(record.subscription, now)

        self.db.commit()
        logger.info(f"✅ Overdue payment {record.id} settled")

    @staticmethod
    def _activate(subscription: Subscription, now: datetime) -> None:
        period_end = add_months(now, 1)
        subscription.status = "active"
        subscription.current_period_start = now
        subscription.current_period_end = period_end
        subscription.next_billing_date = period_end
        subscription.grace_period_end = None
        subscription.cancelled_at = None

    async def handle_subscription(self, preapproval_id: str) -> None:
        subscription = self.repo.get_subscription_by_provider_id(self.db, preapproval_id)
        if not subscription:
            logger.warning(f"⚠️ No local subscription for preapproval {preapproval_id}")
            return

        preapproval = await mercadopago_service.get_preapproval(preapproval_id)
        result = apply_provider_status(subscription, preapproval)
        if result["changed"]:
            self.db.commit()
