"""Subscription service - Business logic for subscription management"""

import logging
import math
from datetime import timedelta

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import Subscription, SubscriptionPlan, User
from ...queue import enqueue_email_safely
from ...shared.serializers import iso, serialize_payment, serialize_plan, serialize_subscription
from ...utils.dates import add_months, format_date_cl, utcnow
from .mercadopago_service import MercadoPagoError, mercadopago_service
from .reconciliation import apply_provider_status
from .repository import BillingRepository
from .schemas import ChangePlanRequest, CreatePreferenceRequest, PayOverdueRequest, ReactivateRequest

logger = logging.getLogger(__name__)

REACTIVATABLE_STATUSES = {"cancelled", "suspended", "pending"}
CANCELLABLE_STATUSES = {"active", "past_due"}


class SubscriptionService:
    """Service for subscription management"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = BillingRepository()

    def _require_subscription(self, user: User) -> Subscription:
        subscription = self.repo.get_subscription_by_user(self.db, user.id)
        if not subscription:
            raise HTTPException(status_code=404, detail="No subscription found")
        return subscription

    def _require_available_plan(self, plan_id: int) -> SubscriptionPlan:
        plan = self.repo.get_plan(self.db, plan_id)
        if not plan:
            raise HTTPException(status_code=404, detail="Plan not found")
        if not plan.is_active:
            raise HTTPException(status_code=400, detail="Plan not available")
        return plan

    def list_plans(self) -> dict:
        return {"plans": [serialize_plan(plan) for plan in self.repo.list_active_plans(self.db)]}

    def get_current(self, user: User) -> dict:
        """Subscription with plan and the last 12 months of payments"""
        subscription = self._require_subscription(user)
        since = add_months(utcnow(), -12)
        payments = self.repo.list_payments_since(self.db, subscription.id, since)

        data = serialize_subscription(subscription)
        data["payments"] = [serialize_payment(p) for p in payments]
        return {"subscription": data}

    async def create_preference(self, body: CreatePreferenceRequest, user: User) -> dict:
        """Start a MercadoPago checkout and upsert a pending subscription"""
        if not user.email_verified:
            raise HTTPException(status_code=403, detail="Please verify your email before subscribing")

        existing = self.repo.get_subscription_by_user(self.db, user.id)
        if existing and existing.status == "active":
            raise HTTPException(status_code=409, detail="You already have an active subscription")

        plan = self._require_available_plan(body.plan_id)

        try:
            preference = await mercadopago_service.create_subscription_preference(
                plan_id=plan.id,
                user_id=user.id,
                plan_price=plan.price,
                plan_name=plan.name,
                payer_email=user.email,
            )
        except MercadoPagoError as e:
            logger.error(f"❌ Failed to create preference for user {user.id}: {e}")
            raise HTTPException(
                status_code=503,
                detail="Unable to create payment preference. Please try again later.",
            ) from e

        now = utcnow()
        period_end = add_months(now, 1)

        subscription = existing or Subscription(user_id=user.id)
        subscription.plan_id = plan.id
        subscription.plan_price = plan.price
        subscription.preference_id = preference["id"]
        subscription.status = "pending"
        subscription.current_period_start = now
        subscription.current_period_end = period_end
        subscription.next_billing_date = period_end
        subscription.mercadopago_sub_id = None
        subscription.cancelled_at = None
        subscription.grace_period_end = None
        if existing is None:
            self.db.add(subscription)
        self.db.commit()
        self.db.refresh(subscription)

        logger.info(f"✅ Pending subscription {subscription.id} for user {user.id} (plan {plan.id})")
        return {
            "success": True,
            "subscription_id": subscription.id,
            "init_point": preference.get("init_point"),
            "preference_id": preference["id"],
        }

    async def verify_status(self, user: User) -> dict:
        """Poll MercadoPago for the preapproval status and reconcile local state"""
        subscription = self._require_subscription(user)
        if not subscription.preference_id:
            raise HTTPException(status_code=400, detail="No MercadoPago preference linked")

        try:
            preapproval = await mercadopago_service.get_preapproval(subscription.preference_id)
        except MercadoPagoError as e:
            logger.error(f"❌ Failed to verify subscription {subscription.id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to verify subscription status") from e

        result = apply_provider_status(subscription, preapproval)
        if result["changed"]:
            self.db.commit()

        return {
            "success": True,
            "subscription_id": subscription.id,
            "previous_status": result["previous_status"],
            "status": result["status"],
            "changed": result["changed"],
            "provider_id": preapproval.get("id"),
            "provider_status": preapproval.get("status"),
        }

    async def cancel(self, user: User) -> dict:
        """Cancel locally; provider cancellation is best effort"""
        subscription = self._require_subscription(user)

        if subscription.status == "cancelled":
            raise HTTPException(status_code=400, detail="This subscription is already cancelled")
        if subscription.status not in CANCELLABLE_STATUSES:
            raise HTTPException(
                status_code=400,
                detail=f"Subscription with status '{subscription.status}' cannot be cancelled",
            )

        if subscription.mercadopago_sub_id:
            try:
                await mercadopago_service.cancel_preapproval(subscription.mercadopago_sub_id)
            except MercadoPagoError as e:
                logger.warning(f"⚠️ MercadoPago cancellation failed for {subscription.mercadopago_sub_id}: {e}")

        subscription.status = "cancelled"
        subscription.cancelled_at = utcnow()
        subscription.extra = None
        self.db.commit()
        self.db.refresh(subscription)

        logger.info(f"✅ Subscription {subscription.id} cancelled by user {user.id}")

        await enqueue_email_safely(
            to=user.email,
            subject="Tu suscripción fue cancelada - Reservapp",
            template_name="subscription-cancelled",
            template_data={
                "name": user.name,
                "plan_name": subscription.plan.name,
                "access_until": format_date_cl(subscription.current_period_end),
            },
            email_type="subscription_cancelled",
            user_id=user.id,
        )

        return {
            "message": "Subscription cancelled successfully",
            "subscription": {
                "id": subscription.id,
                "status": subscription.status,
                "cancelled_at": iso(subscription.cancelled_at),
                "current_period_end": iso(subscription.current_period_end),
                "plan_name": subscription.plan.name,
            },
        }

    async def reactivate(self, body: ReactivateRequest, user: User) -> dict:
        if not user.email_verified:
            raise HTTPException(
                status_code=403,
                detail="Please verify your email address before reactivating your subscription",
            )

        subscription = self._require_subscription(user)
        if subscription.status not in REACTIVATABLE_STATUSES:
            raise HTTPException(
                status_code=400,
                detail=f"Cannot reactivate subscription with status: {subscription.status}",
            )

        if body.new_plan_id and body.new_plan_id != subscription.plan_id:
            plan = self._require_available_plan(body.new_plan_id)
        else:
            plan = subscription.plan
            if not plan.is_active:
                raise HTTPException(
                    status_code=400,
                    detail="Your previous plan is no longer available. Please select a new plan.",
                )

        try:
            preference = await mercadopago_service.create_subscription_preference(
                plan_id=plan.id,
                user_id=user.id,
                plan_price=plan.price,
                plan_name=plan.name,
                payer_email=user.email,
            )
        except MercadoPagoError as e:
            logger.error(f"❌ Failed to create reactivation preference for user {user.id}: {e}")
            raise HTTPException(
                status_code=503,
                detail="Unable to create payment preference. Please try again later.",
            ) from e

        now = utcnow()
        period_end = add_months(now, 1)
        subscription.plan_id = plan.id
        subscription.plan_price = plan.price
        subscription.preference_id = preference["id"]
        subscription.status = "pending"
        subscription.current_period_start = now
        subscription.current_period_end = period_end
        subscription.next_billing_date = period_end
        subscription.mercadopago_sub_id = None
        subscription.cancelled_at = None
        subscription.grace_period_end = None
        self.db.commit()

        logger.info(f"🔄 Subscription {subscription.id} reactivation initiated (plan {plan.id})")
        return {
            "success": True,
            "message": "Subscription reactivation initiated",
            "subscription_id": subscription.id,
            "init_point": preference.get("init_point"),
            "preference_id": preference["id"],
            "plan": {"id": plan.id, "name": plan.name, "price": plan.price},
        }

    async def change_plan(self, body: ChangePlanRequest, user: User) -> dict:
        """Upgrades apply immediately with a pro-rated charge; downgrades wait for the next billing date"""
        subscription = self._require_subscription(user)

        if subscription.status == "cancelled":
            raise HTTPException(
                status_code=400,
                detail="Cancelled subscriptions cannot be changed. Please reactivate first.",
            )
        if subscription.status == "suspended":
            raise HTTPException(
                status_code=400,
                detail="Suspended subscriptions cannot be changed. Please resolve payment issues first.",
            )

        new_plan = self.repo.get_plan(self.db, body.new_plan_id)
        if not new_plan:
            raise HTTPException(status_code=404, detail="Plan not found")
        if subscription.plan_id == new_plan.id:
            raise HTTPException(status_code=400, detail="You are already subscribed to this plan")

        current_price = subscription.plan_price
        new_price = new_plan.price
        now = utcnow()

        if new_price > current_price:
            pro_rated_amount, days_remaining = self._pro_rate(subscription, new_price - current_price, now)

            if subscription.mercadopago_sub_id:
                try:
                    await mercadopago_service.update_preapproval_amount(subscription.mercadopago_sub_id, new_price)
                except MercadoPagoError as e:
                    logger.warning(f"⚠️ MercadoPago amount update failed for {subscription.mercadopago_sub_id}: {e}")

            subscription.plan_id = new_plan.id
            subscription.plan_price = new_price
            self.db.commit()
            self.db.refresh(subscription)

            logger.info(f"⬆️ Subscription {subscription.id} upgraded to plan {new_plan.id}")
            return {
                "message": "Plan upgraded successfully",
                "subscription": serialize_subscription(subscription),
                "upgrade": {
                    "pro_rated_amount": pro_rated_amount,
                    "days_remaining": days_remaining,
                    "applied_immediately": True,
                },
            }

        effective_date = iso(subscription.next_billing_date)
        extra = dict(subscription.extra or {})
        extra["scheduled_plan_change"] = {
            "new_plan_id": new_plan.id,
            "new_plan_name": new_plan.name,
            "new_plan_price": new_price,
            "scheduled_at": iso(now),
            "effective_date": effective_date,
        }
        subscription.extra = extra
        self.db.commit()
        self.db.refresh(subscription)

        logger.info(f"⬇️ Subscription {subscription.id} downgrade to plan {new_plan.id} scheduled")
        return {
            "message": "Plan downgrade scheduled successfully",
            "subscription": serialize_subscription(subscription),
            "downgrade": {
                "new_plan_name": new_plan.name,
                "new_plan_price": new_price,
                "effective_date": effective_date,
                "applied_immediately": False,
            },
        }

    @staticmethod
    def _pro_rate(subscription: Subscription, price_difference: int, now) -> tuple[int, int]:
        """Charge for the rest of the current period: round(diff * days_remaining / total_days)"""
        period_start = subscription.current_period_start
        period_end = subscription.current_period_end
        if not period_start or not period_end:
            return 0, 0

        day = timedelta(days=1)
        days_remaining = max(0, math.ceil((period_end - now) / day))
        total_days = math.ceil((period_end - period_start) / day)
        if total_days <= 0:
            return 0, days_remaining
        # Half-up rounding on CLP amounts
        return int(price_difference * days_remaining / total_days + 0.5), days_remaining

    async def pay_overdue(self, body: PayOverdueRequest, user: User) -> dict:
        """One-time checkout for a pending payment, including any late fee"""
        payment = self.repo.get_payment(self.db, body.payment_id)
        if not payment:
            raise HTTPException(status_code=404, detail="Payment not found")
        if payment.user_id != user.id:
            raise HTTPException(status_code=403, detail="You do not have permission to pay this")
        if payment.status != "pending":
            raise HTTPException(status_code=400, detail="This payment is not pending")

        plan_name = payment.subscription.plan.name if payment.subscription else "Reservapp"
        try:
            preference = await mercadopago_service.create_overdue_payment_preference(
                payment_id=payment.id,
                user_id=user.id,
                total_amount=payment.total_amount,
                plan_name=plan_name,
            )
        except MercadoPagoError as e:
            logger.error(f"❌ Failed to create overdue preference for payment {payment.id}: {e}")
            raise HTTPException(
                status_code=503,
                detail="Unable to create payment preference. Please try again later.",
            ) from e

        return {
            "init_point": preference.get("init_point"),
            "payment": {
                "id": payment.id,
                "amount": payment.amount,
                "penalty_fee": payment.penalty_fee,
                "total_amount": payment.total_amount,
            },
        }
