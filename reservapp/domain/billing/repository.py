"""Billing repository - Database operations for plans, subscriptions and payments"""

from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from ...models import Payment, Subscription, SubscriptionPlan


class BillingRepository:
    """Repository for billing database operations"""

    @staticmethod
    def get_plan(db: Session, plan_id: int) -> Optional[SubscriptionPlan]:
        return db.query(SubscriptionPlan).filter(SubscriptionPlan.id == plan_id).first()

    @staticmethod
    def list_active_plans(db: Session) -> list[SubscriptionPlan]:
        """Active plans, cheapest first"""
        return (
            db.query(SubscriptionPlan)
            .filter(SubscriptionPlan.is_active.is_(True))
            .order_by(SubscriptionPlan.price.asc())
            .all()
        )

    @staticmethod
    def get_subscription_by_user(db: Session, user_id: int) -> Optional[Subscription]:
        """Get subscription (with plan) for a user"""
        return (
            db.query(Subscription)
            .options(joinedload(Subscription.plan))
            .filter(Subscription.user_id == user_id)
            .first()
        )

    @staticmethod
    def get_subscription_by_provider_id(db: Session, provider_id: str) -> Optional[Subscription]:
        """Match a MercadoPago preapproval id against either stored reference"""
        return (
            db.query(Subscription)
            .filter(
                or_(
                    Subscription.preference_id == provider_id,
                    Subscription.mercadopago_sub_id == provider_id,
                )
            )
            .first()
        )

    @staticmethod
    def get_payment(db: Session, payment_id: int) -> Optional[Payment]:
        return db.query(Payment).filter(Payment.id == payment_id).first()

    @staticmethod
    def get_payment_by_mercadopago_id(db: Session, mercadopago_id: str) -> Optional[Payment]:
        return db.query(Payment).filter(Payment.mercadopago_id == mercadopago_id).first()

    @staticmethod
    def list_payments_since(db: Session, subscription_id: int, since: datetime) -> list[Payment]:
        """Payments for a subscription created after ``since``, newest first"""
        return (
            db.query(Payment)
            .filter(Payment.subscription_id == subscription_id, Payment.created_at >= since)
            .order_by(Payment.created_at.desc())
            .all()
        )
