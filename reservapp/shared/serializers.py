"""Shared response serializers - ORM rows to JSON-ready dicts"""

from datetime import datetime
from typing import Optional

from ..models import Payment, Reservation, Resource, Subscription, SubscriptionPlan, User


def iso(value: Optional[datetime]) -> Optional[str]:
    """ISO 8601 with a Z suffix for naive UTC timestamps"""
    if value is None:
        return None
    return f"{value.isoformat()}Z"


def serialize_plan(plan: SubscriptionPlan) -> dict:
    return {
        "id": plan.id,
        "name": plan.name,
        "description": plan.description,
        "price": plan.price,
        "interval": plan.interval,
        "features": plan.features or [],
        "is_active": plan.is_active,
        "grace_period_days": plan.grace_period_days,
        "penalty_base_rate": plan.penalty_base_rate,
        "penalty_daily_rate": plan.penalty_daily_rate,
        "penalty_max_rate": plan.penalty_max_rate,
    }


def serialize_payment(payment: Payment) -> dict:
    return {
        "id": payment.id,
        "user_id": payment.user_id,
        "subscription_id": payment.subscription_id,
        "mercadopago_id": payment.mercadopago_id,
        "amount": payment.amount,
        "penalty_fee": payment.penalty_fee,
        "total_amount": payment.total_amount,
        "status": payment.status,
        "due_date": iso(payment.due_date),
        "paid_at": iso(payment.paid_at),
        "created_at": iso(payment.created_at),
    }


def serialize_subscription(subscription: Subscription, include_plan: bool = True) -> dict:
    data = {
        "id": subscription.id,
        "user_id": subscription.user_id,
        "plan_id": subscription.plan_id,
        "plan_price": subscription.plan_price,
        "status": subscription.status,
        "current_period_start": iso(subscription.current_period_start),
        "current_period_end": iso(subscription.current_period_end),
        "next_billing_date": iso(subscription.next_billing_date),
        "grace_period_end": iso(subscription.grace_period_end),
        "cancelled_at": iso(subscription.cancelled_at),
        "preference_id": subscription.preference_id,
        "mercadopago_sub_id": subscription.mercadopago_sub_id,
        "metadata": subscription.extra,
        "created_at": iso(subscription.created_at),
    }
    if include_plan and subscription.plan is not None:
        data["plan"] = serialize_plan(subscription.plan)
    return data


def serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "email_verified": user.email_verified,
        "is_admin": user.is_admin,
        "created_at": iso(user.created_at),
    }


def serialize_resource(resource: Resource, include_availability: bool = False) -> dict:
    data = {
        "id": resource.id,
        "name": resource.name,
        "type": resource.type,
        "description": resource.description,
        "capacity": resource.capacity,
        "is_active": resource.is_active,
    }
    if include_availability:
        data["availability"] = [
            {
                "id": slot.id,
                "day_of_week": slot.day_of_week,
                "start_time": slot.start_time,
                "end_time": slot.end_time,
                "is_active": slot.is_active,
            }
            for slot in sorted(resource.availability, key=lambda s: (s.day_of_week, s.start_time))
        ]
    return data


def serialize_reservation(reservation: Reservation) -> dict:
    data = {
        "id": reservation.id,
        "user_id": reservation.user_id,
        "resource_id": reservation.resource_id,
        "title": reservation.title,
        "description": reservation.description,
        "start_time": iso(reservation.start_time),
        "end_time": iso(reservation.end_time),
        "attendees": reservation.attendees,
        "status": reservation.status,
        "created_at": iso(reservation.created_at),
    }
    if reservation.resource is not None:
        data["resource"] = {
            "id": reservation.resource.id,
            "name": reservation.resource.name,
            "type": reservation.resource.type,
        }
    return data
