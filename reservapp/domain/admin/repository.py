"""Admin repository - Filtered listings and aggregates for the admin panel"""

import math
from datetime import datetime
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Query, Session, joinedload

from ...models import (
    Payment,
    Reservation,
    Resource,
    ResourceAvailability,
    Subscription,
    SubscriptionPlan,
    User,
)

INACTIVE_STATUSES = ["cancelled", "suspended", "past_due", "pending"]


def _user_search(search: str):
    pattern = f"%{search}%"
    return or_(User.name.ilike(pattern), User.email.ilike(pattern))


class AdminRepository:
    """Repository for admin queries"""

    @staticmethod
    def paginate(query: Query, page: int, limit: int) -> tuple[list, dict]:
        total = query.order_by(None).count()
        items = query.offset((page - 1) * limit).limit(limit).all()
        pagination = {
            "total": total,
            "page": page,
            "limit": limit,
            "pages": math.ceil(total / limit) if limit else 0,
        }
        return items, pagination

    # ============================================================================
    # USERS
    # ============================================================================

    @staticmethod
    def users_query(
        db: Session,
        search: Optional[str] = None,
        subscription_status: Optional[str] = None,
        is_admin: Optional[bool] = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> Query:
        query = db.query(User).options(joinedload(User.subscription).joinedload(Subscription.plan))

        if search:
            query = query.filter(_user_search(search))
        if is_admin is not None:
            query = query.filter(User.is_admin.is_(is_admin))

        if subscription_status == "active":
            query = query.filter(User.subscription.has(Subscription.status == "active"))
        elif subscription_status == "inactive":
            query = query.filter(User.subscription.has(Subscription.status.in_(INACTIVE_STATUSES)))
        elif subscription_status == "none":
            query = query.filter(~User.subscription.has())

        column = {"name": User.name, "email": User.email}.get(sort_by, User.created_at)
        return query.order_by(column.asc() if sort_order == "asc" else column.desc())

    @staticmethod
    def get_user(db: Session, user_id: int) -> Optional[User]:
        return (
            db.query(User)
            .options(joinedload(User.subscription).joinedload(Subscription.plan))
            .filter(User.id == user_id)
            .first()
        )

    @staticmethod
    def recent_user_payments(db: Session, user_id: int, limit: int = 10) -> list[Payment]:
        return (
            db.query(Payment)
            .filter(Payment.user_id == user_id)
            .order_by(Payment.created_at.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def recent_user_reservations(db: Session, user_id: int, limit: int = 10) -> list[Reservation]:
        return (
            db.query(Reservation)
            .options(joinedload(Reservation.resource))
            .filter(Reservation.user_id == user_id)
            .order_by(Reservation.start_time.desc())
            .limit(limit)
            .all()
        )

    # ============================================================================
    # SUBSCRIPTIONS
    # ============================================================================

    @staticmethod
    def subscriptions_query(
        db: Session,
        status: Optional[str] = None,
        search: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Query:
        query = (
            db.query(Subscription)
            .join(User, Subscription.user_id == User.id)
            .options(joinedload(Subscription.user), joinedload(Subscription.plan))
        )
        if status and status != "all":
            query = query.filter(Subscription.status == status)
        if search:
            query = query.filter(_user_search(search))
        if start_date and end_date:
            query = query.filter(Subscription.created_at >= start_date, Subscription.created_at <= end_date)
        return query.order_by(Subscription.created_at.desc())

    @staticmethod
    def get_subscription(db: Session, subscription_id: int) -> Optional[Subscription]:
        return (
            db.query(Subscription)
            .options(joinedload(Subscription.user), joinedload(Subscription.plan))
            .filter(Subscription.id == subscription_id)
            .first()
        )

    @staticmethod
    def subscription_payments(db: Session, subscription_id: int) -> list[Payment]:
        return (
            db.query(Payment)
            .filter(Payment.subscription_id == subscription_id)
            .order_by(Payment.created_at.desc())
            .all()
        )

    # ============================================================================
    # PAYMENTS & RESERVATIONS
    # ============================================================================

    @staticmethod
    def payments_query(
        db: Session,
        status: Optional[str] = None,
        search: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        user_id: Optional[int] = None,
    ) -> Query:
        query = (
            db.query(Payment)
            .join(User, Payment.user_id == User.id)
            .options(
                joinedload(Payment.user),
                joinedload(Payment.subscription).joinedload(Subscription.plan),
            )
        )
        if status and status != "all":
            query = query.filter(Payment.status == status)
        if search:
            query = query.filter(_user_search(search))
        if start_date and end_date:
            query = query.filter(Payment.created_at >= start_date, Payment.created_at <= end_date)
        if user_id:
            query = query.filter(Payment.user_id == user_id)
        return query.order_by(Payment.created_at.desc())

    @staticmethod
    def get_payment(db: Session, payment_id: int) -> Optional[Payment]:
        return (
            db.query(Payment)
            .options(
                joinedload(Payment.user),
                joinedload(Payment.subscription).joinedload(Subscription.plan),
            )
            .filter(Payment.id == payment_id)
            .first()
        )

    @staticmethod
    def reservations_query(
        db: Session,
        status: Optional[str] = None,
        search: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        resource_id: Optional[int] = None,
    ) -> Query:
        query = (
            db.query(Reservation)
            .join(User, Reservation.user_id == User.id)
            .options(joinedload(Reservation.user), joinedload(Reservation.resource))
        )
        if status and status != "all":
            query = query.filter(Reservation.status == status)
        if search:
            query = query.filter(_user_search(search))
        if start_date and end_date:
            query = query.filter(Reservation.start_time >= start_date, Reservation.start_time <= end_date)
        if resource_id:
            query = query.filter(Reservation.resource_id == resource_id)
        return query.order_by(Reservation.start_time.desc())

    @staticmethod
    def get_reservation(db: Session, reservation_id: int) -> Optional[Reservation]:
        return (
            db.query(Reservation)
            .options(joinedload(Reservation.user), joinedload(Reservation.resource))
            .filter(Reservation.id == reservation_id)
            .first()
        )

    # ============================================================================
    # PLANS & RESOURCES
    # ============================================================================

    @staticmethod
    def list_plans(db: Session) -> list[SubscriptionPlan]:
        return db.query(SubscriptionPlan).order_by(SubscriptionPlan.price.asc()).all()

    @staticmethod
    def get_plan(db: Session, plan_id: int) -> Optional[SubscriptionPlan]:
        return db.query(SubscriptionPlan).filter(SubscriptionPlan.id == plan_id).first()

    @staticmethod
    def count_plan_subscriptions(db: Session, plan_id: int) -> int:
        return db.query(Subscription).filter(Subscription.plan_id == plan_id).count()

    @staticmethod
    def list_resources(db: Session) -> list[Resource]:
        return db.query(Resource).options(joinedload(Resource.availability)).order_by(Resource.name.asc()).all()

    @staticmethod
    def get_resource(db: Session, resource_id: int) -> Optional[Resource]:
        return (
            db.query(Resource)
            .options(joinedload(Resource.availability))
            .filter(Resource.id == resource_id)
            .first()
        )

    @staticmethod
    def count_future_reservations(db: Session, resource_id: int, now: datetime) -> int:
        return (
            db.query(Reservation)
            .filter(
                Reservation.resource_id == resource_id,
                Reservation.status.in_(["pending", "confirmed"]),
                Reservation.start_time > now,
            )
            .count()
        )

    @staticmethod
    def get_availability_slot(db: Session, resource_id: int, slot_id: int) -> Optional[ResourceAvailability]:
        return (
            db.query(ResourceAvailability)
            .filter(ResourceAvailability.id == slot_id, ResourceAvailability.resource_id == resource_id)
            .first()
        )

    # ============================================================================
    # STATS
    # ============================================================================

    @staticmethod
    def count_active_subscriptions(db: Session) -> int:
        return db.query(Subscription).filter(Subscription.status == "active").count()

    @staticmethod
    def active_subscription_prices(db: Session) -> list[tuple[int, str]]:
        """(plan_price, plan interval) for every active subscription"""
        return (
            db.query(Subscription.plan_price, SubscriptionPlan.interval)
            .join(SubscriptionPlan, Subscription.plan_id == SubscriptionPlan.id)
            .filter(Subscription.status == "active")
            .all()
        )

    @staticmethod
    def payment_statuses_since(db: Session, since: datetime) -> list[str]:
        return [row[0] for row in db.query(Payment.status).filter(Payment.created_at >= since).all()]

    @staticmethod
    def count_upcoming_reservations(db: Session, start: datetime, end: datetime) -> int:
        return (
            db.query(func.count(Reservation.id))
            .filter(
                Reservation.start_time >= start,
                Reservation.start_time <= end,
                Reservation.status.in_(["confirmed", "pending"]),
            )
            .scalar()
        )

    @staticmethod
    def approved_payments_since(db: Session, since: datetime) -> list[Payment]:
        return (
            db.query(Payment)
            .filter(Payment.status == "approved", Payment.paid_at.isnot(None), Payment.paid_at >= since)
            .all()
        )

    @staticmethod
    def recent(db: Session, model, limit: int = 5, **filters) -> list:
        query = db.query(model).filter_by(**filters)
        return query.order_by(model.created_at.desc()).limit(limit).all()
