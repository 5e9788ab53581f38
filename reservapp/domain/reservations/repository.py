"""Reservation repository - Database operations for resources and reservations"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import Reservation, Resource, ResourceAvailability, Subscription


class ReservationRepository:
    """Repository for reservation database operations"""

    @staticmethod
    def list_active_resources(db: Session) -> list[Resource]:
        return (
            db.query(Resource)
            .options(joinedload(Resource.availability))
            .filter(Resource.is_active.is_(True))
            .order_by(Resource.name.asc())
            .all()
        )

    @staticmethod
    def get_resource(db: Session, resource_id: int) -> Optional[Resource]:
        return db.query(Resource).filter(Resource.id == resource_id).first()

    @staticmethod
    def get_day_availability(db: Session, resource_id: int, day_of_week: int) -> list[ResourceAvailability]:
        """Active availability windows for a resource on a given day (0 = Sunday)"""
        return (
            db.query(ResourceAvailability)
            .filter(
                ResourceAvailability.resource_id == resource_id,
                ResourceAvailability.day_of_week == day_of_week,
                ResourceAvailability.is_active.is_(True),
            )
            .order_by(ResourceAvailability.start_time.asc())
            .all()
        )

    @staticmethod
    def find_overlapping(
        db: Session, resource_id: int, start_time: datetime, end_time: datetime
    ) -> Optional[Reservation]:
        """First non-cancelled reservation intersecting [start_time, end_time)"""
        return (
            db.query(Reservation)
            .filter(
                Reservation.resource_id == resource_id,
                Reservation.status != "cancelled",
                Reservation.start_time < end_time,
                Reservation.end_time > start_time,
            )
            .first()
        )

    @staticmethod
    def count_created_since(db: Session, user_id: int, since: datetime) -> int:
        return (
            db.query(Reservation)
            .filter(Reservation.user_id == user_id, Reservation.created_at >= since)
            .count()
        )

    @staticmethod
    def get_reservation(db: Session, reservation_id: int) -> Optional[Reservation]:
        return (
            db.query(Reservation)
            .options(joinedload(Reservation.resource))
            .filter(Reservation.id == reservation_id)
            .first()
        )

    @staticmethod
    def list_user_reservations(db: Session, user_id: int, status: Optional[str] = None) -> list[Reservation]:
        query = (
            db.query(Reservation)
            .options(joinedload(Reservation.resource))
            .filter(Reservation.user_id == user_id)
        )
        if status:
            query = query.filter(Reservation.status == status)
        return query.order_by(Reservation.start_time.desc()).all()

    @staticmethod
    def get_subscription(db: Session, user_id: int) -> Optional[Subscription]:
        return db.query(Subscription).filter(Subscription.user_id == user_id).first()
