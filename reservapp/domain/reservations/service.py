"""Reservation service - Business logic for booking and cancelling resources"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import Reservation, User
from ...queue import enqueue_email_safely
from ...shared.serializers import iso, serialize_reservation, serialize_resource
from ...utils.dates import (
    hhmm,
    local_to_utc,
    local_weekday,
    minutes_of_day,
    to_local,
    utcnow,
    whole_hours_between,
)
from .repository import ReservationRepository
from .schemas import ReservationCreate

logger = logging.getLogger(__name__)

MAX_RESERVATIONS_PER_DAY = 10
CANCELLATION_NOTICE_HOURS = 24
SLOT_STEP_MINUTES = 30
DEFAULT_SLOT_DURATION_MINUTES = 60


class ReservationService:
    """Service for reservations and resource availability"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ReservationRepository()

    # ============================================================================
    # RESOURCES
    # ============================================================================

    def list_resources(self) -> dict:
        resources = self.repo.list_active_resources(self.db)
        data = []
        for resource in resources:
            item = serialize_resource(resource, include_availability=True)
            item["availability"] = [slot for slot in item["availability"] if slot["is_active"]]
            data.append(item)
        return {"resources": data}

    def get_availability_slots(
        self, resource_id: int, day: date, duration: int = DEFAULT_SLOT_DURATION_MINUTES
    ) -> dict:
        """
        Bookable slots for a studio-local date.

        Slots start every 30 minutes inside each availability window and last
        ``duration`` minutes; a slot that would run past the window end is not offered.
        """
        if duration < 1:
            raise HTTPException(status_code=400, detail="Duración inválida")

        resource = self.repo.get_resource(self.db, resource_id)
        if not resource or not resource.is_active:
            raise HTTPException(status_code=404, detail="Recurso no encontrado o no está activo")

        day_of_week = (day.weekday() + 1) % 7
        windows = self.repo.get_day_availability(self.db, resource_id, day_of_week)
        if not windows:
            return {"slots": [], "message": "El recurso no está disponible en este día"}

        slots = []
        for window in windows:
            window_start = minutes_of_day(window.start_time)
            window_end = minutes_of_day(window.end_time)
            current = window_start
            while current < window_end:
                if current + duration > window_end:
                    break
                local_start = datetime(day.year, day.month, day.day) + timedelta(minutes=current)
                slot_start = local_to_utc(local_start)
                slot_end = slot_start + timedelta(minutes=duration)
                conflict = self.repo.find_overlapping(self.db, resource_id, slot_start, slot_end)
                slots.append(
                    {
                        "start_time": iso(slot_start),
                        "end_time": iso(slot_end),
                        "available": conflict is None,
                    }
                )
                current += SLOT_STEP_MINUTES

        return {"slots": slots}

    def check_resource_availability(
        self, resource_id: int, start_time: datetime, end_time: datetime
    ) -> tuple[bool, Optional[str]]:
        """
        Returns (available, reason). Day of week and opening hours are
        evaluated in the studio timezone.
        """
        resource = self.repo.get_resource(self.db, resource_id)
        if not resource:
            return False, "El recurso no existe"
        if not resource.is_active:
            return False, "El recurso no está disponible actualmente"

        windows = self.repo.get_day_availability(self.db, resource_id, local_weekday(start_time))
        if not windows:
            return False, "El recurso no está disponible este día de la semana"

        local_start = to_local(start_time)
        local_end = to_local(end_time)
        start_str = hhmm(local_start)
        end_str = hhmm(local_end)
        # HH:MM comparison only holds within one local day
        crosses_midnight = local_end.date() != local_start.date()
        if crosses_midnight or not any(
            w.start_time <= start_str < w.end_time and end_str <= w.end_time for w in windows
        ):
            return (
                False,
                f"El recurso solo está disponible entre {windows[0].start_time} y {windows[0].end_time}",
            )

        if self.repo.find_overlapping(self.db, resource_id, start_time, end_time):
            return False, "El recurso ya está reservado para este horario"

        return True, None

    # ============================================================================
    # RESERVATIONS
    # ============================================================================

    def list_reservations(self, user: User, status: Optional[str] = None) -> dict:
        reservations = self.repo.list_user_reservations(self.db, user.id, status)
        return {"reservations": [serialize_reservation(r) for r in reservations]}

    def _require_bookable_subscription(self, user: User) -> None:
        subscription = self.repo.get_subscription(self.db, user.id)
        if not subscription:
            raise HTTPException(status_code=403, detail="Necesitas una suscripción activa para crear reservas")

        now = utcnow()
        is_active = subscription.status == "active"
        in_grace_period = (
            subscription.status == "past_due"
            and subscription.grace_period_end is not None
            and subscription.grace_period_end > now
        )
        if not is_active and not in_grace_period:
            raise HTTPException(
                status_code=403,
                detail={
                    "error": "Tu suscripción no está activa",
                    "details": {
                        "status": subscription.status,
                        "action": "Por favor, actualiza tu método de pago",
                    },
                },
            )

    async def create_reservation(self, body: ReservationCreate, user: User) -> dict:
        self._require_bookable_subscription(user)

        count = self.repo.count_created_since(self.db, user.id, utcnow() - timedelta(hours=24))
        if count >= MAX_RESERVATIONS_PER_DAY:
            raise HTTPException(
                status_code=429,
                detail={
                    "error": "Has alcanzado el límite de reservas diarias",
                    "details": {"count": count, "limit": MAX_RESERVATIONS_PER_DAY},
                },
            )

        available, reason = self.check_resource_availability(body.resource_id, body.start_time, body.end_time)
        if not available:
            raise HTTPException(status_code=409, detail=reason)

        reservation = Reservation(
            user_id=user.id,
            resource_id=body.resource_id,
            title=body.title,
            description=body.description,
            start_time=body.start_time,
            end_time=body.end_time,
            attendees=body.attendees,
            status="confirmed",
            extra={"created_from": "api"},
        )
        self.db.add(reservation)
        self.db.commit()
        self.db.refresh(reservation)

        logger.info(f"✅ Reservation {reservation.id} created by user {user.id} for resource {body.resource_id}")

        await enqueue_email_safely(
            to=user.email,
            subject="Reserva confirmada - Reservapp",
            template_name="reservation-confirmed",
            template_data=self._email_data(reservation, user),
            email_type="reservation_confirmed",
            user_id=user.id,
        )

        return {"reservation": serialize_reservation(reservation)}

    async def cancel_reservation(self, reservation_id: int, user: Optional[User]) -> dict:
        """
        Cancel a confirmed reservation at least 24 whole hours before it starts.

        Checks run in order: authentication, existence, ownership, status, notice period.
        """
        if user is None:
            raise HTTPException(status_code=401, detail="Debes iniciar sesión para cancelar una reserva")

        reservation = self.repo.get_reservation(self.db, reservation_id)
        if not reservation:
            raise HTTPException(status_code=404, detail="Reserva no encontrada")

        if reservation.user_id != user.id:
            raise HTTPException(status_code=403, detail="No tienes permiso para cancelar esta reserva")

        if reservation.status == "cancelled":
            raise HTTPException(status_code=400, detail="Esta reserva ya está cancelada")

        if reservation.status != "confirmed":
            raise HTTPException(
                status_code=400,
                detail={
                    "error": "Solo se pueden cancelar reservas confirmadas",
                    "details": {"current_status": reservation.status},
                },
            )

        now = utcnow()
        hours_until_start = whole_hours_between(now, reservation.start_time)
        if hours_until_start < CANCELLATION_NOTICE_HOURS:
            deadline = reservation.start_time - timedelta(hours=CANCELLATION_NOTICE_HOURS)
            raise HTTPException(
                status_code=400,
                detail={
                    "error": "No se puede cancelar con menos de 24 horas de anticipación",
                    "details": {
                        "cancellation_deadline": iso(deadline),
                        "hours_remaining": hours_until_start,
                        "policy": "Se requieren al menos 24 horas de anticipación para cancelar",
                    },
                },
            )

        reservation.status = "cancelled"
        reservation.updated_at = now
        self.db.commit()
        self.db.refresh(reservation)

        logger.info(f"🗑️ Reservation {reservation.id} cancelled by user {user.id}")

        template_data = self._email_data(reservation, user)
        template_data["cancelled_at"] = iso(now)
        await enqueue_email_safely(
            to=user.email,
            subject="Reserva cancelada - Reservapp",
            template_name="reservation-cancelled",
            template_data=template_data,
            email_type="reservation_cancelled",
            user_id=user.id,
        )

        return {
            "success": True,
            "message": "Reserva cancelada exitosamente",
            "reservation": {
                "id": reservation.id,
                "status": reservation.status,
                "updated_at": iso(reservation.updated_at),
            },
        }

    @staticmethod
    def _email_data(reservation: Reservation, user: User) -> dict:
        local_start = to_local(reservation.start_time)
        return {
            "name": user.name,
            "reservation_id": reservation.id,
            "resource_name": reservation.resource.name if reservation.resource else "",
            "title": reservation.title,
            "start_time": local_start.strftime("%d/%m/%Y %H:%M"),
            "end_time": hhmm(to_local(reservation.end_time)),
            "attendees": reservation.attendees,
        }
