"""Reservations router - FastAPI endpoints for resources and reservations"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user, get_optional_user
from ...database import get_db
from ...models import User
from .schemas import ReservationCreate
from .service import DEFAULT_SLOT_DURATION_MINUTES, ReservationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reservations", tags=["Reservations"])
resources_router = APIRouter(prefix="/api/resources", tags=["Resources"])


def get_reservation_service(db: Session = Depends(get_db)) -> ReservationService:
    """Dependency injection for ReservationService"""
    return ReservationService(db)


@resources_router.get("")
async def list_resources(service: ReservationService = Depends(get_reservation_service)):
    """Active resources with their weekly availability"""
    return service.list_resources()


@resources_router.get("/{resource_id}/availability")
async def get_availability(
    resource_id: int,
    date: Optional[str] = Query(None, description="Studio-local date, YYYY-MM-DD"),
    duration: int = Query(DEFAULT_SLOT_DURATION_MINUTES, description="Slot length in minutes"),
    service: ReservationService = Depends(get_reservation_service),
):
    if not date:
        raise HTTPException(status_code=400, detail='Parámetro "date" es requerido')
    try:
        day = datetime.strptime(date, "%Y-%m-%d").date()
    except ValueError:
        raise HTTPException(status_code=400, detail="Formato de fecha inválido")
    return service.get_availability_slots(resource_id, day, duration)


@router.get("")
async def list_reservations(
    status: Optional[str] = Query(None),
    user: User = Depends(get_current_user),
    service: ReservationService = Depends(get_reservation_service),
):
    """Current user's reservations, newest first"""
    return service.list_reservations(user, status)


@router.post("", status_code=201)
async def create_reservation(
    body: ReservationCreate,
    user: User = Depends(get_current_user),
    service: ReservationService = Depends(get_reservation_service),
):
    return await service.create_reservation(body, user)


@router.patch("/{reservation_id}/cancel")
async def cancel_reservation(
    reservation_id: int,
    user: Optional[User] = Depends(get_optional_user),
    service: ReservationService = Depends(get_reservation_service),
):
    """Cancel a confirmed reservation (24 hour notice)"""
    return await service.cancel_reservation(reservation_id, user)
