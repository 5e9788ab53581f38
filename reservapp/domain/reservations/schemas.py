"""Reservation domain schemas - Pydantic models for validation"""

from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel, field_validator, model_validator

from ...utils.dates import to_naive_utc, utcnow

MIN_DURATION = timedelta(minutes=30)
MAX_DURATION = timedelta(hours=8)


class ReservationCreate(BaseModel):
    """Schema for creating a reservation"""

    resource_id: int
    title: str
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    attendees: int = 1

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 3:
            raise ValueError("El título debe tener al menos 3 caracteres")
        if len(v) > 100:
            raise ValueError("El título no puede exceder 100 caracteres")
        return v

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if len(v) > 500:
            raise ValueError("La descripción no puede exceder 500 caracteres")
        return v

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_datetime(cls, v: datetime) -> datetime:
        return to_naive_utc(v)

    @field_validator("attendees")
    @classmethod
    def validate_attendees(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Debe haber al menos 1 asistente")
        if v > 100:
            raise ValueError("El número máximo de asistentes es 100")
        return v

    @model_validator(mode="after")
    def validate_times(self) -> "ReservationCreate":
        if self.end_time <= self.start_time:
            raise ValueError("La hora de finalización debe ser posterior a la hora de inicio")
        if self.start_time <= utcnow():
            raise ValueError("La reserva debe ser para una fecha futura")
        duration = self.end_time - self.start_time
        if duration < MIN_DURATION:
            raise ValueError("La duración mínima de una reserva es de 30 minutos")
        if duration > MAX_DURATION:
            raise ValueError("La duración máxima de una reserva es de 8 horas")
        return self
