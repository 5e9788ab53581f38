"""Admin domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from ...shared.validators import validate_hhmm
from ...utils.dates import to_naive_utc

RESOURCE_TYPES = ("room", "equipment", "service")
PLAN_INTERVALS = ("monthly", "yearly")
OVERRIDE_STATUSES = ("active", "suspended", "cancelled")


class PromoteRequest(BaseModel):
    is_admin: bool


class ActivateSubscriptionRequest(BaseModel):
    action: Literal["activate"]
    plan_id: int
    start_date: datetime

    @field_validator("start_date")
    @classmethod
    def normalize_start(cls, v: datetime) -> datetime:
        return to_naive_utc(v)


class SuspendSubscriptionRequest(BaseModel):
    action: Literal["suspend"]
    reason: str = Field(min_length=10, max_length=500)
    end_date: Optional[datetime] = None  # Suspend immediately when omitted

    @field_validator("end_date")
    @classmethod
    def normalize_end(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v) if v else v


ManageSubscriptionRequest = Annotated[
    Union[ActivateSubscriptionRequest, SuspendSubscriptionRequest],
    Field(discriminator="action"),
]


class SubscriptionStatusUpdate(BaseModel):
    status: str

    @field_validator("status")
    @classmethod
    def check_status(cls, v: str) -> str:
        if v not in OVERRIDE_STATUSES:
            raise ValueError("Estado inválido. Use: active, suspended, cancelled")
        return v


class ToggleActiveRequest(BaseModel):
    is_active: bool


class PlanRequest(BaseModel):
    """Create or fully replace a subscription plan"""

    name: str
    description: str
    price: int
    interval: str = "monthly"
    features: list[str] = []
    is_active: bool = True
    grace_period_days: Optional[int] = None
    penalty_base_rate: Optional[float] = None
    penalty_daily_rate: Optional[float] = None
    penalty_max_rate: Optional[float] = None

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("El nombre es requerido")
        return v

    @field_validator("description")
    @classmethod
    def check_description(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("La descripción es requerida")
        return v

    @field_validator("price")
    @classmethod
    def check_price(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("El precio debe ser un número positivo")
        return v

    @field_validator("interval")
    @classmethod
    def check_interval(cls, v: str) -> str:
        if v not in PLAN_INTERVALS:
            raise ValueError("El intervalo debe ser monthly o yearly")
        return v

    @field_validator("grace_period_days")
    @classmethod
    def clamp_grace(cls, v: Optional[int]) -> Optional[int]:
        return max(0, v) if v is not None else v

    @field_validator("penalty_base_rate", "penalty_daily_rate", "penalty_max_rate")
    @classmethod
    def check_rate(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and not 0 <= v <= 1:
            raise ValueError("Las tasas de recargo deben estar entre 0 y 1")
        return v


class ResourceRequest(BaseModel):
    """Create or fully replace a resource"""

    name: str
    type: str
    description: Optional[str] = None
    capacity: Optional[int] = None
    is_active: bool = True

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("El nombre es requerido")
        return v

    @field_validator("type")
    @classmethod
    def check_type(cls, v: str) -> str:
        if v not in RESOURCE_TYPES:
            raise ValueError("El tipo debe ser room, equipment o service")
        return v

    @field_validator("capacity")
    @classmethod
    def check_capacity(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 1:
            raise ValueError("La capacidad debe ser al menos 1")
        return v


class AvailabilityRequest(BaseModel):
    day_of_week: int
    start_time: str
    end_time: str

    @field_validator("day_of_week")
    @classmethod
    def check_day(cls, v: int) -> int:
        if not 0 <= v <= 6:
            raise ValueError("El día de la semana debe ser un número entre 0 y 6")
        return v

    @field_validator("start_time", "end_time")
    @classmethod
    def check_time(cls, v: str) -> str:
        return validate_hhmm(v)

    @model_validator(mode="after")
    def check_range(self) -> "AvailabilityRequest":
        if self.start_time >= self.end_time:
            raise ValueError("La hora de inicio debe ser anterior a la hora de fin")
        return self
