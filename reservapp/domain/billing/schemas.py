"""Billing domain schemas - Pydantic models for validation"""

from typing import Optional

from pydantic import BaseModel, field_validator


class CreatePreferenceRequest(BaseModel):
    """Schema for starting a MercadoPago subscription checkout"""

    plan_id: int


class ReactivateRequest(BaseModel):
    """Schema for reactivating a cancelled, suspended or pending subscription"""

    new_plan_id: Optional[int] = None


class ChangePlanRequest(BaseModel):
    """Schema for changing subscription plan"""

    new_plan_id: int


class PayOverdueRequest(BaseModel):
    """Schema for paying an overdue payment"""

    payment_id: int

    @field_validator("payment_id")
    @classmethod
    def validate_payment_id(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Payment ID is required")
        return v


class VerifyStatusResponse(BaseModel):
    """Schema for reconciliation result"""

    success: bool = True
    subscription_id: int
    previous_status: str
    status: str
    changed: bool
    provider_id: Optional[str] = None
    provider_status: Optional[str] = None
