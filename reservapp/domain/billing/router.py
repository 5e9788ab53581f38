"""Billing router - FastAPI endpoints for plans and subscriptions"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from .schemas import (
    ChangePlanRequest,
    CreatePreferenceRequest,
    PayOverdueRequest,
    ReactivateRequest,
    VerifyStatusResponse,
)
from .subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/subscriptions", tags=["Subscriptions"])
plans_router = APIRouter(prefix="/api/subscription-plans", tags=["Subscriptions"])


def get_subscription_service(db: Session = Depends(get_db)) -> SubscriptionService:
    """Dependency injection for SubscriptionService"""
    return SubscriptionService(db)


@plans_router.get("")
async def list_plans(service: SubscriptionService = Depends(get_subscription_service)):
    """Active subscription plans"""
    return service.list_plans()


# ============================================================================
# SUBSCRIPTION MANAGEMENT
# ============================================================================


@router.get("/current")
async def get_current_subscription(
    user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Get current subscription with plan and recent payments"""
    return service.get_current(user)


@router.post("/create-preference", status_code=201)
async def create_preference(
    body: CreatePreferenceRequest,
    user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Create a MercadoPago subscription checkout"""
    return await service.create_preference(body, user)


@router.post("/verify-status", response_model=VerifyStatusResponse)
async def verify_status(
    user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Sync local subscription status with MercadoPago"""
    return await service.verify_status(user)


@router.post("/cancel")
async def cancel_subscription(
    user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Cancel subscription"""
    return await service.cancel(user)


@router.post("/reactivate")
async def reactivate_subscription(
    body: Optional[ReactivateRequest] = None,
    user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Body is optional; without new_plan_id the previous plan is reused"""
    return await service.reactivate(body or ReactivateRequest(), user)


@router.post("/change-plan")
async def change_subscription_plan(
    body: ChangePlanRequest,
    user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Upgrade now or schedule a downgrade"""
    return await service.change_plan(body, user)


@router.post("/pay-overdue")
async def pay_overdue(
    body: PayOverdueRequest,
    user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    return await service.pay_overdue(body, user)
