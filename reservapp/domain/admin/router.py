"""Admin router - FastAPI endpoints for the admin panel"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from ...auth import require_admin
from ...database import get_db
from ...models import User
from ...utils.dates import to_naive_utc
from .schemas import (
    AvailabilityRequest,
    ManageSubscriptionRequest,
    PlanRequest,
    PromoteRequest,
    ResourceRequest,
    SubscriptionStatusUpdate,
    ToggleActiveRequest,
)
from .service import AdminService
from .settings_service import AdminSettingsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["Admin"])


def get_admin_service(db: Session = Depends(get_db)) -> AdminService:
    """Dependency injection for AdminService"""
    return AdminService(db)


def get_settings_service(db: Session = Depends(get_db)) -> AdminSettingsService:
    return AdminSettingsService(db)


def _range(start_date: Optional[datetime], end_date: Optional[datetime]):
    return (
        to_naive_utc(start_date) if start_date else None,
        to_naive_utc(end_date) if end_date else None,
    )


# ============================================================================
# USERS
# ============================================================================


@router.get("/users")
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None),
    subscription_status: Optional[str] = Query(None, pattern="^(active|inactive|none)$"),
    is_admin: Optional[bool] = Query(None),
    sort_by: str = Query("created_at", pattern="^(created_at|name|email)$"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    admin: User = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    return service.list_users(page, limit, search, subscription_status, is_admin, sort_by, sort_order)


@router.get("/users/export")
async def export_users(
    search: Optional[str] = Query(None),
    subscription_status: Optional[str] = Query(None, pattern="^(active|inactive|none)$"),
    is_admin: Optional[bool] = Query(None),
    admin: User = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    """CSV export of users matching the list filters"""
    return service.export_users_csv(search, subscription_status, is_admin)


@router.get("/users/{user_id}")
async def get_user(
    user_id: int,
    admin: User = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    return service.get_user_detail(user_id)


@router.patch("/users/{user_id}/promote")
async def promote_user(
    user_id: int,
    body: PromoteRequest,
    admin: User = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    """Grant or revoke admin privileges"""
    return service.promote_user(user_id, body, admin)


@router.post("/users/{user_id}/subscription")
async def manage_user_subscription(
    user_id: int,
    body: ManageSubscriptionRequest = Body(...),
    admin: User = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    """Manually activate (plan + start date) or suspend (reason) a subscription"""
    return service.manage_user_subscription(user_id, body, admin)


# ============================================================================
# SUBSCRIPTIONS
# ============================================================================


@router.get("/subscriptions")
async def list_subscriptions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    admin: User = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    start, end = _range(start_date, end_date)
    return service.list_subscriptions(page, limit, status, search, start, end)


@router.get("/subscriptions/export")
async def export_subscriptions(
    status: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    admin: User = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    start, end = _range(start_date, end_date)
    return service.export_subscriptions_csv(status, search, start, end)


@router.get("/subscriptions/{subscription_id}")
async def get_subscription(
    subscription_id: int,
    admin: User = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    return service.get_subscription_detail(subscription_id)


@router.patch("/subscriptions/{subscription_id}")
async def override_subscription_status(
    subscription_id: int,
    body: SubscriptionStatusUpdate,
    admin: User = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    return service.override_subscription_status(subscription_id, body, admin)


# ============================================================================
# PAYMENTS
# ============================================================================


@router.get("/payments")
async def list_payments(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    user_id: Optional[int] = Query(None),
    admin: User = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    start, end = _range(start_date, end_date)
    return service.list_payments(page, limit, status, search, start, end, user_id)


@router.get("/payments/export")
async def export_payments(
    status: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    user_id: Optional[int] = Query(None),
    admin: User = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    start, end = _range(start_date, end_date)
    return service.export_payments_csv(status, search, start, end, user_id)


@router.get("/payments/{payment_id}")
async def get_payment(
    payment_id: int,
    admin: User = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    return service.get_payment_detail(payment_id)


# ============================================================================
# RESERVATIONS
# ============================================================================


@router.get("/reservations")
async def list_reservations(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    resource_id: Optional[int] = Query(None),
    admin: User = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    start, end = _range(start_date, end_date)
    return service.list_reservations(page, limit, status, search, start, end, resource_id)


@router.get("/reservations/{reservation_id}")
async def get_reservation(
    reservation_id: int,
    admin: User = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    return service.get_reservation_detail(reservation_id)


# ============================================================================
# STATS
# ============================================================================


@router.get("/stats")
async def get_stats(
    admin: User = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    """Dashboard metrics, revenue by month and recent activity"""
    return service.get_stats()


# ============================================================================
# PLANS
# ============================================================================


@router.get("/plans")
async def list_plans(
    admin: User = Depends(require_admin),
    service: AdminSettingsService = Depends(get_settings_service),
):
    return service.list_plans()


@router.post("/plans", status_code=201)
async def create_plan(
    body: PlanRequest,
    admin: User = Depends(require_admin),
    service: AdminSettingsService = Depends(get_settings_service),
):
    return service.create_plan(body, admin)


@router.put("/plans/{plan_id}")
async def update_plan(
    plan_id: int,
    body: PlanRequest,
    admin: User = Depends(require_admin),
    service: AdminSettingsService = Depends(get_settings_service),
):
    return service.update_plan(plan_id, body, admin)


@router.patch("/plans/{plan_id}")
async def toggle_plan(
    plan_id: int,
    body: ToggleActiveRequest,
    admin: User = Depends(require_admin),
    service: AdminSettingsService = Depends(get_settings_service),
):
    return service.toggle_plan(plan_id, body)


@router.delete("/plans/{plan_id}")
async def delete_plan(
    plan_id: int,
    admin: User = Depends(require_admin),
    service: AdminSettingsService = Depends(get_settings_service),
):
    """Plans that still have subscriptions can only be deactivated"""
    return service.delete_plan(plan_id, admin)


# ============================================================================
# RESOURCES
# ============================================================================


@router.get("/resources")
async def list_resources(
    admin: User = Depends(require_admin),
    service: AdminSettingsService = Depends(get_settings_service),
):
    return service.list_resources()


@router.post("/resources", status_code=201)
async def create_resource(
    body: ResourceRequest,
    admin: User = Depends(require_admin),
    service: AdminSettingsService = Depends(get_settings_service),
):
    return service.create_resource(body, admin)


@router.put("/resources/{resource_id}")
async def update_resource(
    resource_id: int,
    body: ResourceRequest,
    admin: User = Depends(require_admin),
    service: AdminSettingsService = Depends(get_settings_service),
):
    return service.update_resource(resource_id, body)


@router.patch("/resources/{resource_id}")
async def toggle_resource(
    resource_id: int,
    body: ToggleActiveRequest,
    admin: User = Depends(require_admin),
    service: AdminSettingsService = Depends(get_settings_service),
):
    return service.toggle_resource(resource_id, body)


@router.delete("/resources/{resource_id}")
async def delete_resource(
    resource_id: int,
    admin: User = Depends(require_admin),
    service: AdminSettingsService = Depends(get_settings_service),
):
    return service.delete_resource(resource_id, admin)


@router.post("/resources/{resource_id}/availability", status_code=201)
async def add_availability(
    resource_id: int,
    body: AvailabilityRequest,
    admin: User = Depends(require_admin),
    service: AdminSettingsService = Depends(get_settings_service),
):
    return service.add_availability(resource_id, body)


@router.delete("/resources/{resource_id}/availability/{slot_id}")
async def remove_availability(
    resource_id: int,
    slot_id: int,
    admin: User = Depends(require_admin),
    service: AdminSettingsService = Depends(get_settings_service),
):
    return service.remove_availability(resource_id, slot_id)
