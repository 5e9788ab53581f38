"""Admin settings service - Subscription plans and bookable resources"""

import logging

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import Resource, ResourceAvailability, SubscriptionPlan, User
from ...shared.serializers import serialize_plan, serialize_resource
from ...utils.dates import utcnow
from .repository import AdminRepository
from .schemas import AvailabilityRequest, PlanRequest, ResourceRequest, ToggleActiveRequest

logger = logging.getLogger(__name__)

PLAN_DEFAULTS = {
    "grace_period_days": 2,
    "penalty_base_rate": 0.05,
    "penalty_daily_rate": 0.005,
    "penalty_max_rate": 0.50,
}


class AdminSettingsService:
    """Service for plan and resource configuration"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AdminRepository()

    # ============================================================================
    # PLANS
    # ============================================================================

    def _require_plan(self, plan_id: int) -> SubscriptionPlan:
        plan = self.repo.get_plan(self.db, plan_id)
        if not plan:
            raise HTTPException(status_code=404, detail="Plan no encontrado")
        return plan

    def list_plans(self) -> dict:
        plans = []
        for plan in self.repo.list_plans(self.db):
            item = serialize_plan(plan)
            item["subscription_count"] = self.repo.count_plan_subscriptions(self.db, plan.id)
            plans.append(item)
        return {"plans": plans}

    @staticmethod
    def _apply_plan(plan: SubscriptionPlan, body: PlanRequest) -> None:
        plan.name = body.name
        plan.description = body.description
        plan.price = body.price
        plan.interval = body.interval
        plan.features = body.features
        plan.is_active = body.is_active
        # Omitted penalty settings keep the current value (or the default on create)
        for field, default in PLAN_DEFAULTS.items():
            value = getattr(body, field)
            if value is not None:
                setattr(plan, field, value)
            elif getattr(plan, field) is None:
                setattr(plan, field, default)

    def create_plan(self, body: PlanRequest, admin: User) -> dict:
        plan = SubscriptionPlan()
        self._apply_plan(plan, body)
        self.db.add(plan)
        self.db.commit()
        self.db.refresh(plan)

        logger.info(f"✅ Admin {admin.email} created plan {plan.id} ({plan.name})")
        return {"plan": serialize_plan(plan)}

    def update_plan(self, plan_id: int, body: PlanRequest, admin: User) -> dict:
        plan = self._require_plan(plan_id)
        self._apply_plan(plan, body)
        plan.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(plan)

        logger.info(f"✏️ Admin {admin.email} updated plan {plan.id}")
        return {"plan": serialize_plan(plan)}

    def toggle_plan(self, plan_id: int, body: ToggleActiveRequest) -> dict:
        plan = self._require_plan(plan_id)
        plan.is_active = body.is_active
        self.db.commit()
        self.db.refresh(plan)
        return {"plan": serialize_plan(plan)}

    def delete_plan(self, plan_id: int, admin: User) -> dict:
        plan = self._require_plan(plan_id)

        count = self.repo.count_plan_subscriptions(self.db, plan.id)
        if count > 0:
            raise HTTPException(
                status_code=409,
                detail=(
                    f'No se puede eliminar el plan "{plan.name}" porque tiene {count} '
                    f"suscripción(es) activa(s). Desactívalo en su lugar."
                ),
            )

        self.db.delete(plan)
        self.db.commit()

        logger.info(f"🗑️ Admin {admin.email} deleted plan {plan_id}")
        return {"success": True}

    # ============================================================================
    # RESOURCES
    # ============================================================================

    def _require_resource(self, resource_id: int) -> Resource:
        resource = self.repo.get_resource(self.db, resource_id)
        if not resource:
            raise HTTPException(status_code=404, detail="Recurso no encontrado")
        return resource

    def list_resources(self) -> dict:
        return {
            "resources": [
                serialize_resource(r, include_availability=True) for r in self.repo.list_resources(self.db)
            ]
        }

    def create_resource(self, body: ResourceRequest, admin: User) -> dict:
        resource = Resource(
            name=body.name,
            type=body.type,
            description=body.description,
            capacity=body.capacity,
            is_active=body.is_active,
        )
        self.db.add(resource)
        self.db.commit()
        self.db.refresh(resource)

        logger.info(f"✅ Admin {admin.email} created resource {resource.id} ({resource.name})")
        return {"resource": serialize_resource(resource, include_availability=True)}

    def update_resource(self, resource_id: int, body: ResourceRequest) -> dict:
        resource = self._require_resource(resource_id)
        resource.name = body.name
        resource.type = body.type
        resource.description = body.description
        resource.capacity = body.capacity
        resource.is_active = body.is_active
        resource.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(resource)
        return {"resource": serialize_resource(resource, include_availability=True)}

    def toggle_resource(self, resource_id: int, body: ToggleActiveRequest) -> dict:
        resource = self._require_resource(resource_id)
        resource.is_active = body.is_active
        self.db.commit()
        self.db.refresh(resource)
        return {"resource": serialize_resource(resource)}

    def delete_resource(self, resource_id: int, admin: User) -> dict:
        resource = self._require_resource(resource_id)

        upcoming = self.repo.count_future_reservations(self.db, resource.id, utcnow())
        if upcoming > 0:
            raise HTTPException(
                status_code=409,
                detail=(
                    f'No se puede eliminar el recurso "{resource.name}" porque tiene {upcoming} '
                    f"reserva(s) futura(s) activa(s). Desactívalo en su lugar."
                ),
            )

        self.db.delete(resource)
        self.db.commit()

        logger.info(f"🗑️ Admin {admin.email} deleted resource {resource_id}")
        return {"success": True}

    def add_availability(self, resource_id: int, body: AvailabilityRequest) -> dict:
        resource = self._require_resource(resource_id)
        slot = ResourceAvailability(
            resource_id=resource.id,
            day_of_week=body.day_of_week,
            start_time=body.start_time,
            end_time=body.end_time,
            is_active=True,
        )
        self.db.add(slot)
        self.db.commit()
        self.db.refresh(slot)
        return {
            "availability": {
                "id": slot.id,
                "day_of_week": slot.day_of_week,
                "start_time": slot.start_time,
                "end_time": slot.end_time,
                "is_active": slot.is_active,
            }
        }

    def remove_availability(self, resource_id: int, slot_id: int) -> dict:
        slot = self.repo.get_availability_slot(self.db, resource_id, slot_id)
        if not slot:
            raise HTTPException(status_code=404, detail="Horario no encontrado")

        self.db.delete(slot)
        self.db.commit()
        return {"success": True}
