"""Admin service - User, subscription, payment and reservation oversight"""

import csv
import logging
from datetime import datetime, timedelta
from io import StringIO
from typing import Iterable, Optional

from fastapi import HTTPException
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from ...models import Payment, Reservation, Subscription, User
from ...shared.serializers import (
    iso,
    serialize_payment,
    serialize_reservation,
    serialize_subscription,
    serialize_user,
)
from ...utils.dates import add_months, add_years, format_date_cl, to_local, utcnow
from .repository import AdminRepository
from .schemas import (
    ActivateSubscriptionRequest,
    PromoteRequest,
    SubscriptionStatusUpdate,
    SuspendSubscriptionRequest,
)

logger = logging.getLogger(__name__)

CSV_BOM = "\ufeff"

USER_EXPORT_HEADER = ["Nombre", "Email", "Estado Suscripción", "Plan", "Admin", "Fecha Registro"]
SUBSCRIPTION_EXPORT_HEADER = [
    "Fecha",
    "Usuario",
    "Email",
    "Plan",
    "Precio",
    "Estado",
    "Inicio Período",
    "Fin Período",
]
PAYMENT_EXPORT_HEADER = [
    "Fecha",
    "Usuario",
    "Email",
    "Plan",
    "Monto Base",
    "Penalización",
    "Total",
    "Estado",
    "MP ID",
    "Pagado",
]


def build_csv_response(header: list[str], rows: Iterable[list], prefix: str) -> StreamingResponse:
    """UTF-8 CSV with BOM so spreadsheet apps detect the encoding"""
    output = StringIO()
    output.write(CSV_BOM)
    writer = csv.writer(output)
    writer.writerow(header)
    for row in rows:
        writer.writerow(row)

    filename = f"{prefix}-{utcnow().date().isoformat()}.csv"
    return StreamingResponse(
        iter([output.getvalue()]),
        media_type="text/csv; charset=utf-8",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "Cache-Control": "no-cache",
        },
    )


def _user_summary(user: Optional[User]) -> Optional[dict]:
    if user is None:
        return None
    return {"id": user.id, "name": user.name, "email": user.email}


class AdminService:
    """Service for the admin panel"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AdminRepository()

    # ============================================================================
    # USERS
    # ============================================================================

    @staticmethod
    def _user_list_item(user: User) -> dict:
        item = serialize_user(user)
        subscription = user.subscription
        item["subscription"] = (
            {
                "status": subscription.status,
                "plan_id": subscription.plan_id,
                "plan_name": subscription.plan.name if subscription.plan else None,
            }
            if subscription
            else None
        )
        return item

    def list_users(
        self,
        page: int,
        limit: int,
        search: Optional[str] = None,
        subscription_status: Optional[str] = None,
        is_admin: Optional[bool] = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> dict:
        query = self.repo.users_query(self.db, search, subscription_status, is_admin, sort_by, sort_order)
        users, pagination = self.repo.paginate(query, page, limit)
        return {"users": [self._user_list_item(u) for u in users], "pagination": pagination}

    def get_user_detail(self, user_id: int) -> dict:
        user = self.repo.get_user(self.db, user_id)
        if not user:
            raise HTTPException(status_code=404, detail="Usuario no encontrado")

        return {
            "user": serialize_user(user),
            "subscription": serialize_subscription(user.subscription) if user.subscription else None,
            "payments": [serialize_payment(p) for p in self.repo.recent_user_payments(self.db, user.id)],
            "reservations": [
                serialize_reservation(r) for r in self.repo.recent_user_reservations(self.db, user.id)
            ],
        }

    def promote_user(self, user_id: int, body: PromoteRequest, admin: User) -> dict:
        if user_id == admin.id and not body.is_admin:
            raise HTTPException(status_code=400, detail="Cannot remove your own admin privileges")

        user = self.repo.get_user(self.db, user_id)
        if not user:
            raise HTTPException(status_code=404, detail="User not found")

        user.is_admin = body.is_admin
        self.db.commit()
        self.db.refresh(user)

        logger.info(f"👑 Admin {admin.email} set is_admin={body.is_admin} for {user.email}")
        return {"user": serialize_user(user)}

    def manage_user_subscription(self, user_id: int, body, admin: User) -> dict:
        if isinstance(body, ActivateSubscriptionRequest):
            return self._activate_subscription(user_id, body, admin)
        if isinstance(body, SuspendSubscriptionRequest):
            return self._suspend_subscription(user_id, body, admin)
        raise HTTPException(status_code=400, detail="Acción inválida")

    def _activate_subscription(self, user_id: int, body: ActivateSubscriptionRequest, admin: User) -> dict:
        user = self.repo.get_user(self.db, user_id)
        if not user:
            raise HTTPException(status_code=404, detail="Usuario no encontrado")

        if user.subscription and user.subscription.status == "active":
            raise HTTPException(status_code=400, detail="El usuario ya tiene una suscripción activa")

        plan = self.repo.get_plan(self.db, body.plan_id)
        if not plan:
            raise HTTPException(status_code=404, detail="Plan no encontrado")

        start = body.start_date
        end = add_months(start, 1) if plan.interval == "monthly" else add_years(start, 1)

        subscription = user.subscription
        if subscription is None:
            subscription = Subscription(user_id=user.id)
            self.db.add(subscription)

        subscription.plan_id = plan.id
        subscription.plan_price = plan.price
        subscription.status = "active"
        subscription.current_period_start = start
        subscription.current_period_end = end
        subscription.next_billing_date = end
        subscription.grace_period_end = None
        subscription.cancelled_at = None
        subscription.extra = {**(subscription.extra or {}), "activated_by_admin": admin.id}
        self.db.commit()
        self.db.refresh(subscription)

        logger.info(f"✅ Admin {admin.email} activated plan {plan.id} for user {user.id}")
        return {"subscription": serialize_subscription(subscription)}

    def _suspend_subscription(self, user_id: int, body: SuspendSubscriptionRequest, admin: User) -> dict:
        user = self.repo.get_user(self.db, user_id)
        subscription = user.subscription if user else None
        if not subscription:
            raise HTTPException(status_code=404, detail="El usuario no tiene suscripción")

        now = utcnow()
        subscription.status = "suspended"
        subscription.current_period_end = body.end_date or now
        subscription.extra = {
            **(subscription.extra or {}),
            "suspension_reason": body.reason,
            "suspended_at": iso(now),
            "suspended_by": admin.id,
        }
        self.db.commit()
        self.db.refresh(subscription)

        logger.info(f"⏸️ Admin {admin.email} suspended subscription {subscription.id}")
        return {"subscription": serialize_subscription(subscription)}

    def export_users_csv(
        self,
        search: Optional[str] = None,
        subscription_status: Optional[str] = None,
        is_admin: Optional[bool] = None,
    ) -> StreamingResponse:
        users = self.repo.users_query(self.db, search, subscription_status, is_admin).all()
        rows = [
            [
                user.name,
                user.email,
                user.subscription.status if user.subscription else "Sin suscripción",
                user.subscription.plan.name if user.subscription and user.subscription.plan else "-",
                "Sí" if user.is_admin else "No",
                format_date_cl(user.created_at),
            ]
            for user in users
        ]
        logger.info(f"📊 Users CSV export: {len(rows)} rows")
        return build_csv_response(USER_EXPORT_HEADER, rows, "usuarios")

    # ============================================================================
    # SUBSCRIPTIONS
    # ============================================================================

    def list_subscriptions(
        self,
        page: int,
        limit: int,
        status: Optional[str] = None,
        search: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> dict:
        query = self.repo.subscriptions_query(self.db, status, search, start_date, end_date)
        subscriptions, pagination = self.repo.paginate(query, page, limit)
        data = []
        for subscription in subscriptions:
            item = serialize_subscription(subscription)
            item["user"] = _user_summary(subscription.user)
            data.append(item)
        return {"subscriptions": data, "pagination": pagination}

    def get_subscription_detail(self, subscription_id: int) -> dict:
        subscription = self.repo.get_subscription(self.db, subscription_id)
        if not subscription:
            raise HTTPException(status_code=404, detail="Suscripción no encontrada")

        data = serialize_subscription(subscription)
        data["user"] = _user_summary(subscription.user)
        data["cancelled_at"] = iso(subscription.cancelled_at)
        data["payments"] = [serialize_payment(p) for p in self.repo.subscription_payments(self.db, subscription.id)]
        return {"subscription": data}

    def override_subscription_status(self, subscription_id: int, body: SubscriptionStatusUpdate, admin: User) -> dict:
        subscription = self.repo.get_subscription(self.db, subscription_id)
        if not subscription:
            raise HTTPException(status_code=404, detail="Suscripción no encontrada")

        subscription.status = body.status
        if body.status == "cancelled":
            subscription.cancelled_at = utcnow()
        self.db.commit()

        logger.info(f"🔧 Admin {admin.email} set subscription {subscription.id} to {body.status}")
        return {"subscription": {"id": subscription.id, "status": subscription.status}}

    def export_subscriptions_csv(
        self,
        status: Optional[str] = None,
        search: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> StreamingResponse:
        subscriptions = self.repo.subscriptions_query(self.db, status, search, start_date, end_date).all()
        rows = [
            [
                format_date_cl(s.created_at),
                s.user.name,
                s.user.email,
                s.plan.name if s.plan else "-",
                s.plan_price,
                s.status,
                format_date_cl(s.current_period_start),
                format_date_cl(s.current_period_end),
            ]
            for s in subscriptions
        ]
        logger.info(f"📊 Subscriptions CSV export: {len(rows)} rows")
        return build_csv_response(SUBSCRIPTION_EXPORT_HEADER, rows, "suscripciones")

    # ============================================================================
    # PAYMENTS
    # ============================================================================

    @staticmethod
    def _payment_list_item(payment: Payment) -> dict:
        item = serialize_payment(payment)
        item["user"] = _user_summary(payment.user)
        plan = payment.subscription.plan if payment.subscription else None
        item["plan"] = {"name": plan.name} if plan else None
        return item

    def list_payments(
        self,
        page: int,
        limit: int,
        status: Optional[str] = None,
        search: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        user_id: Optional[int] = None,
    ) -> dict:
        query = self.repo.payments_query(self.db, status, search, start_date, end_date, user_id)
        payments, pagination = self.repo.paginate(query, page, limit)
        return {"payments": [self._payment_list_item(p) for p in payments], "pagination": pagination}

    def get_payment_detail(self, payment_id: int) -> dict:
        payment = self.repo.get_payment(self.db, payment_id)
        if not payment:
            raise HTTPException(status_code=404, detail="Pago no encontrado")

        item = self._payment_list_item(payment)
        item["metadata"] = payment.extra
        return {"payment": item}

    def export_payments_csv(
        self,
        status: Optional[str] = None,
        search: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        user_id: Optional[int] = None,
    ) -> StreamingResponse:
        payments = self.repo.payments_query(self.db, status, search, start_date, end_date, user_id).all()
        rows = []
        for p in payments:
            plan = p.subscription.plan if p.subscription else None
            rows.append(
                [
                    format_date_cl(p.created_at),
                    p.user.name,
                    p.user.email,
                    plan.name if plan else "-",
                    p.amount,
                    p.penalty_fee,
                    p.total_amount,
                    p.status,
                    p.mercadopago_id or "-",
                    format_date_cl(p.paid_at) or "-",
                ]
            )
        logger.info(f"📊 Payments CSV export: {len(rows)} rows")
        return build_csv_response(PAYMENT_EXPORT_HEADER, rows, "pagos")

    # ============================================================================
    # RESERVATIONS
    # ============================================================================

    def list_reservations(
        self,
        page: int,
        limit: int,
        status: Optional[str] = None,
        search: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        resource_id: Optional[int] = None,
    ) -> dict:
        query = self.repo.reservations_query(self.db, status, search, start_date, end_date, resource_id)
        reservations, pagination = self.repo.paginate(query, page, limit)
        data = []
        for reservation in reservations:
            item = serialize_reservation(reservation)
            item["user"] = _user_summary(reservation.user)
            data.append(item)
        return {"reservations": data, "pagination": pagination}

    def get_reservation_detail(self, reservation_id: int) -> dict:
        reservation = self.repo.get_reservation(self.db, reservation_id)
        if not reservation:
            raise HTTPException(status_code=404, detail="Reserva no encontrada")

        item = serialize_reservation(reservation)
        item["user"] = _user_summary(reservation.user)
        item["metadata"] = reservation.extra
        return {"reservation": item}

    # ============================================================================
    # STATS
    # ============================================================================

    def get_stats(self) -> dict:
        """
        Dashboard metrics.

        MRR sums the locked plan_price of active subscriptions, with yearly
        prices spread over 12 months. Revenue is grouped by studio-local month.
        """
        now = utcnow()
        thirty_days_ago = now - timedelta(days=30)
        twelve_months_ago = add_months(now, -12)

        mrr = 0
        for plan_price, interval in self.repo.active_subscription_prices(self.db):
            mrr += round(plan_price / 12) if interval == "yearly" else plan_price

        statuses = self.repo.payment_statuses_since(self.db, thirty_days_ago)
        approved = sum(1 for s in statuses if s == "approved")
        success_rate = round(approved / len(statuses) * 100, 1) if statuses else 0
        failed = sum(1 for s in statuses if s == "rejected")

        revenue: dict[str, dict] = {}
        for payment in self.repo.approved_payments_since(self.db, twelve_months_ago):
            month = to_local(payment.paid_at).strftime("%Y-%m")
            bucket = revenue.setdefault(month, {"month": month, "revenue": 0, "payments": 0})
            bucket["revenue"] += payment.total_amount
            bucket["payments"] += 1
        revenue_by_month = sorted(revenue.values(), key=lambda r: r["month"], reverse=True)[:12]

        return {
            "metrics": {
                "active_subscriptions": self.repo.count_active_subscriptions(self.db),
                "monthly_recurring_revenue": mrr,
                "payment_success_rate": success_rate,
                "upcoming_reservations": self.repo.count_upcoming_reservations(
                    self.db, now, now + timedelta(days=7)
                ),
                "failed_payments": failed,
            },
            "revenue_by_month": revenue_by_month,
            "recent_activity": self._recent_activity(),
        }

    def _recent_activity(self) -> list[dict]:
        events = []
        for sub in self.repo.recent(self.db, Subscription, status="active"):
            plan_name = sub.plan.name if sub.plan else ""
            events.append(
                {
                    "id": sub.id,
                    "type": "subscription",
                    "action": f"Nueva suscripción al plan {plan_name}",
                    "timestamp": iso(sub.created_at),
                    "metadata": {"user_name": sub.user.name, "plan_name": plan_name},
                }
            )
        for payment in self.repo.recent(self.db, Payment, status="approved"):
            events.append(
                {
                    "id": payment.id,
                    "type": "payment",
                    "action": "Pago aprobado",
                    "timestamp": iso(payment.paid_at or payment.created_at),
                    "metadata": {"user_name": payment.user.name, "amount": payment.total_amount},
                }
            )
        for reservation in self.repo.recent(self.db, Reservation):
            events.append(
                {
                    "id": reservation.id,
                    "type": "reservation",
                    "action": f"Nueva reserva en {reservation.resource.name}",
                    "timestamp": iso(reservation.created_at),
                    "metadata": {"user_name": reservation.user.name, "resource_name": reservation.resource.name},
                }
            )
        for user in self.repo.recent(self.db, User):
            events.append(
                {
                    "id": user.id,
                    "type": "user",
                    "action": "Nuevo usuario registrado",
                    "timestamp": iso(user.created_at),
                    "metadata": {"user_name": user.name},
                }
            )

        events.sort(key=lambda e: e["timestamp"] or "", reverse=True)
        return events[:20]
