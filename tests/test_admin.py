from datetime import timedelta

from conftest import login, make_plan, make_reservation, make_resource, make_subscription, make_user

from reservapp.models import Payment, SubscriptionPlan
from reservapp.utils.dates import utcnow

BOM = b"\xef\xbb\xbf"


def _admin(db, client):
    admin = make_user(db, email="admin@example.com", name="Admin", is_admin=True)
    login(client, admin)
    return admin


# ============================================================================
# ACCESS
# ============================================================================


def test_admin_routes_require_session(client, db):
    response = client.get("/api/admin/users")
    assert response.status_code == 401
    assert response.json() == {"error": "Authentication required"}


def test_admin_routes_reject_members(client, db):
    login(client, make_user(db))
    for path in ("/api/admin/users", "/api/admin/stats", "/api/admin/payments/export", "/api/admin/plans"):
        response = client.get(path)
        assert response.status_code == 403, path
        assert response.json()["error"] == "Admin access required"


# ============================================================================
# USERS
# ============================================================================


def test_list_users_paginates_and_filters(client, db):
    _admin(db, client)
    plan = make_plan(db)
    for index in range(3):
        user = make_user(db, email=f"member{index}@example.com", name=f"Member {index}")
        if index == 0:
            make_subscription(db, user, plan)

    response = client.get("/api/admin/users", params={"limit": 2, "page": 1})
    body = response.json()
    assert response.status_code == 200
    assert len(body["users"]) == 2
    assert body["pagination"] == {"total": 4, "page": 1, "limit": 2, "pages": 2}

    active = client.get("/api/admin/users", params={"subscription_status": "active"}).json()
    assert [u["email"] for u in active["users"]] == ["member0@example.com"]


def test_admin_cannot_demote_self(client, db):
    admin = _admin(db, client)
    response = client.patch(f"/api/admin/users/{admin.id}/promote", json={"is_admin": False})
    assert response.status_code == 400
    assert response.json()["error"] == "Cannot remove your own admin privileges"


def test_promote_user(client, db):
    _admin(db, client)
    member = make_user(db)
    response = client.patch(f"/api/admin/users/{member.id}/promote", json={"is_admin": True})
    assert response.status_code == 200
    db.refresh(member)
    assert member.is_admin is True


def test_manual_activation_and_suspension(client, db):
    _admin(db, client)
    member = make_user(db)
    plan = make_plan(db)

    activated = client.post(
        f"/api/admin/users/{member.id}/subscription",
        json={"action": "activate", "plan_id": plan.id, "start_date": "2030-01-31T00:00:00Z"},
    )
    assert activated.status_code == 200
    subscription = activated.json()["subscription"]
    assert subscription["status"] == "active"
    assert subscription["current_period_end"] == "2030-02-28T00:00:00Z"

    short_reason = client.post(
        f"/api/admin/users/{member.id}/subscription", json={"action": "suspend", "reason": "corto"}
    )
    assert short_reason.status_code == 400

    suspended = client.post(
        f"/api/admin/users/{member.id}/subscription",
        json={"action": "suspend", "reason": "Pago rechazado tres veces"},
    )
    assert suspended.status_code == 200
    assert suspended.json()["subscription"]["status"] == "suspended"


def test_unknown_subscription_action(client, db):
    _admin(db, client)
    member = make_user(db)
    response = client.post(f"/api/admin/users/{member.id}/subscription", json={"action": "refund"})
    assert response.status_code == 400
    assert response.json()["error"] == "Datos inválidos"


def test_override_subscription_status_validates(client, db):
    _admin(db, client)
    subscription = make_subscription(db, make_user(db), make_plan(db))

    invalid = client.patch(f"/api/admin/subscriptions/{subscription.id}", json={"status": "past_due"})
    assert invalid.status_code == 400
    assert invalid.json()["details"][0]["message"] == "Estado inválido. Use: active, suspended, cancelled"

    valid = client.patch(f"/api/admin/subscriptions/{subscription.id}", json={"status": "cancelled"})
    assert valid.status_code == 200
    assert valid.json()["subscription"]["status"] == "cancelled"


# ============================================================================
# EXPORTS
# ============================================================================


def test_empty_payment_export_has_only_header(client, db):
    _admin(db, client)
    response = client.get("/api/admin/payments/export")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert response.headers["content-disposition"].startswith('attachment; filename="pagos-')
    assert response.content.startswith(BOM)
    lines = response.content.decode("utf-8-sig").splitlines()
    assert lines == ["Fecha,Usuario,Email,Plan,Monto Base,Penalización,Total,Estado,MP ID,Pagado"]


def test_payment_export_rows(client, db):
    _admin(db, client)
    member = make_user(db)
    subscription = make_subscription(db, member, make_plan(db))
    db.add(
        Payment(
            user_id=member.id,
            subscription_id=subscription.id,
            mercadopago_id="pay_1",
            amount=10000,
            penalty_fee=650,
            total_amount=10650,
            status="approved",
            paid_at=utcnow(),
        )
    )
    db.commit()

    lines = client.get("/api/admin/payments/export").content.decode("utf-8-sig").splitlines()
    assert len(lines) == 2
    assert "10650" in lines[1]
    assert "pay_1" in lines[1]


def test_user_and_subscription_exports(client, db):
    _admin(db, client)
    users = client.get("/api/admin/users/export", params={"search": "nadie"})
    subscriptions = client.get("/api/admin/subscriptions/export")

    assert users.content.decode("utf-8-sig").splitlines() == [
        "Nombre,Email,Estado Suscripción,Plan,Admin,Fecha Registro"
    ]
    assert subscriptions.content.decode("utf-8-sig").splitlines() == [
        "Fecha,Usuario,Email,Plan,Precio,Estado,Inicio Período,Fin Período"
    ]


# ============================================================================
# STATS
# ============================================================================


def test_stats_metrics(client, db):
    _admin(db, client)
    member = make_user(db)
    plan = make_plan(db, price=12000)
    subscription = make_subscription(db, member, plan)
    db.add(
        Payment(
            user_id=member.id,
            subscription_id=subscription.id,
            amount=12000,
            total_amount=12000,
            status="approved",
            paid_at=utcnow(),
        )
    )
    db.add(
        Payment(
            user_id=member.id,
            subscription_id=subscription.id,
            amount=12000,
            total_amount=12000,
            status="rejected",
        )
    )
    db.commit()
    make_reservation(db, member, make_resource(db), utcnow() + timedelta(days=2))

    body = client.get("/api/admin/stats").json()
    metrics = body["metrics"]
    assert metrics["active_subscriptions"] == 1
    assert metrics["monthly_recurring_revenue"] == 12000
    assert metrics["payment_success_rate"] == 50.0
    assert metrics["failed_payments"] == 1
    assert metrics["upcoming_reservations"] == 1
    assert body["revenue_by_month"][0]["revenue"] == 12000
    assert body["recent_activity"]


# ============================================================================
# PLANS AND RESOURCES
# ============================================================================


def test_plan_with_subscriptions_cannot_be_deleted(client, db):
    _admin(db, client)
    plan = make_plan(db, name="Pro")
    make_subscription(db, make_user(db), plan, status="cancelled")

    response = client.delete(f"/api/admin/plans/{plan.id}")
    assert response.status_code == 409
    assert response.json()["error"].startswith('No se puede eliminar el plan "Pro"')
    assert db.query(SubscriptionPlan).count() == 1


def test_plan_crud(client, db):
    _admin(db, client)
    created = client.post(
        "/api/admin/plans",
        json={"name": "Estudio", "description": "Acceso a salas", "price": 25000, "features": ["Sala A"]},
    )
    assert created.status_code == 201
    plan_id = created.json()["plan"]["id"]

    toggled = client.patch(f"/api/admin/plans/{plan_id}", json={"is_active": False})
    assert toggled.json()["plan"]["is_active"] is False

    deleted = client.delete(f"/api/admin/plans/{plan_id}")
    assert deleted.status_code == 200
    assert db.query(SubscriptionPlan).count() == 0


def test_resource_with_future_reservations_cannot_be_deleted(client, db):
    _admin(db, client)
    resource = make_resource(db)
    make_reservation(db, make_user(db), resource, utcnow() + timedelta(days=1))

    response = client.delete(f"/api/admin/resources/{resource.id}")
    assert response.status_code == 409


def test_availability_windows(client, db):
    _admin(db, client)
    resource = make_resource(db, days=[])

    invalid = client.post(
        f"/api/admin/resources/{resource.id}/availability",
        json={"day_of_week": 1, "start_time": "18:00", "end_time": "09:00"},
    )
    assert invalid.status_code == 400

    created = client.post(
        f"/api/admin/resources/{resource.id}/availability",
        json={"day_of_week": 1, "start_time": "09:00", "end_time": "18:00"},
    )
    assert created.status_code == 201
    slot_id = created.json()["availability"]["id"]

    removed = client.delete(f"/api/admin/resources/{resource.id}/availability/{slot_id}")
    assert removed.status_code == 200
    missing = client.delete(f"/api/admin/resources/{resource.id}/availability/{slot_id}")
    assert missing.status_code == 404
    assert missing.json()["error"] == "Horario no encontrado"
