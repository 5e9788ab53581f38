from datetime import datetime

import pytest
from conftest import login, make_plan, make_subscription, make_user

from reservapp.domain.billing import subscription_service
from reservapp.domain.billing.mercadopago_service import MercadoPagoError
from reservapp.domain.billing.penalty import calculate_penalty
from reservapp.domain.billing.reconciliation import apply_provider_status, map_provider_status
from reservapp.models import Subscription

# ============================================================================
# PENALTIES
# ============================================================================


def test_no_penalty_within_grace_period():
    result = calculate_penalty(10000, datetime(2030, 3, 1, 23, 0), datetime(2030, 3, 3, 1, 0))
    assert result.penalty_amount == 0
    assert result.days_late == 0
    assert result.within_grace_period is True


def test_no_penalty_when_paid_on_time():
    result = calculate_penalty(10000, datetime(2030, 3, 5), datetime(2030, 3, 1))
    assert result.penalty_amount == 0
    assert result.within_grace_period is False


def test_penalty_adds_daily_rate_after_grace():
    # 5 calendar days late, 2 of grace: 5% + 3 * 0.5%
    result = calculate_penalty(10000, datetime(2030, 3, 1), datetime(2030, 3, 6))
    assert result.days_late == 3
    assert result.penalty_rate == pytest.approx(0.065)
    assert result.penalty_amount == 650


def test_penalty_is_capped():
    result = calculate_penalty(9990, datetime(2030, 1, 1), datetime(2031, 1, 1))
    assert result.penalty_rate == 0.50
    assert result.penalty_amount == 4995


def test_penalty_rounds_half_up():
    # 1001 * 5.5% = 55.055
    result = calculate_penalty(1001, datetime(2030, 3, 1), datetime(2030, 3, 4))
    assert result.penalty_amount == 55


def test_penalty_exact_half_rounds_up():
    # 300 * 5.5% = 16.5
    result = calculate_penalty(300, datetime(2030, 3, 1), datetime(2030, 3, 4))
    assert result.penalty_rate == pytest.approx(0.055)
    assert result.penalty_amount == 17


# ============================================================================
# RECONCILIATION
# ============================================================================


@pytest.mark.parametrize(
    "provider_status, expected",
    [("authorized", "active"), ("paused", "suspended"), ("cancelled", "cancelled"), ("pending", None), ("x", None)],
)
def test_map_provider_status(provider_status, expected):
    assert map_provider_status(provider_status) == expected


def test_pending_provider_status_never_changes_subscription():
    subscription = Subscription(id=1, status="active", extra={"keep": True})
    result = apply_provider_status(subscription, {"id": "pre_1", "status": "pending"})
    assert result == {"previous_status": "active", "status": "active", "changed": False}
    assert subscription.extra == {"keep": True}


def test_authorized_activates_for_one_month():
    now = datetime(2030, 1, 31, 12, 0)
    subscription = Subscription(id=1, status="pending", extra={"scheduled_plan_change": {}})
    result = apply_provider_status(subscription, {"id": "pre_1", "status": "authorized"}, now=now)

    assert result["changed"] is True
    assert subscription.status == "active"
    assert subscription.mercadopago_sub_id == "pre_1"
    assert subscription.current_period_end == datetime(2030, 2, 28, 12, 0)
    assert subscription.next_billing_date == subscription.current_period_end
    assert subscription.extra is None


def test_cancelled_sets_cancelled_at_once():
    first = datetime(2030, 1, 1)
    subscription = Subscription(id=1, status="suspended", cancelled_at=first)
    apply_provider_status(subscription, {"status": "cancelled"}, now=datetime(2030, 2, 1))
    assert subscription.status == "cancelled"
    assert subscription.cancelled_at == first


# ============================================================================
# SUBSCRIPTION ENDPOINTS
# ============================================================================


@pytest.fixture
def provider(monkeypatch):
    """Stub the MercadoPago client used by the subscription service"""
    calls = []
    state = {"status": "authorized"}

    async def create_subscription_preference(**kwargs):
        calls.append(("create", kwargs))
        return {"id": "pre_123", "init_point": "https://mp.example/checkout/pre_123"}

    async def get_preapproval(preapproval_id):
        calls.append(("get", preapproval_id))
        return {"id": preapproval_id, "status": state["status"]}

    async def cancel_preapproval(preapproval_id):
        calls.append(("cancel", preapproval_id))
        raise MercadoPagoError("provider down")

    service = subscription_service.mercadopago_service
    monkeypatch.setattr(service, "create_subscription_preference", create_subscription_preference)
    monkeypatch.setattr(service, "get_preapproval", get_preapproval)
    monkeypatch.setattr(service, "cancel_preapproval", cancel_preapproval)
    return {"calls": calls, "state": state}


def test_list_plans_only_active_sorted_by_price(client, db):
    make_plan(db, name="Pro", price=30000)
    make_plan(db, name="Básico", price=10000)
    make_plan(db, name="Antiguo", price=5000, is_active=False)

    response = client.get("/api/subscription-plans")
    assert response.status_code == 200
    assert [p["name"] for p in response.json()["plans"]] == ["Básico", "Pro"]


def test_create_preference_creates_pending_subscription(client, db, provider):
    user = make_user(db)
    plan = make_plan(db)
    login(client, user)

    response = client.post("/api/subscriptions/create-preference", json={"plan_id": plan.id})
    assert response.status_code == 201
    assert response.json()["init_point"] == "https://mp.example/checkout/pre_123"

    subscription = db.query(Subscription).filter(Subscription.user_id == user.id).first()
    assert subscription.status == "pending"
    assert subscription.preference_id == "pre_123"
    assert subscription.plan_price == plan.price


def test_create_preference_rejects_active_subscriber(client, db, provider):
    user = make_user(db)
    plan = make_plan(db)
    make_subscription(db, user, plan)
    login(client, user)

    response = client.post("/api/subscriptions/create-preference", json={"plan_id": plan.id})
    assert response.status_code == 409


def test_verify_status_reconciles(client, db, provider):
    user = make_user(db)
    make_subscription(db, user, make_plan(db), status="pending", preference_id="pre_123")
    login(client, user)

    response = client.post("/api/subscriptions/verify-status")
    assert response.status_code == 200
    body = response.json()
    assert body["previous_status"] == "pending"
    assert body["status"] == "active"
    assert body["changed"] is True


def test_verify_status_pending_is_a_no_op(client, db, provider):
    provider["state"]["status"] = "pending"
    user = make_user(db)
    make_subscription(db, user, make_plan(db), status="suspended", preference_id="pre_123")
    login(client, user)

    body = client.post("/api/subscriptions/verify-status").json()
    assert body["status"] == "suspended"
    assert body["changed"] is False


def test_cancel_survives_provider_failure(client, db, provider, queued_emails):
    user = make_user(db)
    make_subscription(db, user, make_plan(db), mercadopago_sub_id="pre_123")
    login(client, user)

    response = client.post("/api/subscriptions/cancel")
    assert response.status_code == 200
    assert response.json()["subscription"]["status"] == "cancelled"
    assert ("cancel", "pre_123") in provider["calls"]
    assert queued_emails[-1]["email_type"] == "subscription_cancelled"


def test_downgrade_is_scheduled(client, db, provider):
    user = make_user(db)
    make_subscription(db, user, make_plan(db, name="Pro", price=30000))
    cheaper = make_plan(db, name="Básico", price=10000)
    login(client, user)

    response = client.post("/api/subscriptions/change-plan", json={"new_plan_id": cheaper.id})
    assert response.status_code == 200
    body = response.json()
    assert body["downgrade"]["applied_immediately"] is False
    assert body["subscription"]["metadata"]["scheduled_plan_change"]["new_plan_id"] == cheaper.id
