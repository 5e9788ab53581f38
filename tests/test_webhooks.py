import time

import pytest
from conftest import make_plan, make_subscription, make_user

from reservapp import webhook_security
from reservapp.domain.webhooks import service as webhook_service
from reservapp.domain.webhooks.service import resolve_event_type
from reservapp.models import Payment, WebhookEvent
from reservapp.webhook_security import (
    build_signature_manifest,
    compute_hmac_sha256,
    verify_mercadopago_signature,
)

SECRET = "whsec_test"


def _signature(data_id, event_type, ts=None, secret=SECRET):
    ts = str(ts or int(time.time()))
    digest = compute_hmac_sha256(secret, build_signature_manifest(data_id, event_type, ts).encode("utf-8"))
    return f"ts={ts},v1={digest}"


@pytest.fixture
def provider(monkeypatch):
    payments = {}
    calls = []

    async def get_payment(payment_id):
        calls.append(payment_id)
        return payments[payment_id]

    async def get_preapproval(preapproval_id):
        return {"id": preapproval_id, "status": "paused"}

    service = webhook_service.mercadopago_service
    monkeypatch.setattr(service, "get_payment", get_payment)
    monkeypatch.setattr(service, "get_preapproval", get_preapproval)
    return {"payments": payments, "calls": calls}


def _payment_event(event_id="evt_1", payment_id="pay_1"):
    return {"id": event_id, "type": "payment", "action": "payment.updated", "data": {"id": payment_id}}


# ============================================================================
# SIGNATURES
# ============================================================================


def test_valid_signature():
    header = _signature("pay_1", "payment")
    assert verify_mercadopago_signature(header, "pay_1", "payment", secret=SECRET) is True


def test_signature_for_other_resource_is_rejected():
    header = _signature("pay_1", "payment")
    assert verify_mercadopago_signature(header, "pay_2", "payment", secret=SECRET) is False


def test_stale_signature_is_rejected():
    header = _signature("pay_1", "payment", ts=int(time.time()) - 3600)
    assert verify_mercadopago_signature(header, "pay_1", "payment", secret=SECRET) is False


def test_missing_header_or_secret():
    assert verify_mercadopago_signature(None, "pay_1", "payment", secret=SECRET) is False
    assert verify_mercadopago_signature(_signature("pay_1", "payment"), "pay_1", "payment", secret="") is False


@pytest.mark.parametrize(
    "event, expected",
    [
        ({"type": "payment", "action": "payment.created"}, "payment.created"),
        ({"type": "payment", "action": "updated"}, "payment.updated"),
        ({"type": "subscription_preapproval", "action": "updated"}, "subscription.updated"),
        ({"type": "plan"}, "plan"),
    ],
)
def test_resolve_event_type(event, expected):
    assert resolve_event_type(event) == expected


def test_webhook_rejects_bad_signature(client, db, monkeypatch):
    monkeypatch.setattr(webhook_security, "MERCADOPAGO_WEBHOOK_SECRET", SECRET)

    response = client.post("/api/webhooks/mercadopago", json=_payment_event(), headers={"x-signature": "ts=1,v1=x"})
    assert response.status_code == 401
    assert response.json()["error"] == "Invalid signature"
    assert db.query(WebhookEvent).count() == 0


def test_webhook_rejects_invalid_json(client, db):
    response = client.post(
        "/api/webhooks/mercadopago", content=b"{not json", headers={"content-type": "application/json"}
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid JSON"


@pytest.mark.parametrize("body", [b"[1,2]", b'"x"', b"42"])
def test_webhook_rejects_non_object_json(client, db, body):
    response = client.post("/api/webhooks/mercadopago", content=body, headers={"content-type": "application/json"})
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid JSON"


@pytest.mark.parametrize("event_id", [None, "", "  "])
def test_webhook_requires_event_id(client, db, provider, event_id):
    event = _payment_event(payment_id="pay_1")
    if event_id is None:
        del event["id"]
    else:
        event["id"] = event_id

    response = client.post("/api/webhooks/mercadopago", json=event)
    assert response.status_code == 400
    assert response.json()["error"] == "Missing event id"
    assert db.query(WebhookEvent).count() == 0
    assert provider["calls"] == []


def test_events_with_distinct_ids_are_each_processed(client, db, provider):
    user = make_user(db)
    plan = make_plan(db)
    make_subscription(db, user, plan, status="pending")
    for payment_id in ("pay_1", "pay_2"):
        provider["payments"][payment_id] = {
            "id": payment_id,
            "status": "approved",
            "transaction_amount": 10000.0,
            "external_reference": f"{user.id}-{plan.id}",
        }

    first = client.post("/api/webhooks/mercadopago", json=_payment_event("evt_a", "pay_1"))
    second = client.post("/api/webhooks/mercadopago", json=_payment_event("evt_b", "pay_2"))

    assert first.json()["processed"] is True
    assert second.json()["processed"] is True
    assert db.query(Payment).count() == 2


# ============================================================================
# PROCESSING
# ============================================================================


def test_approved_payment_activates_subscription_once(client, db, monkeypatch, provider, queued_emails):
    monkeypatch.setattr(webhook_security, "MERCADOPAGO_WEBHOOK_SECRET", SECRET)
    user = make_user(db)
    plan = make_plan(db)
    subscription = make_subscription(db, user, plan, status="pending")
    provider["payments"]["pay_1"] = {
        "id": "pay_1",
        "status": "approved",
        "transaction_amount": 10000.0,
        "external_reference": f"{user.id}-{plan.id}",
        "date_approved": "2030-03-01T10:00:00.000-03:00",
    }
    headers = {"x-signature": _signature("pay_1", "payment")}

    first = client.post("/api/webhooks/mercadopago", json=_payment_event(), headers=headers)
    second = client.post("/api/webhooks/mercadopago", json=_payment_event(), headers=headers)

    assert first.status_code == 200
    assert first.json()["processed"] is True
    assert second.json()["duplicate"] is True
    assert provider["calls"] == ["pay_1"]

    db.refresh(subscription)
    assert subscription.status == "active"
    payments = db.query(Payment).all()
    assert len(payments) == 1
    assert payments[0].total_amount == 10000
    assert payments[0].status == "approved"
    assert [job["email_type"] for job in queued_emails] == ["payment_success"]


def test_rejected_payment_changes_nothing(client, db, provider):
    user = make_user(db)
    plan = make_plan(db)
    subscription = make_subscription(db, user, plan, status="pending")
    provider["payments"]["pay_1"] = {"id": "pay_1", "status": "rejected", "external_reference": f"{user.id}-{plan.id}"}

    response = client.post("/api/webhooks/mercadopago", json=_payment_event())
    assert response.json()["success"] is True

    db.refresh(subscription)
    assert subscription.status == "pending"
    assert db.query(Payment).count() == 0


def test_overdue_checkout_settles_payment(client, db, provider):
    user = make_user(db)
    plan = make_plan(db)
    subscription = make_subscription(db, user, plan, status="past_due")
    overdue = Payment(
        user_id=user.id, subscription_id=subscription.id, amount=10000, penalty_fee=650, total_amount=10650
    )
    db.add(overdue)
    db.commit()
    provider["payments"]["pay_9"] = {
        "id": "pay_9",
        "status": "approved",
        "external_reference": f"overdue-{overdue.id}-{user.id}",
    }

    client.post("/api/webhooks/mercadopago", json=_payment_event(payment_id="pay_9"))

    db.refresh(overdue)
    db.refresh(subscription)
    assert overdue.status == "approved"
    assert overdue.paid_at is not None
    assert subscription.status == "active"


def test_subscription_event_reconciles(client, db, provider):
    user = make_user(db)
    subscription = make_subscription(db, user, make_plan(db), mercadopago_sub_id="pre_77")
    event = {"id": "evt_2", "type": "subscription_preapproval", "action": "updated", "data": {"id": "pre_77"}}

    response = client.post("/api/webhooks/mercadopago", json=event)
    assert response.json()["processed"] is True

    db.refresh(subscription)
    assert subscription.status == "suspended"
    assert db.query(WebhookEvent).filter(WebhookEvent.event_id == "evt_2").first().event_type == "subscription.updated"


def test_processing_error_is_acknowledged_and_retryable(client, db, provider):
    # No provider payment registered: the handler raises KeyError
    response = client.post("/api/webhooks/mercadopago", json=_payment_event(payment_id="missing"))
    assert response.status_code == 200
    assert response.json()["success"] is False

    event = db.query(WebhookEvent).filter(WebhookEvent.event_id == "evt_1").first()
    assert event is not None
    assert event.processed is False


def test_webhook_info(client, db):
    response = client.get("/api/webhooks/mercadopago")
    assert response.status_code == 200
    assert "payment.updated" in response.json()["events"]
