import os
import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DB_LOG_SLOW_QUERIES", "false")
os.environ.setdefault("ALLOWED_ORIGINS", "http://localhost:3000")

from fastapi.testclient import TestClient  # noqa: E402

from reservapp import queue  # noqa: E402
from reservapp.config import SESSION_COOKIE_NAME  # noqa: E402
from reservapp.database import Base, SessionLocal, engine  # noqa: E402
from reservapp.models import (  # noqa: E402
    Reservation,
    Resource,
    ResourceAvailability,
    Subscription,
    SubscriptionPlan,
    User,
)
from reservapp.security_utils import create_session_token, hash_password  # noqa: E402
from reservapp.utils.dates import add_months, local_to_utc, local_today, utcnow  # noqa: E402

TEST_PASSWORD = "Secret123!"
_PASSWORD_HASH = hash_password(TEST_PASSWORD)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def queued_emails(monkeypatch):
    """Capture email jobs instead of talking to Redis"""
    jobs = []

    async def fake_enqueue_email(**kwargs):
        jobs.append(kwargs)
        return f"job-{len(jobs)}"

    monkeypatch.setattr(queue, "enqueue_email", fake_enqueue_email)
    return jobs


@pytest.fixture
def client(db):
    from reservapp.main import app

    return TestClient(app)


def login(client, user):
    client.cookies.set(SESSION_COOKIE_NAME, create_session_token(user.id, user.email))


def make_user(db, email="ana@example.com", name="Ana", is_admin=False, verified=True):
    user = User(
        email=email,
        name=name,
        password_hash=_PASSWORD_HASH,
        email_verified=verified,
        is_admin=is_admin,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_plan(db, name="Mensual", price=10000, **kwargs):
    plan = SubscriptionPlan(name=name, description="Plan de prueba", price=price, features=["Salas"], **kwargs)
    db.add(plan)
    db.commit()
    db.refresh(plan)
    return plan


def make_subscription(db, user, plan, status="active", **kwargs):
    now = utcnow()
    fields = {
        "current_period_start": now,
        "current_period_end": add_months(now, 1),
        "next_billing_date": add_months(now, 1),
    }
    fields.update(kwargs)
    subscription = Subscription(user_id=user.id, plan_id=plan.id, plan_price=plan.price, status=status, **fields)
    db.add(subscription)
    db.commit()
    db.refresh(subscription)
    return subscription


def make_resource(db, name="Sala A", open_time="08:00", close_time="20:00", days=range(7)):
    resource = Resource(name=name, type="room", description="Sala de ensayo", capacity=6)
    db.add(resource)
    db.flush()
    for day in days:
        db.add(
            ResourceAvailability(
                resource_id=resource.id, day_of_week=day, start_time=open_time, end_time=close_time
            )
        )
    db.commit()
    db.refresh(resource)
    return resource


def make_reservation(db, user, resource, start_time, hours=1, status="confirmed"):
    reservation = Reservation(
        user_id=user.id,
        resource_id=resource.id,
        title="Ensayo",
        start_time=start_time,
        end_time=start_time + timedelta(hours=hours),
        status=status,
    )
    db.add(reservation)
    db.commit()
    db.refresh(reservation)
    return reservation


def local_slot(days_ahead=3, hour=10):
    """Naive UTC start of a studio-local wall-clock hour a few days out"""
    day = local_today() + timedelta(days=days_ahead)
    return local_to_utc(datetime(day.year, day.month, day.day, hour))


def iso_z(value):
    return f"{value.isoformat()}Z"
