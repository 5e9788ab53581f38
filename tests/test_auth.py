from datetime import timedelta

from conftest import TEST_PASSWORD, login, make_user

from reservapp.config import SESSION_COOKIE_NAME
from reservapp.models import User
from reservapp.utils.dates import utcnow


def _register(client, email="ana@example.com", password="Secret123!", name="Ana Pérez"):
    return client.post("/api/auth/register", json={"email": email, "password": password, "name": name})


def test_first_registered_user_is_admin(client, db, queued_emails):
    first = _register(client, email="Owner@Example.com")
    second = _register(client, email="member@example.com")

    assert first.status_code == 201
    assert first.json()["user"]["is_admin"] is True
    assert first.json()["user"]["email"] == "owner@example.com"
    assert second.json()["user"]["is_admin"] is False
    assert [job["template_name"] for job in queued_emails] == ["verify-email", "verify-email"]


def test_register_duplicate_email(client, db):
    _register(client)
    response = _register(client, email="ANA@example.com")
    assert response.status_code == 409
    assert response.json()["error"] == "An account with this email already exists"


def test_register_weak_password(client, db):
    response = _register(client, password="password")
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Datos inválidos"
    assert body["details"][0]["field"] == "password"


def test_login_requires_verified_email(client, db):
    make_user(db, verified=False)
    response = client.post("/api/auth/login", json={"email": "ana@example.com", "password": TEST_PASSWORD})
    assert response.status_code == 403
    assert response.json()["error"] == "Email not verified"


def test_login_wrong_password(client, db):
    make_user(db)
    response = client.post("/api/auth/login", json={"email": "ana@example.com", "password": "Wrong123!"})
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid credentials"}


def test_verify_then_login_sets_session_cookie(client, db):
    _register(client)
    user = db.query(User).filter(User.email == "ana@example.com").first()

    verified = client.get("/api/auth/verify-email", params={"token": user.verification_token})
    assert verified.status_code == 200
    assert verified.json()["success"] is True

    response = client.post("/api/auth/login", json={"email": "ANA@example.com", "password": "Secret123!"})
    assert response.status_code == 200
    assert SESSION_COOKIE_NAME in response.cookies

    profile = client.get("/api/user/profile")
    assert profile.status_code == 200
    assert profile.json()["user"]["email_verified"] is True


def test_verify_email_expired_token(client, db):
    user = make_user(db, verified=False)
    user.verification_token = "expired-token"
    user.verification_token_expires = utcnow() - timedelta(minutes=1)
    db.commit()

    response = client.get("/api/auth/verify-email", params={"token": "expired-token"})
    assert response.status_code == 400
    assert response.json()["error"] == "Token expired"


def test_password_reset_flow(client, db, queued_emails):
    make_user(db)

    response = client.post("/api/auth/forgot-password", json={"email": "ana@example.com"})
    assert response.status_code == 200
    assert queued_emails[-1]["template_name"] == "password-reset"

    user = db.query(User).filter(User.email == "ana@example.com").first()
    reset = client.post("/api/auth/reset-password", json={"token": user.reset_token, "password": "NewSecret1!"})
    assert reset.status_code == 200

    login_response = client.post("/api/auth/login", json={"email": "ana@example.com", "password": "NewSecret1!"})
    assert login_response.status_code == 200


def test_forgot_password_unknown_email_looks_the_same(client, db, queued_emails):
    response = client.post("/api/auth/forgot-password", json={"email": "nobody@example.com"})
    assert response.status_code == 200
    assert response.json()["success"] is True
    assert queued_emails == []


def test_profile_email_change_requires_reverification(client, db):
    user = make_user(db)
    login(client, user)

    response = client.patch("/api/user/profile", json={"email": "nueva@example.com"})
    assert response.status_code == 200
    assert response.json()["user"]["email"] == "nueva@example.com"
    assert response.json()["user"]["email_verified"] is False


def test_profile_password_change_checks_current_password(client, db):
    user = make_user(db)
    login(client, user)

    response = client.patch(
        "/api/user/profile", json={"current_password": "Wrong123!", "new_password": "Another1!"}
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Current password is incorrect"


def test_logout_clears_cookie(client, db):
    response = client.post("/api/auth/logout")
    assert response.status_code == 200
    assert response.json()["success"] is True


def test_invalid_session_cookie(client, db):
    client.cookies.set(SESSION_COOKIE_NAME, "not-a-jwt")
    response = client.get("/api/user/profile")
    assert response.status_code == 401
    assert response.json()["error"] == "Invalid or expired session"
