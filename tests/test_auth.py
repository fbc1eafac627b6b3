from __future__ import annotations
import pytest
from werkzeug.security import generate_password_hash

from app import create_app
from extensions import db
from models import User
from blueprints.auth import routes as auth_routes

@pytest.fixture()
def client_app():
    app = create_app("test")
    app.config.update(AUTH_RL_MAX=3, AUTH_RL_WINDOW=60)  # агрессивный лимит для теста
    auth_routes._login_attempts.clear()
    with app.app_context():
        db.create_all()
        db.session.add_all([
            User(email="admin@example.com", password_hash=generate_password_hash("adminpass"), role="ADMIN", is_active=True),
            User(email="staff@example.com", password_hash=generate_password_hash("staffpass"), role="STAFF", is_active=True),
            User(email="gone@example.com", password_hash=generate_password_hash("gonepass"), role="STAFF", is_active=False),
        ])
        db.session.commit()
        yield app
        db.drop_all()
    auth_routes._login_attempts.clear()

@pytest.fixture()
def client(client_app):
    return client_app.test_client()

def _get_csrf(client):
    r = client.get("/api/v1/csrf")
    assert r.status_code == 200
    return r.get_json()["csrf"]

def _login(client, email, password):
    return client.post("/api/v1/auth/login", json={"email": email, "password": password},
                       headers={"X-CSRF-Token": _get_csrf(client)})

def test_unauthorized_401(client):
    assert client.get("/auth/ping-admin").status_code == 401
    assert client.get("/api/v1/substitutions").status_code == 401

def test_forbidden_403_for_staff(client):
    assert _login(client, "staff@example.com", "staffpass").status_code == 200
    r = client.get("/auth/ping-admin")
    assert r.status_code == 403
    # запись в журнал только для ADMIN
    r2 = client.post("/api/v1/substitutions", json={"date": "2025-06-02"})
    assert r2.status_code == 403
    assert r2.get_json()["error"] == "forbidden"

def test_login_success_me_and_logout(client):
    r = _login(client, "admin@example.com", "adminpass")
    assert r.status_code == 200
    js = r.get_json()
    assert js["ok"] is True and js["user"]["role"] == "ADMIN"

    me = client.get("/api/v1/auth/me")
    assert me.status_code == 200 and me.get_json()["email"] == "admin@example.com"
    assert client.get("/auth/ping-admin").get_json()["ok"] is True

    assert client.post("/api/v1/auth/logout").status_code == 200
    assert client.get("/api/v1/auth/me").status_code == 401

def test_login_is_case_insensitive_on_email(client):
    assert _login(client, "  Admin@Example.com ", "adminpass").status_code == 200

@pytest.mark.parametrize("payload, status, code", [
    ({}, 400, "missing_credentials"),
    ({"email": "admin@example.com"}, 400, "missing_credentials"),
    ({"email": "admin@example.com", "password": "nope"}, 401, "invalid_credentials"),
    ({"email": "ghost@example.com", "password": "x"}, 401, "invalid_credentials"),
    ({"email": "gone@example.com", "password": "gonepass"}, 403, "inactive"),
])
def test_login_failures(client, payload, status, code):
    r = client.post("/api/v1/auth/login", json=payload)
    assert r.status_code == status
    assert r.get_json()["error"] == code

def test_rate_limit_429(client):
    for _ in range(3):  # AUTH_RL_MAX
        assert _login(client, "admin@example.com", "bad").status_code == 401
    r = _login(client, "admin@example.com", "adminpass")
    assert r.status_code == 429
    assert r.get_json()["error"] == "too_many_attempts"
    # другой email считается отдельно
    assert _login(client, "staff@example.com", "staffpass").status_code == 200

def test_login_page_renders(client):
    r = client.get("/auth/login")
    assert r.status_code == 200
    assert b"<form" in r.data
