from datetime import datetime, timedelta, timezone

import pytest

from app.crm import create_app
from app.crm.tokens import TokenService

from conftest import JOHN, make_account

PROTECTED_ROUTES = [
    ("get", "/auth/me"),
    ("get", "/users"),
    ("post", "/users"),
    ("get", "/users/some-id"),
    ("put", "/users/some-id"),
    ("delete", "/users/some-id"),
    ("get", "/customers"),
    ("post", "/customers"),
    ("get", "/customers/some-id"),
    ("put", "/customers/some-id"),
    ("delete", "/customers/some-id"),
]


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True
    assert client.get("/healthz").status_code == 200
    assert r.headers.get("X-Request-ID")


def test_unknown_route_is_json_404(client):
    r = client.get("/nope")
    assert r.status_code == 404
    assert r.json == {"error": "Not Found"}


def test_end_to_end_register_create_search(client):
    r = client.post(
        "/auth/register",
        json={"email": "a@b.com", "password": "secret1", "role": "admin"},
    )
    assert r.status_code == 201
    token = r.json["token"]
    admin_id = r.json["user"]["id"]
    assert r.json["user"]["role"] == "admin"
    headers = {"Authorization": f"Bearer {token}"}

    r = client.post("/customers", json=JOHN, headers=headers)
    assert r.status_code == 201
    customer = r.json["customer"]
    assert customer["customer_number"]
    assert customer["account_number"]
    assert customer["status"] == "active"
    assert customer["customer_type"] == "residential"
    assert customer["created_by"] == admin_id

    r = client.get("/customers?search=Doe", headers=headers)
    assert r.status_code == 200
    assert [c["id"] for c in r.json["customers"]] == [customer["id"]]
    assert r.json["pagination"]["total"] == 1


def test_register_defaults_to_user_and_rejects_duplicates(client):
    r = client.post("/auth/register", json={"email": "u@b.com", "password": "secret1"})
    assert r.status_code == 201
    assert r.json["user"]["role"] == "user"
    assert "password_hash" not in r.json["user"]

    r = client.post("/auth/register", json={"email": "u@b.com", "password": "secret1"})
    assert r.status_code == 409
    assert r.json == {"error": "email already exists"}

    r = client.post("/auth/register", json={"email": "short@b.com", "password": "abc"})
    assert r.status_code == 400


def test_login_and_me(app, client):
    make_account(app, "login@example.com", "support", password="secret1")

    r = client.post("/auth/login", json={"email": "login@example.com", "password": "wrong1"})
    assert r.status_code == 401
    assert r.json == {"error": "Invalid credentials"}

    r = client.post("/auth/login", json={"email": "ghost@example.com", "password": "secret1"})
    assert r.status_code == 401
    assert r.json == {"error": "Invalid credentials"}

    r = client.post("/auth/login", json={"email": "login@example.com", "password": "secret1"})
    assert r.status_code == 200
    token = r.json["token"]

    r = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    assert r.json["user"]["email"] == "login@example.com"
    assert r.json["user"]["role"] == "support"


def test_me_for_deleted_account_is_401(app, client):
    account_id = make_account(app, "ghost@example.com", "user")
    token = app.extensions["token_service"].issue(account_id, "ghost@example.com", "user")
    admin_id = make_account(app, "admin@example.com", "admin")
    admin_token = app.extensions["token_service"].issue(admin_id, "admin@example.com", "admin")
    client.delete(f"/users/{account_id}", headers={"Authorization": f"Bearer {admin_token}"})

    r = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401


@pytest.mark.parametrize("method,path", PROTECTED_ROUTES)
def test_expired_token_rejected_everywhere(app, client, method, path):
    account_id = make_account(app, "admin@example.com", "admin")
    issued = datetime.now(timezone.utc) - timedelta(hours=25)
    expired = TokenService("test-secret", clock=lambda: issued).issue(account_id, "admin@example.com", "admin")

    r = getattr(client, method)(path, json={}, headers={"Authorization": f"Bearer {expired}"})
    assert r.status_code == 401
    assert r.json == {"error": "Token expired"}


@pytest.mark.parametrize("method,path", PROTECTED_ROUTES)
def test_missing_token_rejected_everywhere(client, method, path):
    r = getattr(client, method)(path, json={})
    assert r.status_code == 401


def test_production_requires_secret(tmp_path, monkeypatch):
    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("DATABASE_URL", "postgresql+psycopg://u:p@localhost/crm")
    monkeypatch.delenv("JWT_SECRET", raising=False)
    with pytest.raises(RuntimeError, match="JWT_SECRET"):
        create_app()

    monkeypatch.setenv("JWT_SECRET", "change-me")
    with pytest.raises(RuntimeError, match="JWT_SECRET"):
        create_app()


def test_production_rejects_sqlite(tmp_path, monkeypatch):
    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("JWT_SECRET", "a-real-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'prod.db'}")
    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        create_app()


@pytest.mark.parametrize("env,expect_debug_listener", [("development", True), ("prod", False), ("production", False)])
def test_pool_checkout_logging_is_dev_only(tmp_path, env, expect_debug_listener):
    from flask import Flask

    from app.crm.db import init_db

    flask_app = Flask(__name__)
    flask_app.config.update(ENV=env, DATABASE_URL=f"sqlite:///{tmp_path/'pool.db'}")
    init_db(flask_app)
    engine = flask_app.extensions["sqlalchemy_engine"]
    assert bool(engine.pool.dispatch.checkout) is expect_debug_listener
