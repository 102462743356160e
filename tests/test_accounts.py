"""Tests for the accounts repository and /users endpoints."""
import pytest

from app.crm.db import session_scope
from app.crm.errors import ConflictError, NotFoundError, ValidationError
from app.crm.modules.accounts.service import AccountRepository

from conftest import auth_header, make_account


# --- repository -------------------------------------------------------------


def test_create_defaults_role_and_hides_hash(app):
    with session_scope(app) as s:
        a = AccountRepository(s).create({"email": "a@b.com", "first_name": "Ann"}, "secret1")
        assert a.role == "user"
        assert a.password_hash and a.password_hash != "secret1"
        assert a.created_at is not None


def test_create_requires_email_and_password(app):
    with session_scope(app) as s:
        repo = AccountRepository(s)
        with pytest.raises(ValidationError):
            repo.create({"first_name": "Ann"}, "secret1")
        with pytest.raises(ValidationError):
            repo.create({"email": "a@b.com"}, None)
        with pytest.raises(ValidationError):
            repo.create({"email": "a@b.com", "role": "superuser"}, "secret1")


def test_duplicate_email_conflict_via_precheck(app):
    make_account(app, "dup@example.com", "user")
    with session_scope(app) as s:
        with pytest.raises(ConflictError):
            AccountRepository(s).create({"email": "dup@example.com"}, "secret1")


def test_duplicate_email_conflict_via_constraint(app, monkeypatch):
    """The insert-time uniqueness failure is authoritative when the pre-check misses a race."""
    make_account(app, "race@example.com", "user")
    with session_scope(app) as s:
        repo = AccountRepository(s)
        monkeypatch.setattr(repo, "find_by_email", lambda email: None)
        with pytest.raises(ConflictError):
            repo.create({"email": "race@example.com"}, "secret1")


def test_email_is_case_sensitive_as_stored(app):
    make_account(app, "Case@example.com", "user")
    with session_scope(app) as s:
        a = AccountRepository(s).create({"email": "case@example.com"}, "secret1")
        assert a.email == "case@example.com"


def test_update_is_partial_merge(app):
    account_id = make_account(app, "merge@example.com", "user", first_name="Jane", last_name="Roe")
    with session_scope(app) as s:
        before = AccountRepository(s).get(account_id)
        snapshot = (before.first_name, before.email, before.role, before.password_hash, before.created_at)

    with session_scope(app) as s:
        after = AccountRepository(s).update(account_id, {"last_name": "Smith", "first_name": ""})
        assert after.last_name == "Smith"
        assert (after.first_name, after.email, after.role, after.password_hash, after.created_at) == snapshot


def test_update_email_conflict(app):
    make_account(app, "taken@example.com", "user")
    other = make_account(app, "other@example.com", "user")
    with session_scope(app) as s:
        with pytest.raises(ConflictError):
            AccountRepository(s).update(other, {"email": "taken@example.com"})


def test_update_missing_account(app):
    with session_scope(app) as s:
        with pytest.raises(NotFoundError):
            AccountRepository(s).update("nope", {"first_name": "X"})


def test_delete_is_idempotent(app):
    account_id = make_account(app, "gone@example.com", "user")
    with session_scope(app) as s:
        assert AccountRepository(s).delete(account_id) is True
    with session_scope(app) as s:
        assert AccountRepository(s).delete(account_id) is False


def test_list_orders_by_id_desc(app):
    ids = [make_account(app, f"u{i}@example.com", "user") for i in range(3)]
    with session_scope(app) as s:
        listed = [a.id for a in AccountRepository(s).list()]
    assert listed == sorted(ids, reverse=True)


def test_authenticate(app):
    make_account(app, "login@example.com", "user", password="secret1")
    with session_scope(app) as s:
        repo = AccountRepository(s)
        assert repo.authenticate("login@example.com", "secret1") is not None
        assert repo.authenticate("login@example.com", "wrong") is None
        assert repo.authenticate("nobody@example.com", "secret1") is None


# --- HTTP -------------------------------------------------------------------


def test_users_list_admin_only(client, admin_headers, user_headers):
    r = client.get("/users", headers=admin_headers)
    assert r.status_code == 200
    assert all("password_hash" not in u for u in r.json["users"])
    assert {u["email"] for u in r.json["users"]} >= {"admin@example.com", "user@example.com"}

    r = client.get("/users", headers=user_headers)
    assert r.status_code == 403
    assert r.json == {"error": "Forbidden"}


def test_users_requires_token(client):
    r = client.get("/users")
    assert r.status_code == 401
    assert "error" in r.json

    r = client.get("/users", headers={"Authorization": "Bearer garbage"})
    assert r.status_code == 401


def test_users_create_and_conflict(client, admin_headers):
    body = {"email": "new@example.com", "password": "secret1", "first_name": "New"}
    r = client.post("/users", json=body, headers=admin_headers)
    assert r.status_code == 201
    assert r.json["user"]["role"] == "user"
    assert "password_hash" not in r.json["user"]

    r = client.post("/users", json=body, headers=admin_headers)
    assert r.status_code == 409

    r = client.post("/users", json={"password": "secret1"}, headers=admin_headers)
    assert r.status_code == 400


def test_user_detail_owner_or_admin(app, client, admin_headers):
    owner_id = make_account(app, "owner@example.com", "user")
    other_id = make_account(app, "stranger@example.com", "user")
    owner_headers = auth_header(app, owner_id, "owner@example.com", "user")

    assert client.get(f"/users/{owner_id}", headers=owner_headers).status_code == 200
    assert client.get(f"/users/{other_id}", headers=owner_headers).status_code == 403
    assert client.get(f"/users/{other_id}", headers=admin_headers).status_code == 200
    assert client.get("/users/does-not-exist", headers=admin_headers).status_code == 404


def test_owner_update_without_role_change(app, client):
    owner_id = make_account(app, "self@example.com", "user", first_name="Old")
    headers = auth_header(app, owner_id, "self@example.com", "user")

    r = client.put(f"/users/{owner_id}", json={"first_name": "New"}, headers=headers)
    assert r.status_code == 200
    assert r.json["user"]["first_name"] == "New"
    assert r.json["user"]["role"] == "user"

    # Same role is not a change.
    r = client.put(f"/users/{owner_id}", json={"role": "user"}, headers=headers)
    assert r.status_code == 200

    r = client.put(f"/users/{owner_id}", json={"role": "admin"}, headers=headers)
    assert r.status_code == 403


def test_admin_can_change_role(app, client, admin_headers):
    target = make_account(app, "promote@example.com", "user")
    r = client.put(f"/users/{target}", json={"role": "support"}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json["user"]["role"] == "support"


def test_update_email_to_taken_is_409(app, client, admin_headers):
    target = make_account(app, "mover@example.com", "user")
    r = client.put(f"/users/{target}", json={"email": "admin@example.com"}, headers=admin_headers)
    assert r.status_code == 409


def test_delete_user(app, client, admin_headers, user_headers):
    target = make_account(app, "bye@example.com", "user")
    assert client.delete(f"/users/{target}", headers=user_headers).status_code == 403

    r = client.delete(f"/users/{target}", headers=admin_headers)
    assert r.status_code == 200
    assert r.json == {"message": "User deleted"}

    assert client.delete(f"/users/{target}", headers=admin_headers).status_code == 404
