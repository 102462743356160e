import pytest

from app.crm import create_app
from app.crm.db import session_scope
from app.crm.modules.accounts.service import AccountRepository


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    for k in ("TOKEN_TTL_HOURS", "DEFAULT_PAGE_SIZE", "MAX_PAGE_SIZE", "JWT_ALGORITHM"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    app.extensions["schema_manager"].ensure()
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def make_account(app, email="admin@example.com", role="admin", password="password1", **fields):
    with session_scope(app) as s:
        a = AccountRepository(s).create({"email": email, "role": role, **fields}, password)
        return a.id


def auth_header(app, account_id, email="admin@example.com", role="admin"):
    token = app.extensions["token_service"].issue(account_id, email, role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def admin_headers(app):
    account_id = make_account(app, "admin@example.com", "admin")
    return auth_header(app, account_id, "admin@example.com", "admin")


@pytest.fixture()
def support_headers(app):
    account_id = make_account(app, "support@example.com", "support")
    return auth_header(app, account_id, "support@example.com", "support")


@pytest.fixture()
def user_headers(app):
    account_id = make_account(app, "user@example.com", "user")
    return auth_header(app, account_id, "user@example.com", "user")


JOHN = {
    "first_name": "John",
    "last_name": "Doe",
    "mobile": "0712345678",
    "city": "Johannesburg",
    "province": "Gauteng",
    "postal_code": "2001",
}
