from __future__ import annotations

import uuid

from flask import Blueprint, current_app, g, jsonify, request

from app.crm.db import db_session
from app.crm.errors import AuthenticationError, ValidationError
from app.crm.models import Account
from app.crm.modules.accounts.service import AccountRepository, serialize_account
from app.crm.rbac import ACCOUNTS_ME, require_operation
from app.crm.tokens import TokenService

bp = Blueprint("auth", __name__)


def token_service() -> TokenService:
    return current_app.extensions["token_service"]


def json_body() -> dict:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError("JSON object body required")
    return body


def _bearer_token() -> str | None:
    header = (request.headers.get("Authorization") or "").strip()
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return ""
    return token.strip()


def load_current_user() -> None:
    """
    Loads g.current_principal from the bearer token (if any).
    Also assigns a simple per-request request_id (for log correlation).

    A bad token is not rejected here: the error is parked on g.auth_error and
    raised only when a protected view asks for the principal.
    """
    if not getattr(g, "request_id", None):
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    g.current_principal = None
    g.auth_error = None

    token = _bearer_token()
    if token is None:
        return
    try:
        g.current_principal = token_service().verify(token)
    except AuthenticationError as e:
        current_app.logger.warning(
            "Rejected bearer token: %s (request_id=%s)", e.message, g.request_id
        )
        g.auth_error = e


def _auth_response(account, status: int = 200):
    token = token_service().issue(account.id, account.email, account.role)
    return jsonify({"token": token, "user": serialize_account(account)}), status


@bp.post("/login")
def login_post():
    body = json_body()
    email = body.get("email")
    password = body.get("password")
    if not email or not password:
        raise ValidationError("email and password required")

    s = db_session()
    account = AccountRepository(s).authenticate(email, password)
    if account is None:
        current_app.logger.warning("Login failed (request_id=%s)", g.request_id)
        raise AuthenticationError("Invalid credentials")
    return _auth_response(account)


@bp.post("/register")
def register_post():
    body = json_body()
    s = db_session()
    account = AccountRepository(s).create(body, body.get("password"))
    s.commit()
    current_app.logger.info("Account registered id=%s role=%s", account.id, account.role)
    return _auth_response(account, 201)


@bp.get("/me")
@require_operation(ACCOUNTS_ME)
def me():
    s = db_session()
    account = s.get(Account, g.current_principal.sub)
    if account is None:
        raise AuthenticationError("Account not found")
    return jsonify({"user": serialize_account(account)})
