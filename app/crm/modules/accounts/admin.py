from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify

from app.crm.auth import json_body
from app.crm.db import db_session
from app.crm.errors import NotFoundError
from app.crm.modules.accounts.service import AccountRepository, serialize_account
from app.crm.rbac import (
    ACCOUNTS_CREATE,
    ACCOUNTS_DELETE,
    ACCOUNTS_LIST,
    ACCOUNTS_READ,
    ACCOUNTS_UPDATE,
    ACCOUNTS_UPDATE_ROLE,
    authorize,
    require_operation,
)
from app.crm.utils import clean_str, is_provided

bp = Blueprint("accounts", __name__)


@bp.get("/users")
@require_operation(ACCOUNTS_LIST)
def users_list():
    s = db_session()
    return jsonify({"users": [serialize_account(a) for a in AccountRepository(s).list()]})


@bp.post("/users")
@require_operation(ACCOUNTS_CREATE)
def users_create():
    body = json_body()
    s = db_session()
    account = AccountRepository(s).create(body, body.get("password"))
    s.commit()
    current_app.logger.info("Account created id=%s by=%s", account.id, g.current_principal.sub)
    return jsonify({"user": serialize_account(account)}), 201


@bp.get("/users/<user_id>")
@require_operation(ACCOUNTS_READ, target_kwarg="user_id")
def users_detail(user_id: str):
    s = db_session()
    return jsonify({"user": serialize_account(AccountRepository(s).get(user_id))})


@bp.put("/users/<user_id>")
@require_operation(ACCOUNTS_UPDATE, target_kwarg="user_id")
def users_update(user_id: str):
    body = json_body()
    s = db_session()
    repo = AccountRepository(s)
    account = repo.get(user_id)
    if is_provided(body.get("role")) and clean_str(body["role"]) != account.role:
        authorize(ACCOUNTS_UPDATE_ROLE, user_id)
    account = repo.update(user_id, body)
    s.commit()
    return jsonify({"user": serialize_account(account)})


@bp.delete("/users/<user_id>")
@require_operation(ACCOUNTS_DELETE)
def users_delete(user_id: str):
    s = db_session()
    if not AccountRepository(s).delete(user_id):
        raise NotFoundError("User not found")
    s.commit()
    current_app.logger.info("Account deleted id=%s by=%s", user_id, g.current_principal.sub)
    return jsonify({"message": "User deleted"})
