"""
Role-based access rules.

``POLICY`` maps every protected operation to the roles allowed to perform it.
Operations marked as owner-scoped additionally admit the account the request
targets, whatever its role. ``check`` is pure; ``require_operation`` wires it
into Flask views.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import g

from app.crm.constants import ROLE_ADMIN, ROLE_SUPPORT
from app.crm.errors import AuthenticationError, AuthorizationError

logger = logging.getLogger(__name__)

ACCOUNTS_LIST = "accounts.list"
ACCOUNTS_CREATE = "accounts.create"
ACCOUNTS_READ = "accounts.read"
ACCOUNTS_UPDATE = "accounts.update"
ACCOUNTS_UPDATE_ROLE = "accounts.update_role"
ACCOUNTS_DELETE = "accounts.delete"
ACCOUNTS_ME = "accounts.me"

CUSTOMERS_LIST = "customers.list"
CUSTOMERS_READ = "customers.read"
CUSTOMERS_CREATE = "customers.create"
CUSTOMERS_UPDATE = "customers.update"
CUSTOMERS_DELETE = "customers.delete"

ANY_ROLE = "*"

# operation -> (allowed roles, owner allowed)
POLICY: dict[str, tuple[frozenset[str], bool]] = {
    ACCOUNTS_LIST: (frozenset({ROLE_ADMIN}), False),
    ACCOUNTS_CREATE: (frozenset({ROLE_ADMIN}), False),
    ACCOUNTS_READ: (frozenset({ROLE_ADMIN}), True),
    ACCOUNTS_UPDATE: (frozenset({ROLE_ADMIN}), True),
    ACCOUNTS_UPDATE_ROLE: (frozenset({ROLE_ADMIN}), False),
    ACCOUNTS_DELETE: (frozenset({ROLE_ADMIN}), False),
    ACCOUNTS_ME: (frozenset({ANY_ROLE}), False),
    CUSTOMERS_LIST: (frozenset({ROLE_ADMIN, ROLE_SUPPORT}), False),
    CUSTOMERS_READ: (frozenset({ROLE_ADMIN, ROLE_SUPPORT}), False),
    CUSTOMERS_CREATE: (frozenset({ROLE_ADMIN}), False),
    CUSTOMERS_UPDATE: (frozenset({ROLE_ADMIN}), False),
    CUSTOMERS_DELETE: (frozenset({ROLE_ADMIN}), False),
}


def check(role: str | None, subject_id: str | None, operation: str, target_id: str | None = None) -> bool:
    """Allow/deny. Unknown operations and missing roles are denied."""
    rule = POLICY.get(operation)
    if rule is None or not role:
        return False
    roles, owner_allowed = rule
    if ANY_ROLE in roles or role in roles:
        return True
    if owner_allowed and subject_id and target_id is not None and subject_id == target_id:
        return True
    return False


def current_principal():
    """The verified token payload for this request, or raise 401."""
    principal = getattr(g, "current_principal", None)
    if principal is None:
        err = getattr(g, "auth_error", None)
        raise err if err is not None else AuthenticationError("Missing Authorization: Bearer <token>")
    return principal


def authorize(operation: str, target_id: str | None = None):
    principal = current_principal()
    if not check(principal.role, principal.sub, operation, target_id):
        logger.warning(
            "Forbidden: operation=%s role=%s request_id=%s",
            operation,
            principal.role,
            getattr(g, "request_id", None),
        )
        raise AuthorizationError()
    return principal


def require_operation(operation: str, target_kwarg: str | None = None) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            target_id = kwargs.get(target_kwarg) if target_kwarg else None
            authorize(operation, target_id)
            return fn(*args, **kwargs)

        return wrapped

    return decorator
