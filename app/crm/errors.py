"""
Error taxonomy shared by repositories, policy and handlers.

Every error carries a stable public message; handlers render it as
``{"error": message}`` with ``status_code`` and never expose the underlying
storage-engine text.
"""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError


class AppError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid request"


class AuthenticationError(AppError):
    status_code = 401
    default_message = "Authentication required"


class InvalidToken(AuthenticationError):
    default_message = "Invalid token"


class ExpiredToken(AuthenticationError):
    default_message = "Token expired"


class AuthorizationError(AppError):
    status_code = 403
    default_message = "Forbidden"


class NotFoundError(AppError):
    status_code = 404
    default_message = "Not found"


class ConflictError(AppError):
    status_code = 409
    default_message = "Conflict"


class InternalError(AppError):
    status_code = 500


def is_unique_violation(exc: IntegrityError) -> bool:
    """True when an IntegrityError came from a uniqueness constraint (SQLite or Postgres)."""
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate == "23505":
        return True
    msg = str(orig if orig is not None else exc).lower()
    return "unique constraint failed" in msg or "duplicate key" in msg or "unique constraint" in msg


def violated_columns(exc: IntegrityError, candidates: tuple[str, ...]) -> set[str]:
    """Best-effort: which of ``candidates`` the storage error message names."""
    msg = str(getattr(exc, "orig", None) or exc)
    return {c for c in candidates if c in msg}
