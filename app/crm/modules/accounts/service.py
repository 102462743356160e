from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.crm.constants import MIN_PASSWORD_LENGTH, ROLE_USER, ROLES
from app.crm.errors import ConflictError, InternalError, NotFoundError, ValidationError, is_unique_violation
from app.crm.models import Account
from app.crm.security import PasswordHasher, password_hasher
from app.crm.utils import clean_str, is_provided, new_id, to_json_value, utcnow

logger = logging.getLogger(__name__)

PUBLIC_FIELDS = ("id", "first_name", "last_name", "email", "role", "created_at")
UPDATABLE_FIELDS = ("first_name", "last_name", "email", "role")


def serialize_account(a: Account) -> dict[str, Any]:
    """Public representation; never includes password_hash."""
    return {f: to_json_value(getattr(a, f)) for f in PUBLIC_FIELDS}


def validate_role(role: Any) -> str:
    r = clean_str(role)
    if r not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(sorted(ROLES))}")
    return r


def validate_password(password: Any) -> str:
    if not isinstance(password, str) or not password:
        raise ValidationError("password required")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"password must be at least {MIN_PASSWORD_LENGTH} characters")
    return password


class AccountRepository:
    """CRUD over accounts; the unique index on email is the source of truth for duplicates."""

    def __init__(
        self,
        s: Session,
        *,
        hasher: PasswordHasher = password_hasher,
        id_factory: Callable[[], str] = new_id,
        clock: Callable[..., Any] = utcnow,
    ) -> None:
        self.s = s
        self.hasher = hasher
        self.id_factory = id_factory
        self.clock = clock

    def list(self) -> list[Account]:
        return list(self.s.scalars(select(Account).order_by(Account.id.desc())))

    def get(self, account_id: str) -> Account:
        a = self.s.get(Account, account_id)
        if a is None:
            raise NotFoundError("User not found")
        return a

    def find_by_email(self, email: str) -> Account | None:
        return self.s.scalars(select(Account).where(Account.email == email)).one_or_none()

    def create(self, fields: dict[str, Any], plaintext_password: Any) -> Account:
        email = clean_str(fields.get("email"))
        if not email:
            raise ValidationError("email required")
        password = validate_password(plaintext_password)
        role = validate_role(fields["role"]) if is_provided(fields.get("role")) else ROLE_USER

        # Cheap short-circuit; the unique constraint below is what actually decides.
        if self.find_by_email(email) is not None:
            raise ConflictError("email already exists")

        account = Account(
            id=self.id_factory(),
            first_name=clean_str(fields.get("first_name")),
            last_name=clean_str(fields.get("last_name")),
            email=email,
            role=role,
            password_hash=self.hasher.hash(password),
            created_at=self.clock(),
        )
        self.s.add(account)
        self._flush_or_conflict()
        return self._reload(account)

    def update(self, account_id: str, fields: dict[str, Any]) -> Account:
        """
        Partial merge: only provided fields change. Callers must have authorized
        a role change before passing ``role``.
        """
        account = self.get(account_id)

        if is_provided(fields.get("first_name")):
            account.first_name = clean_str(fields["first_name"])
        if is_provided(fields.get("last_name")):
            account.last_name = clean_str(fields["last_name"])
        if is_provided(fields.get("role")):
            account.role = validate_role(fields["role"])
        if is_provided(fields.get("password")):
            account.password_hash = self.hasher.hash(validate_password(fields["password"]))
        if is_provided(fields.get("email")):
            email = clean_str(fields["email"])
            if email != account.email:
                existing = self.find_by_email(email)
                if existing is not None and existing.id != account.id:
                    raise ConflictError("email already exists")
                account.email = email

        self._flush_or_conflict()
        return self._reload(account)

    def delete(self, account_id: str) -> bool:
        """Idempotent; returns whether a row was removed."""
        account = self.s.get(Account, account_id)
        if account is None:
            return False
        self.s.delete(account)
        self.s.flush()
        return True

    def authenticate(self, email: Any, password: Any) -> Account | None:
        email = clean_str(email)
        if not email or not isinstance(password, str):
            return None
        account = self.find_by_email(email)
        if account is None or not self.hasher.verify(password, account.password_hash):
            return None
        return account

    def _flush_or_conflict(self) -> None:
        try:
            self.s.flush()
        except IntegrityError as e:
            self.s.rollback()
            if is_unique_violation(e):
                logger.info("Account unique constraint rejected write: %s", e.orig)
                raise ConflictError("email already exists")
            logger.error("Account write failed: %s", e.orig)
            raise InternalError()

    def _reload(self, account: Account) -> Account:
        refreshed = self.s.get(Account, account.id, populate_existing=True)
        if refreshed is None:
            # Written then gone (concurrent delete): not the client's fault.
            raise InternalError("User could not be loaded after write")
        return refreshed
