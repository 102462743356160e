"""
Versioned, additive schema migrations applied at request time.

Each migration is an ordered, numbered step run through Alembic's ``Operations``
API. Applied versions are recorded in ``schema_version``; ``ensure()`` only runs
the steps whose version is missing. Steps inspect before they act, and a
concurrent runner that loses the race ("already exists" / "duplicate column")
is retried so its remaining steps still run. Nothing here drops or renames
existing data.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

import sqlalchemy as sa
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import inspect, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import DBAPIError, IntegrityError

from app.crm.models import SchemaVersion
from app.crm.utils import utcnow

logger = logging.getLogger(__name__)

_ALREADY_EXISTS_MARKERS = (
    "already exists",
    "duplicate column",
    "pg_type_typname_nsp_index",
)


def _is_already_exists(exc: DBAPIError) -> bool:
    msg = str(getattr(exc, "orig", None) or exc).lower()
    return any(marker in msg for marker in _ALREADY_EXISTS_MARKERS)


def _timestamp_column(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=False),
        nullable=False,
        server_default=sa.func.current_timestamp(),
    )


def _create_accounts(op: Operations, conn: Connection) -> None:
    if inspect(conn).has_table("accounts"):
        return
    op.create_table(
        "accounts",
        sa.Column("id", sa.String(36), primary_key=True, nullable=False),
        sa.Column("first_name", sa.Text(), nullable=True),
        sa.Column("last_name", sa.Text(), nullable=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("role", sa.String(32), nullable=False, server_default="user"),
        _timestamp_column("created_at"),
        sa.UniqueConstraint("email", name="uq_accounts_email"),
    )


def _add_account_password_hash(op: Operations, conn: Connection) -> None:
    cols = {c["name"] for c in inspect(conn).get_columns("accounts")}
    if "password_hash" in cols:
        return
    op.add_column("accounts", sa.Column("password_hash", sa.String(255), nullable=True))


def _create_customers(op: Operations, conn: Connection) -> None:
    if inspect(conn).has_table("customers"):
        return
    text_cols = (
        "title",
        "id_number",
        "passport_number",
        "phone",
        "whatsapp_number",
        "address_line1",
        "address_line2",
        "suburb",
        "complex_name",
        "unit_number",
        "street_number",
        "street_name",
        "company_name",
        "company_registration_number",
        "tax_number",
        "vat_number",
        "payment_method",
        "banking_details",
    )
    op.create_table(
        "customers",
        sa.Column("id", sa.String(36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(36), nullable=True),
        sa.Column("customer_number", sa.String(32), nullable=False),
        sa.Column("account_number", sa.String(32), nullable=False),
        sa.Column("first_name", sa.Text(), nullable=False),
        sa.Column("last_name", sa.Text(), nullable=False),
        sa.Column("mobile", sa.Text(), nullable=False),
        sa.Column("city", sa.Text(), nullable=False),
        sa.Column("province", sa.Text(), nullable=False),
        sa.Column("postal_code", sa.Text(), nullable=False),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("contract_start_date", sa.Date(), nullable=True),
        sa.Column("contract_end_date", sa.Date(), nullable=True),
        sa.Column("credit_limit", sa.Numeric(12, 2), nullable=True),
        *(sa.Column(name, sa.Text(), nullable=True) for name in text_cols),
        sa.Column("nationality", sa.Text(), nullable=False, server_default="South African"),
        sa.Column("customer_type", sa.String(32), nullable=False, server_default="residential"),
        sa.Column("status", sa.String(32), nullable=False, server_default="active"),
        sa.Column("preferred_language", sa.String(32), nullable=False, server_default="english"),
        sa.Column("communication_preference", sa.String(32), nullable=False, server_default="sms"),
        sa.Column("marketing_consent", sa.Boolean(), nullable=False, server_default=sa.false()),
        _timestamp_column("created_at"),
        _timestamp_column("updated_at"),
        sa.Column("created_by", sa.String(36), nullable=True),
        sa.Column("last_modified_by", sa.String(36), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["accounts.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("user_id", name="uq_customers_user_id"),
        sa.UniqueConstraint("customer_number", name="uq_customers_customer_number"),
        sa.UniqueConstraint("account_number", name="uq_customers_account_number"),
        sa.UniqueConstraint("email", name="uq_customers_email"),
    )


def _create_customer_indexes(op: Operations, conn: Connection) -> None:
    existing = {ix.get("name") for ix in inspect(conn).get_indexes("customers")}
    for idx_name, cols in (
        ("idx_customers_status", ["status"]),
        ("idx_customers_province", ["province"]),
        ("idx_customers_created_at", ["created_at"]),
    ):
        if idx_name not in existing:
            op.create_index(idx_name, "customers", cols)


@dataclass(frozen=True)
class Migration:
    version: int
    name: str
    upgrade: Callable[[Operations, Connection], None]


MIGRATIONS: tuple[Migration, ...] = (
    Migration(1, "create_accounts", _create_accounts),
    Migration(2, "add_account_password_hash", _add_account_password_hash),
    Migration(3, "create_customers", _create_customers),
    Migration(4, "create_customer_indexes", _create_customer_indexes),
)

LATEST_VERSION = MIGRATIONS[-1].version


class SchemaManager:
    def __init__(self, engine: Engine, migrations: tuple[Migration, ...] = MIGRATIONS) -> None:
        self.engine = engine
        self.migrations = tuple(sorted(migrations, key=lambda m: m.version))

    def applied_versions(self) -> set[int]:
        with self.engine.connect() as conn:
            if not inspect(conn).has_table(SchemaVersion.__tablename__):
                return set()
            return set(conn.execute(select(SchemaVersion.version)).scalars())

    def ensure(self) -> int:
        """
        Bring the schema up to the latest version. Idempotent and safe to call
        concurrently; returns the highest applied version.
        """
        applied = self.applied_versions()
        pending = [m for m in self.migrations if m.version not in applied]
        if not pending:
            return max(applied) if applied else 0

        self._ensure_version_table()
        for m in pending:
            self._apply(m)
            self._record(m)
        return self.migrations[-1].version if self.migrations else 0

    def _ensure_version_table(self) -> None:
        try:
            with self.engine.begin() as conn:
                SchemaVersion.__table__.create(conn, checkfirst=True)
        except DBAPIError as e:
            if not _is_already_exists(e):
                raise

    def _apply(self, m: Migration) -> None:
        """
        Run one migration. Losing a race on one step does not mean the later
        steps ran, so the (inspecting) upgrade is re-run once to finish them.
        """
        for attempt in (1, 2):
            try:
                with self.engine.begin() as conn:
                    m.upgrade(Operations(MigrationContext.configure(conn)), conn)
            except DBAPIError as e:
                if not _is_already_exists(e) or attempt == 2:
                    raise
                logger.info("Schema migration %s (%s) raced a concurrent runner; re-checking", m.version, m.name)
                continue
            logger.info("Applied schema migration %s (%s)", m.version, m.name)
            return

    def _record(self, m: Migration) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    sa.insert(SchemaVersion.__table__).values(version=m.version, name=m.name, applied_at=utcnow())
                )
        except IntegrityError:
            # Another ensure() recorded this version first.
            pass
