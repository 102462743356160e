"""
Customer repository.

Customers are created, patched and deleted only through ``CustomerRepository``.
Invariants kept here:

- first_name, last_name, mobile, city, province, postal_code are never empty
  (required on create; blank values in a patch are ignored, not written)
- customer_number / account_number / email / user_id are unique; the storage
  constraint is authoritative, pre-checks only short-circuit the common case
- list() and its count share one predicate, so pagination totals always agree
  with the rows that can be paged through
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.crm.constants import (
    COMMUNICATION_PREFERENCES,
    CUSTOMER_STATUSES,
    CUSTOMER_TYPES,
    DEFAULT_NATIONALITY,
    PREFERRED_LANGUAGES,
    PROVINCES,
    TITLES,
)
from app.crm.errors import (
    ConflictError,
    InternalError,
    NotFoundError,
    ValidationError,
    is_unique_violation,
    violated_columns,
)
from app.crm.models import Account
from app.crm.modules.customers.models import Customer
from app.crm.modules.customers.utils import PageInfo, escape_like, generate_account_number, generate_customer_number
from app.crm.utils import clean_str, is_provided, new_id, to_json_value, utcnow

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("first_name", "last_name", "mobile", "city", "province", "postal_code")

TEXT_FIELDS = (
    "first_name",
    "last_name",
    "mobile",
    "city",
    "postal_code",
    "id_number",
    "passport_number",
    "nationality",
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

ENUM_FIELDS: dict[str, tuple[str, ...]] = {
    "title": TITLES,
    "province": PROVINCES,
    "customer_type": CUSTOMER_TYPES,
    "status": CUSTOMER_STATUSES,
    "preferred_language": PREFERRED_LANGUAGES,
    "communication_preference": COMMUNICATION_PREFERENCES,
}

DATE_FIELDS = ("date_of_birth", "contract_start_date", "contract_end_date")

WRITABLE_FIELDS = (
    TEXT_FIELDS
    + tuple(ENUM_FIELDS)
    + DATE_FIELDS
    + ("email", "credit_limit", "marketing_consent", "user_id")
)

DEFAULTS: dict[str, Any] = {
    "customer_type": "residential",
    "status": "active",
    "nationality": DEFAULT_NATIONALITY,
    "preferred_language": "english",
    "communication_preference": "sms",
    "marketing_consent": False,
}

SEARCH_COLUMNS = (
    Customer.first_name,
    Customer.last_name,
    Customer.email,
    Customer.customer_number,
    Customer.mobile,
)

NUMBER_COLUMNS = ("customer_number", "account_number")
UNIQUE_COLUMNS = NUMBER_COLUMNS + ("email", "user_id")

MAX_NUMBER_ATTEMPTS = 5

# Numeric(12, 2) holds at most 10 integer digits.
CREDIT_LIMIT_CEILING = Decimal(10) ** 10


def serialize_customer(c: Customer) -> dict[str, Any]:
    return {col.key: to_json_value(getattr(c, col.key)) for col in Customer.__table__.columns}


def _parse_date(field: str, value: Any) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise ValidationError(f"{field} must be an ISO date (YYYY-MM-DD)")


def _coerce(field: str, value: Any) -> Any:
    """Validate and normalise one provided field value."""
    if field in ENUM_FIELDS:
        v = clean_str(value)
        allowed = ENUM_FIELDS[field]
        if v not in allowed:
            raise ValidationError(f"{field} must be one of: {', '.join(allowed)}")
        return v
    if field in DATE_FIELDS:
        return _parse_date(field, value)
    if field == "credit_limit":
        if isinstance(value, bool):
            raise ValidationError("credit_limit must be a number")
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError("credit_limit must be a number")
        if not amount.is_finite() or amount < 0:
            raise ValidationError("credit_limit must be a non-negative number")
        if amount >= CREDIT_LIMIT_CEILING:
            raise ValidationError("credit_limit is out of range")
        return amount.quantize(Decimal("0.01"))
    if field == "marketing_consent":
        if not isinstance(value, bool):
            raise ValidationError("marketing_consent must be a boolean")
        return value
    if field == "email":
        v = clean_str(value)
        if "@" not in v:
            raise ValidationError("email is invalid")
        return v
    if isinstance(value, (dict, list)):
        raise ValidationError(f"{field} must be a string")
    return clean_str(value)


def _provided_values(fields: dict[str, Any]) -> dict[str, Any]:
    return {f: _coerce(f, fields[f]) for f in WRITABLE_FIELDS if is_provided(fields.get(f))}


@dataclass(frozen=True)
class CustomerFilter:
    search: str | None = None
    status: str | None = None
    province: str | None = None
    page: int = 1
    limit: int = 10

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValidationError("page must be a positive integer")
        if self.limit < 1:
            raise ValidationError("limit must be a positive integer")


class CustomerRepository:
    def __init__(
        self,
        s: Session,
        *,
        id_factory: Callable[[], str] = new_id,
        customer_number_factory: Callable[[], str] = generate_customer_number,
        account_number_factory: Callable[[], str] = generate_account_number,
        clock: Callable[..., Any] = utcnow,
    ) -> None:
        self.s = s
        self.id_factory = id_factory
        self.customer_number_factory = customer_number_factory
        self.account_number_factory = account_number_factory
        self.clock = clock

    def _conditions(self, flt: CustomerFilter) -> list:
        conds = []
        search = clean_str(flt.search)
        if search:
            like = f"%{escape_like(search)}%"
            conds.append(or_(*(col.ilike(like, escape="\\") for col in SEARCH_COLUMNS)))
        status = clean_str(flt.status)
        if status:
            conds.append(Customer.status == status)
        province = clean_str(flt.province)
        if province:
            conds.append(Customer.province == province)
        return conds

    def list(self, flt: CustomerFilter) -> tuple[list[Customer], PageInfo]:
        conds = self._conditions(flt)
        total = int(self.s.scalar(select(func.count()).select_from(Customer).where(*conds)) or 0)
        page_info = PageInfo(page=flt.page, limit=flt.limit, total=total)
        offset = (flt.page - 1) * flt.limit
        if offset >= total:
            # Past the last page; also keeps huge offsets away from the driver.
            return [], page_info
        rows = self.s.scalars(
            select(Customer)
            .where(*conds)
            .order_by(Customer.created_at.desc(), Customer.id.desc())
            .offset(offset)
            .limit(flt.limit)
        )
        return list(rows), page_info

    def get(self, customer_id: str) -> Customer:
        c = self.s.get(Customer, customer_id)
        if c is None:
            raise NotFoundError("Customer not found")
        return c

    def create(self, fields: dict[str, Any], actor_id: str | None) -> Customer:
        missing = [f for f in REQUIRED_FIELDS if not is_provided(fields.get(f))]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        values = {**DEFAULTS, **_provided_values(fields)}
        self._check_unique_fields(values, current=None)

        for attempt in range(1, MAX_NUMBER_ATTEMPTS + 1):
            now = self.clock()
            c = Customer(
                id=self.id_factory(),
                customer_number=self.customer_number_factory(),
                account_number=self.account_number_factory(),
                created_at=now,
                updated_at=now,
                created_by=actor_id,
                last_modified_by=actor_id,
                **values,
            )
            self.s.add(c)
            try:
                self.s.flush()
            except IntegrityError as e:
                self.s.rollback()
                if not is_unique_violation(e):
                    logger.error("Customer insert failed: %s", e.orig)
                    raise InternalError()
                cols = violated_columns(e, UNIQUE_COLUMNS)
                if cols and cols <= set(NUMBER_COLUMNS):
                    logger.warning("Customer number collision (attempt %s/%s)", attempt, MAX_NUMBER_ATTEMPTS)
                    continue
                raise self._conflict(cols)
            logger.info("Customer created id=%s number=%s by=%s", c.id, c.customer_number, actor_id)
            return self._reload(c)

        raise InternalError("Could not allocate a unique customer number")

    def update(self, customer_id: str, fields: dict[str, Any], actor_id: str | None) -> Customer:
        c = self.get(customer_id)
        values = _provided_values(fields)
        self._check_unique_fields(values, current=c)
        for key, value in values.items():
            setattr(c, key, value)
        c.updated_at = self.clock()
        c.last_modified_by = actor_id
        try:
            self.s.flush()
        except IntegrityError as e:
            self.s.rollback()
            if is_unique_violation(e):
                raise self._conflict(violated_columns(e, UNIQUE_COLUMNS))
            logger.error("Customer update failed: %s", e.orig)
            raise InternalError()
        return self._reload(c)

    def delete(self, customer_id: str) -> None:
        c = self.get(customer_id)
        self.s.delete(c)
        self.s.flush()

    def _check_unique_fields(self, values: dict[str, Any], *, current: Customer | None) -> None:
        email = values.get("email")
        if email and (current is None or email != current.email):
            if self.s.scalar(select(Customer.id).where(Customer.email == email)) is not None:
                raise ConflictError("customer email already exists")
        user_id = values.get("user_id")
        if user_id and (current is None or user_id != current.user_id):
            if self.s.get(Account, user_id) is None:
                raise ValidationError("user_id does not reference an existing account")
            if self.s.scalar(select(Customer.id).where(Customer.user_id == user_id)) is not None:
                raise ConflictError("account already linked to a customer")

    def _conflict(self, cols: set[str]) -> ConflictError:
        if "email" in cols:
            return ConflictError("customer email already exists")
        if "user_id" in cols:
            return ConflictError("account already linked to a customer")
        return ConflictError("customer already exists")

    def _reload(self, c: Customer) -> Customer:
        refreshed = self.s.get(Customer, c.id, populate_existing=True)
        if refreshed is None:
            raise InternalError("Customer could not be loaded after write")
        return refreshed
