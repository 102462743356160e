from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any


def utcnow() -> datetime:
    """Naive UTC timestamp (columns are DateTime(timezone=False))."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


def is_provided(value: Any) -> bool:
    """A patch field counts only when present, not null and (for strings) not blank."""
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return True


def clean_str(value: Any) -> str | None:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def to_json_value(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value
