from __future__ import annotations

import math
import uuid
from dataclasses import dataclass


def generate_customer_number() -> str:
    """
    Human-shareable customer number, e.g. ``CUS-3F9A0C12B7``.

    Random (uuid4) rather than time-derived, so concurrent creates do not collide
    by construction; the unique constraint plus a bounded retry covers the rest.
    """
    return f"CUS-{uuid.uuid4().hex[:10].upper()}"


def generate_account_number() -> str:
    return f"ACC-{uuid.uuid4().hex[:10].upper()}"


def escape_like(term: str, escape: str = "\\") -> str:
    """Escape LIKE wildcards so user search text matches literally."""
    return (
        term.replace(escape, escape + escape)
        .replace("%", escape + "%")
        .replace("_", escape + "_")
    )


@dataclass(frozen=True)
class PageInfo:
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit > 0 else 0

    def to_dict(self) -> dict[str, int]:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "totalPages": self.total_pages,
        }
