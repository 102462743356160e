import sys
from pathlib import Path
import os
from contextlib import contextmanager

from sqlalchemy.orm import Session

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.crm.constants import ROLE_ADMIN
from app.crm.db import build_engine, build_sessionmaker
from app.crm.modules.accounts.service import AccountRepository
from app.crm.schema import SchemaManager


@contextmanager
def _session_scope(database_url: str):
    engine = build_engine(database_url)
    SchemaManager(engine).ensure()
    s: Session = build_sessionmaker(engine)()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()


def seed_only(*, database_url: str | None = None) -> None:
    """
    Apply schema migrations and seed the admin account in an idempotent way.
    Does NOT overwrite an existing admin account's password or role.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "").strip()
    admin_password = os.environ.get("ADMIN_PASSWORD") or ""

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///crm.db").strip()

    with _session_scope(db_url) as s:
        if not admin_email or not admin_password:
            print("ADMIN_EMAIL/ADMIN_PASSWORD not set; schema applied, no admin seeded.")
            return
        repo = AccountRepository(s)
        if repo.find_by_email(admin_email) is None:
            repo.create({"email": admin_email, "role": ROLE_ADMIN}, admin_password)
            print(f"Created admin account: {admin_email}")
        else:
            print(f"Admin account already exists: {admin_email}")

    print("Initialized database (seed_only).")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
