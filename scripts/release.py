"""
Release-phase helper.

- Fail fast if DATABASE_URL is missing (avoid silently using SQLite in prod).
- Apply versioned schema migrations and seed the admin account
  (idempotent; does NOT overwrite existing passwords).
- With --serve, hand the process over to gunicorn once the release succeeds.

Usage:
  python scripts/release.py
  python scripts/release.py --serve
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.crm.config import is_production


def _require_env(name: str) -> str:
    v = (os.environ.get(name) or "").strip()
    if not v:
        raise RuntimeError(f"Missing required environment variable {name}.")
    return v


def run_release() -> None:
    db_url = _require_env("DATABASE_URL")
    env = os.environ.get("ENV")
    if is_production(env):
        if db_url.startswith("sqlite"):
            raise RuntimeError("Refusing to run release on sqlite DATABASE_URL in production.")
        _require_env("JWT_SECRET")

    print(f"=== CRM release (ENV={env or 'unset'}) ===", flush=True)

    from scripts import init_db

    init_db.seed_only(database_url=db_url)


def gunicorn_argv(port: int, workers: int) -> list[str]:
    return [
        "gunicorn",
        "app.wsgi:app",
        "--bind", f"0.0.0.0:{port}",
        "--workers", str(workers),
        "--access-logfile", "-",
        "--error-logfile", "-",
    ]


def _bounded_int(raw: str) -> int:
    n = int(raw)
    if n < 1 or n > 65535:
        raise argparse.ArgumentTypeError(f"{raw} is out of range (1-65535)")
    return n


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Migrate, seed and optionally serve the CRM API.")
    parser.add_argument("--serve", action="store_true", help="exec gunicorn after the release step")
    parser.add_argument("--port", type=_bounded_int, default=os.environ.get("PORT") or "8080")
    parser.add_argument("--workers", type=_bounded_int, default=os.environ.get("WEB_CONCURRENCY") or "2")
    args = parser.parse_args(argv)

    try:
        run_release()
    except Exception as e:
        print(f"Release failed: {e}", flush=True)
        sys.exit(1)

    if args.serve:
        # gunicorn replaces this process so it receives signals directly.
        os.execvp("gunicorn", gunicorn_argv(args.port, args.workers))


if __name__ == "__main__":
    main()
