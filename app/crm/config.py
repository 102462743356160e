import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    env: str
    database_url: str

    jwt_secret: str
    jwt_algorithm: str
    token_ttl_hours: int

    default_page_size: int
    max_page_size: int
    log_level: str


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer (got {raw!r}).")


def load_settings() -> Settings:
    return Settings(
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///crm.db"),
        jwt_secret=_getenv("JWT_SECRET", "change-me"),
        jwt_algorithm=_getenv("JWT_ALGORITHM", "HS256"),
        token_ttl_hours=_getenv_int("TOKEN_TTL_HOURS", 24),
        default_page_size=_getenv_int("DEFAULT_PAGE_SIZE", 10),
        max_page_size=_getenv_int("MAX_PAGE_SIZE", 100),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
    )


def load_config() -> dict:
    s = load_settings()
    return {
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "JWT_SECRET": s.jwt_secret,
        "JWT_ALGORITHM": s.jwt_algorithm,
        "TOKEN_TTL_HOURS": s.token_ttl_hours,
        "DEFAULT_PAGE_SIZE": s.default_page_size,
        "MAX_PAGE_SIZE": s.max_page_size,
        "LOG_LEVEL": s.log_level,
        # JSON API: keep key order as built
        "JSON_SORT_KEYS": False,
        "MAX_CONTENT_LENGTH": 1 * 1024 * 1024,
    }


def is_production(env: str | None) -> bool:
    return (env or "").strip().lower() in ("prod", "production")


def validate_production_config(config: dict) -> None:
    """
    Refuse to boot a production profile with insecure defaults.
    """
    if not is_production(config.get("ENV")):
        return
    db_url = str(config.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise RuntimeError("DATABASE_URL is required in production.")
    if db_url.startswith("sqlite"):
        raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
    secret = str(config.get("JWT_SECRET") or "").strip()
    if not secret or secret == "change-me":
        raise RuntimeError("JWT_SECRET must be set to a strong value in production (not default).")
