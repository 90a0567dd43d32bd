import logging
import os
from typing import List, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_PORT = 3000
# Used by the listen step when the config carries no port. Differs from
# DEFAULT_PORT; see DESIGN.md.
FALLBACK_LISTEN_PORT = 8000

STORAGE_PROVIDERS = ("postgresql", "memory")


def _required_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise RuntimeError(
            f"Missing required environment variable '{name}'. "
            "Set it in the service environment or .env file."
        )
    return value


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw.strip(), 10)
    except ValueError:
        raise ValueError(f"Environment variable '{name}' must be an integer, got {raw!r}")


def _csv_env(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    values = [v.strip() for v in raw.split(",") if v.strip()]
    return values or list(default)


class AppConfig(BaseModel):
    """Process-wide settings read from the environment."""

    port: Optional[int] = Field(DEFAULT_PORT, ge=1, le=65535)
    environment: str = "development"
    host: str = "0.0.0.0"
    cors_allow_origins: List[str] = Field(default_factory=lambda: ["*"])
    storage_provider: str = "postgresql"
    auth_base_path: str = "/auth"
    jwt_secret: Optional[str] = None
    jwt_algorithm: str = "HS256"
    session_expires_minutes: int = Field(10080, ge=1)  # default: 7 days
    log_level: str = "INFO"


# PUBLIC_INTERFACE
def load_app_config() -> AppConfig:
    """Read configuration from the environment. Reads fresh on every call."""
    environment = os.getenv("NODE_ENV") or "development"
    storage = (os.getenv("AUTH_STORAGE_PROVIDER") or "postgresql").strip().lower()
    if storage not in STORAGE_PROVIDERS:
        raise ValueError(
            f"AUTH_STORAGE_PROVIDER must be one of {', '.join(STORAGE_PROVIDERS)}, got {storage!r}"
        )

    default_level = "DEBUG" if environment == "development" else "INFO"
    return AppConfig(
        port=_int_env("PORT", DEFAULT_PORT),
        environment=environment,
        host=os.getenv("HOST", "0.0.0.0"),
        cors_allow_origins=_csv_env("CORS_ALLOW_ORIGINS", ["*"]),
        storage_provider=storage,
        jwt_secret=os.getenv("JWT_SECRET") or None,
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
        session_expires_minutes=_int_env("SESSION_EXPIRES_MINUTES", 10080),
        log_level=(os.getenv("LOG_LEVEL") or default_level).upper(),
    )


# PUBLIC_INTERFACE
def listen_port(config: AppConfig) -> int:
    """Port the server binds to: the configured one, else the listen-time fallback."""
    if config.port is None:
        logger.warning(
            "No port configured; falling back to %s (config default is %s)",
            FALLBACK_LISTEN_PORT,
            DEFAULT_PORT,
        )
        return FALLBACK_LISTEN_PORT
    return config.port


# PUBLIC_INTERFACE
def build_dsn() -> str:
    """
    Build the Postgres DSN from the standard database env vars.

    Uses:
      - DATABASE_URL or POSTGRES_URL (full DSN; if provided, it wins)
      - POSTGRES_USER, POSTGRES_PASSWORD, POSTGRES_DB, POSTGRES_PORT, POSTGRES_HOST
    """
    url = os.getenv("DATABASE_URL") or os.getenv("POSTGRES_URL")
    if url:
        return url

    user = _required_env("POSTGRES_USER")
    password = _required_env("POSTGRES_PASSWORD")
    db = _required_env("POSTGRES_DB")
    port = os.getenv("POSTGRES_PORT", "5432")
    host = os.getenv("POSTGRES_HOST", "localhost")
    return f"postgresql://{user}:{password}@{host}:{port}/{db}"
