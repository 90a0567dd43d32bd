"""
Process bootstrap.

Run with `python -m src.api` (or the `auth-starter` script), or through
uvicorn's factory mode: `uvicorn --factory src.api.main:create_app`.
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.auth_routes import build_auth_router
from src.api.auth_store import AuthStore, InMemoryAuthStore, PostgresAuthStore
from src.api.auth_utils import Auth, require_session
from src.api.config import AppConfig, build_dsn, listen_port, load_app_config
from src.api.db import PostgresPool
from src.api.errors import install_exception_handlers
from src.api.routes import router as app_router

logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "App", "description": "Root greeting."},
    {"name": "Health", "description": "Service health checks."},
    {"name": "Auth", "description": "Email/password sign-up, sign-in and sessions."},
]


# PUBLIC_INTERFACE
def configure_logging(config: AppConfig) -> None:
    """Send service logs to stderr at the configured level."""
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


# PUBLIC_INTERFACE
def build_store(config: AppConfig) -> AuthStore:
    """Construct the storage provider named by the config."""
    if config.storage_provider == "memory":
        return InMemoryAuthStore()
    return PostgresAuthStore(PostgresPool(build_dsn()))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Provision auth tables on startup, release the store on shutdown."""
    config: AppConfig = app.state.config
    auth: Auth = app.state.auth
    logger.info("Starting API in %s mode", config.environment)
    logger.info("CORS origins: %s", config.cors_allow_origins)
    logger.info("Auth storage provider: %s", config.storage_provider)
    auth.store.ensure_schema()

    yield

    logger.info("Shutting down API")
    auth.store.close()


# PUBLIC_INTERFACE
def create_app(config: Optional[AppConfig] = None, auth: Optional[Auth] = None) -> FastAPI:
    """
    Build the application.

    Dependencies are constructed here and kept on app.state; nothing is
    created at import time.
    """
    config = config or load_app_config()
    configure_logging(config)
    auth = auth or Auth.from_config(config, build_store(config))

    app = FastAPI(
        title="Auth Starter API",
        description=(
            "Minimal service bootstrap with email/password authentication.\n\n"
            "Auth: send `Authorization: Bearer <token>` or the session cookie on protected routes."
        ),
        version="1.0.0",
        openapi_tags=openapi_tags,
        lifespan=lifespan,
        dependencies=[Depends(require_session)],
    )
    app.state.config = config
    app.state.auth = auth

    install_exception_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(app_router)
    app.include_router(build_auth_router(auth.base_path))
    return app


# PUBLIC_INTERFACE
def main() -> None:
    """Read config, build the app and serve it. Exits with status 1 on startup failure."""
    try:
        config = load_app_config()
        app = create_app(config)
        port = listen_port(config)
        logger.info("Listening on %s:%s", config.host, port)
        uvicorn.run(app, host=config.host, port=port, log_config=None)
    except SystemExit as exc:
        # uvicorn exits on its own when binding or lifespan startup fails.
        if exc.code not in (None, 0):
            logger.error("Error starting the application: server exited with %s", exc.code)
            sys.exit(1)
        raise
    except Exception:
        logger.exception("Error starting the application")
        sys.exit(1)


if __name__ == "__main__":
    main()
