from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from labtenancy.clock import Clock, SystemClock
from labtenancy.db.base import Base
from labtenancy.db.init_db import init_db
from labtenancy.db.registry import get_registry
from labtenancy.db.session import SessionLocal
from labtenancy.errors import LabAccessError, SessionBindingError
from labtenancy.logging_config import configure_app_logging
from labtenancy.routers import audit_logs, health, me, samples, test_results
from labtenancy.security.config import SecurityConfig, load_security_config
from labtenancy.security.dependencies import enforce_security
from labtenancy.settings import Settings, get_settings
from labtenancy.tokens import TokenConfig, TokenValidator

logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = "1"


def _build_token_validator(settings: Settings, config: SecurityConfig) -> TokenValidator | None:
    if config.auth.provider != "jwt":
        return None
    if not settings.jwt_secret:
        raise RuntimeError("APP_JWT_SECRET must be set when the jwt auth provider is configured")
    jwt_config = config.auth.jwt
    return TokenValidator(
        TokenConfig(
            key=settings.jwt_secret,
            algorithms=tuple(jwt_config.algorithms),
            audience=jwt_config.audience,
            issuer=jwt_config.issuer,
            leeway_seconds=jwt_config.leeway_seconds,
        )
    )


def _access_denied(request: Request, exc: LabAccessError) -> JSONResponse:
    # Same body for every denial; only the machine-readable reason varies.
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": LabAccessError.public_message, "reason": exc.reason.value},
    )


def _retryable(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Transient database failure path=%s (%s)", request.url.path, type(exc).__name__)
    return JSONResponse(
        status_code=503,
        content={"detail": "Service temporarily unavailable, retry the request"},
        headers={"Retry-After": RETRY_AFTER_SECONDS},
    )


def create_app(
    settings: Settings | None = None,
    *,
    clock: Clock | None = None,
    session_factory: sessionmaker | None = None,
    initialize_database: bool = True,
) -> FastAPI:
    settings = settings or get_settings()
    factory = session_factory or SessionLocal

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        configure_app_logging(settings.log_level)
        logger.info("App startup beginning")

        config = load_security_config(settings.resolved_security_config_path())
        app.state.security_config = config
        app.state.token_validator = _build_token_validator(settings, config)
        logger.info("Loaded security config: %s", settings.resolved_security_config_path())

        # Refuse to serve with an unregistered model or a broken soft-delete contract.
        get_registry().validate_models(Base)

        if initialize_database:
            init_db(factory, settings)
            logger.info("Database initialized (tables ensured + seed if needed)")

        yield

    # Global dependency: applies security with zero changes to route handlers.
    app = FastAPI(dependencies=[Depends(enforce_security)], lifespan=lifespan)
    app.state.system_admin_user_id = settings.system_admin_user_id
    app.state.clock = clock or SystemClock()
    app.state.session_factory = factory

    app.add_exception_handler(LabAccessError, _access_denied)
    app.add_exception_handler(SessionBindingError, _retryable)
    app.add_exception_handler(OperationalError, _retryable)

    app.include_router(health.router)
    app.include_router(me.router)
    app.include_router(samples.router)
    app.include_router(test_results.router)
    app.include_router(audit_logs.router)

    return app


app = create_app()
