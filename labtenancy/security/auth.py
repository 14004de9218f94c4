from __future__ import annotations

import logging
from uuid import UUID

from fastapi import HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from labtenancy.errors import ConfigurationError
from labtenancy.models.tenancy import User
from labtenancy.security.config import SecurityConfig
from labtenancy.tokens import TokenValidationError, TokenValidator

logger = logging.getLogger(__name__)


def _bearer_token(request: Request, config: SecurityConfig) -> str | None:
    header_name = config.auth.authorization_header
    bearer_prefix = config.auth.bearer_prefix

    raw = request.headers.get(header_name)
    if not raw:
        logger.info("Missing Authorization header (auth required) path=%s method=%s", request.url.path, request.method)
        return None

    prefix = f"{bearer_prefix} "
    if not raw.startswith(prefix):
        logger.warning("Invalid Authorization header format path=%s method=%s", request.url.path, request.method)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {header_name}. Expected '{bearer_prefix} <token>'.",
        )

    token = raw[len(prefix) :].strip()
    if not token:
        logger.warning("Empty bearer token path=%s method=%s", request.url.path, request.method)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {header_name}. Missing token after '{bearer_prefix}'.",
        )
    return token


def extract_subject_id(request: Request, config: SecurityConfig, validator: TokenValidator | None = None) -> UUID | None:
    """
    Authenticated subject (user UUID) of the request, or None without credentials.

    - ``dummy`` provider: the bearer token *is* the user UUID (dev/tests)
    - ``jwt`` provider: a signed JWT whose ``sub`` is the user UUID

    Only identity comes from here. Roles are never read from the token.
    """

    token = _bearer_token(request, config)
    if token is None:
        return None

    if config.auth.provider == "jwt":
        if validator is None:
            raise ConfigurationError("jwt auth provider configured but no token validator is available")
        try:
            return validator.validate(token).user_id
        except TokenValidationError as exc:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc

    try:
        return UUID(token)
    except ValueError as exc:
        logger.warning("Bearer token is not a user id path=%s method=%s", request.url.path, request.method)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid bearer token (expected a user id).",
        ) from exc


def load_user(db: Session, user_id: UUID) -> User:
    user = db.execute(select(User).where(User.id == user_id)).scalar_one_or_none()

    if user is None or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or inactive user")

    return user
