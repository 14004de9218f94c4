from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from labtenancy.db.session import get_security_db
from labtenancy.models.tenancy import User
from labtenancy.security.auth import extract_subject_id, load_user
from labtenancy.security.authorization import ensure_authorized
from labtenancy.security.config import SecurityConfig
from labtenancy.security.context import Role, SecurityContext
from labtenancy.security.resolver import resolve_security_context


def get_security_config(request: Request) -> SecurityConfig:
    config = getattr(request.app.state, "security_config", None)
    if config is None:
        raise RuntimeError("Security config not loaded. Did app startup run?")
    return config


def get_current_user(request: Request) -> User:
    user = getattr(request.state, "user", None)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return user


def get_security_context(request: Request) -> SecurityContext:
    context = getattr(request.state, "security_context", None)
    if context is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return context


def enforce_security(
    request: Request,
    config: SecurityConfig = Depends(get_security_config),
    db: Session = Depends(get_security_db),
) -> None:
    """
    Global security dependency.

    Runs after routing and before the endpoint's own dependencies, so the
    endpoint's ``get_db`` session is opened with the context resolved here.
    Steps: authenticate -> resolve lab context from UserLab -> role gate.
    """

    rule = config.match(request.url.path, request.method.upper())

    endpoint = request.scope.get("endpoint")
    decorator_role: Role | None = getattr(endpoint, "__security_minimum_role__", None) if endpoint else None
    tenant_optional = bool(getattr(endpoint, "__security_tenant_optional__", False)) if endpoint else False

    auth_required = rule.auth_required or decorator_role is not None
    if not auth_required:
        return

    validator = getattr(request.app.state, "token_validator", None)
    subject_id = extract_subject_id(request, config, validator)
    if subject_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing credentials")

    user = load_user(db, subject_id)
    request.state.user = user

    context = resolve_security_context(
        db,
        user.id,
        request.headers.get(config.auth.tenant_header),
        getattr(request.app.state, "system_admin_user_id", None),
        require_lab=rule.lab_scoped and not tenant_optional,
    )
    request.state.security_context = context

    minimum_role = _stricter(rule.minimum_role, decorator_role)
    if minimum_role is not None:
        ensure_authorized(context, minimum_role)


def _stricter(a: Role | None, b: Role | None) -> Role | None:
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)
