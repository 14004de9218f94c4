from __future__ import annotations

from collections.abc import Callable

from labtenancy.security.context import Role


def require_role(role: Role | str) -> Callable:
    """
    Declare the minimum per-lab role for an endpoint.

    Metadata only: the global security dependency reads it after routing and
    applies the stricter of this and the route's configured minimum.
    """

    minimum = Role.parse(role)

    def decorator(fn: Callable) -> Callable:
        existing = getattr(fn, "__security_minimum_role__", None)
        setattr(fn, "__security_minimum_role__", minimum if existing is None else max(existing, minimum))
        return fn

    return decorator


def tenant_optional() -> Callable:
    """
    Mark an endpoint as usable without the tenant-selector header
    (the caller is still authenticated).
    """

    def decorator(fn: Callable) -> Callable:
        setattr(fn, "__security_tenant_optional__", True)
        return fn

    return decorator
