"""
Role-hierarchy authorization gate.

Roles are ordered integers, so "at least Technician" is ``role >= TECHNICIAN``.
The role compared is always the one resolved for the *currently selected*
lab; a higher role held in another lab never applies.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from labtenancy.errors import (
    DenialReason,
    LabAccessError,
    MissingTenantContext,
    RoleInsufficient,
    TenantAccessDenied,
)
from labtenancy.security.context import Role, SecurityContext


@dataclass(frozen=True)
class AuthorizationDecision:
    allowed: bool
    reason: DenialReason | None = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOWED = AuthorizationDecision(allowed=True)

_ERRORS: dict[DenialReason, type[LabAccessError]] = {
    DenialReason.MISSING_CONTEXT: MissingTenantContext,
    DenialReason.ROLE_INSUFFICIENT: RoleInsufficient,
    DenialReason.TENANT_MISMATCH: TenantAccessDenied,
}


def authorize(context: SecurityContext, minimum_role: Role, resource_lab_id: UUID | None = None) -> AuthorizationDecision:
    if context.is_system_admin:
        return ALLOWED
    if not context.is_lab_bound:
        return AuthorizationDecision(False, DenialReason.MISSING_CONTEXT)
    if resource_lab_id is not None and resource_lab_id != context.lab_id:
        return AuthorizationDecision(False, DenialReason.TENANT_MISMATCH)
    if context.role < Role(minimum_role):
        return AuthorizationDecision(False, DenialReason.ROLE_INSUFFICIENT)
    return ALLOWED


def ensure_authorized(context: SecurityContext, minimum_role: Role, resource_lab_id: UUID | None = None) -> None:
    decision = authorize(context, minimum_role, resource_lab_id)
    if not decision.allowed:
        raise _ERRORS[decision.reason]()


def ensure_resource_in_lab(context: SecurityContext, lab_id: UUID) -> None:
    """Reject access to a resource owned by a lab other than the selected one."""

    if context.is_system_admin:
        return
    if not context.is_lab_bound:
        raise MissingTenantContext()
    if lab_id != context.lab_id:
        raise TenantAccessDenied()
