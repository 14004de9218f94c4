"""
Error taxonomy for tenant context, authorization and data-layer configuration.

Access errors are user-visible but deliberately generic: the public message
never says whether a resource exists in another lab, and never lists the
labs a caller *does* belong to. Only the machine-readable ``reason`` varies.
"""

from __future__ import annotations

from enum import Enum


class DenialReason(str, Enum):
    MISSING_CONTEXT = "missing_context"
    ROLE_INSUFFICIENT = "role_insufficient"
    TENANT_MISMATCH = "tenant_mismatch"


class LabAccessError(Exception):
    """Base class for rejected requests (403)."""

    status_code = 403
    reason: DenialReason
    public_message = "Access denied"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.public_message)


class MissingTenantContext(LabAccessError):
    """No tenant-selector header and the caller is not the system admin."""

    reason = DenialReason.MISSING_CONTEXT


class TenantAccessDenied(LabAccessError):
    """Selected lab is not one the caller belongs to, or the resource lives elsewhere."""

    reason = DenialReason.TENANT_MISMATCH


class RoleInsufficient(LabAccessError):
    """Caller's role in the selected lab is below the operation's minimum."""

    reason = DenialReason.ROLE_INSUFFICIENT


class ConfigurationError(RuntimeError):
    """A model/registry defect. The process should not serve traffic with it."""


class AuditEntityTypeUnmapped(ConfigurationError):
    def __init__(self, model: type) -> None:
        super().__init__(f"No audit entity type registered for {model.__name__}")
        self.model = model


class SoftDeleteContractViolation(ConfigurationError):
    def __init__(self, model: type, missing: str) -> None:
        super().__init__(f"{model.__name__} claims soft delete but has no usable '{missing}' column")
        self.model = model
        self.missing = missing


class SessionBindingError(Exception):
    """
    Writing the security context to the connection failed.

    Transient (connection level), so callers may retry; it is never reported
    as an access denial.
    """

    retryable = True


class ImmutableAuditRecordError(ValueError):
    """An audit row was changed in place (other than the archived flag) or deleted."""
