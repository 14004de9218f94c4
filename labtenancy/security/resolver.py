from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from labtenancy.errors import MissingTenantContext, TenantAccessDenied
from labtenancy.models.tenancy import Lab, UserLab
from labtenancy.security.context import SecurityContext

logger = logging.getLogger(__name__)


def parse_lab_id(raw: str | None) -> UUID | None:
    """
    Lab id from the tenant-selector header. Blank means "no lab selected".

    A malformed value can never name a lab the caller belongs to, so it is
    rejected exactly like a lab without membership.
    """

    if raw is None or not raw.strip():
        return None
    try:
        return UUID(raw.strip())
    except ValueError:
        raise TenantAccessDenied() from None


def resolve_security_context(
    db: Session,
    subject_id: UUID,
    lab_header: str | None,
    system_admin_id: UUID | None,
    *,
    require_lab: bool = True,
) -> SecurityContext:
    """
    Build the request's SecurityContext.

    - the configured system-admin identity gets the admin context, lab or not
    - everyone else needs the tenant header (unless ``require_lab`` is off)
      and a membership in that (non-deleted) lab; the role is read from
      that membership, never from token claims

    Runs on every request; nothing is cached, so revoking a membership takes
    effect on the next request.
    """

    if system_admin_id is not None and subject_id == system_admin_id:
        logger.debug("Resolved system admin context user_id=%s", subject_id)
        return SecurityContext.system_admin(subject_id)

    lab_id = parse_lab_id(lab_header)
    if lab_id is None:
        if require_lab:
            raise MissingTenantContext()
        logger.debug("Resolved unscoped context user_id=%s", subject_id)
        return SecurityContext.unscoped(subject_id)

    role = db.execute(
        select(UserLab.role)
        .join(Lab, Lab.id == UserLab.lab_id)
        .where(
            UserLab.user_id == subject_id,
            UserLab.lab_id == lab_id,
            Lab.is_deleted.is_(False),
        )
    ).scalar_one_or_none()

    if role is None:
        logger.warning("Lab membership denied user_id=%s lab_id=%s", subject_id, lab_id)
        raise TenantAccessDenied()

    logger.debug("Resolved lab context user_id=%s lab_id=%s role=%s", subject_id, lab_id, role.name)
    return SecurityContext.for_lab(subject_id, lab_id, role)
