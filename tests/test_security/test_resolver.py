"""Security context resolution: always from UserLab, never from token claims."""
from __future__ import annotations

import logging
import uuid

import pytest
from sqlalchemy import select

from labtenancy.errors import DenialReason, MissingTenantContext, TenantAccessDenied
from labtenancy.models.tenancy import Lab, UserLab
from labtenancy.security.context import Role
from labtenancy.security.resolver import parse_lab_id, resolve_security_context


def test_member_gets_role_from_membership(seed, db_session):
    context = resolve_security_context(db_session, seed.alice, str(seed.lab_a), seed.root)
    assert context.lab_id == seed.lab_a
    assert context.role is Role.ADMIN
    assert context.is_system_admin is False

    context = resolve_security_context(db_session, seed.alice, str(seed.lab_b), seed.root)
    assert context.role is Role.VIEWER


def test_missing_header_rejected_for_non_admin(seed, db_session):
    with pytest.raises(MissingTenantContext) as excinfo:
        resolve_security_context(db_session, seed.alice, None, seed.root)
    assert excinfo.value.reason is DenialReason.MISSING_CONTEXT

    with pytest.raises(MissingTenantContext):
        resolve_security_context(db_session, seed.alice, "   ", seed.root)


def test_missing_header_allowed_when_lab_not_required(seed, db_session):
    context = resolve_security_context(db_session, seed.alice, None, seed.root, require_lab=False)
    assert context.user_id == seed.alice
    assert context.lab_id is None
    assert context.role is None


def test_non_member_is_denied_without_listing_memberships(seed, db_session, caplog):
    caplog.set_level(logging.WARNING, logger="labtenancy")
    with pytest.raises(TenantAccessDenied) as excinfo:
        resolve_security_context(db_session, seed.tom, str(seed.lab_b), seed.root)

    assert excinfo.value.reason is DenialReason.TENANT_MISMATCH
    assert str(excinfo.value) == "Access denied"
    warning = next(r.getMessage() for r in caplog.records if r.levelno == logging.WARNING)
    assert str(seed.tom) in warning and str(seed.lab_b) in warning
    assert str(seed.lab_a) not in warning


@pytest.mark.parametrize("raw", ["not-a-uuid", "1234", "'; DROP TABLE labs; --"])
def test_malformed_lab_header_is_denied(seed, db_session, raw):
    with pytest.raises(TenantAccessDenied):
        resolve_security_context(db_session, seed.alice, raw, seed.root)


def test_unknown_lab_is_denied(seed, db_session):
    with pytest.raises(TenantAccessDenied):
        resolve_security_context(db_session, seed.alice, str(uuid.uuid4()), seed.root)


def test_system_admin_needs_no_lab(seed, db_session):
    context = resolve_security_context(db_session, seed.root, None, seed.root)
    assert context.is_system_admin is True
    assert context.lab_id is None

    # Header is ignored for the break-glass identity.
    context = resolve_security_context(db_session, seed.root, str(seed.lab_b), seed.root)
    assert context.is_system_admin is True
    assert context.lab_id is None


def test_no_system_admin_configured(seed, db_session):
    with pytest.raises(MissingTenantContext):
        resolve_security_context(db_session, seed.root, None, None)


def test_membership_changes_apply_to_next_resolution(seed, db_session):
    assert resolve_security_context(db_session, seed.vic, str(seed.lab_a), None).role is Role.VIEWER

    membership = db_session.scalars(
        select(UserLab).where(UserLab.user_id == seed.vic, UserLab.lab_id == seed.lab_a)
    ).one()
    membership.role = Role.TECHNICIAN
    db_session.commit()
    assert resolve_security_context(db_session, seed.vic, str(seed.lab_a), None).role is Role.TECHNICIAN

    db_session.delete(membership)
    db_session.commit()
    with pytest.raises(TenantAccessDenied):
        resolve_security_context(db_session, seed.vic, str(seed.lab_a), None)


def test_soft_deleted_lab_grants_nothing(seed, db_session):
    db_session.delete(db_session.get(Lab, seed.lab_c))
    db_session.commit()
    with pytest.raises(TenantAccessDenied):
        resolve_security_context(db_session, seed.alice, str(seed.lab_c), None)


def test_parse_lab_id():
    lab = uuid.uuid4()
    assert parse_lab_id(f"  {lab}  ") == lab
    assert parse_lab_id(None) is None
    assert parse_lab_id("") is None
