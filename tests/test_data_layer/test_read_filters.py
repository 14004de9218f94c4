"""
Read scoping through the ``do_orm_execute`` filters.

Existing query code stays unchanged: ``select(Sample)`` only returns rows of
the selected lab, and never soft-deleted rows unless asked.
"""
from __future__ import annotations

from sqlalchemy import func, select

from labtenancy.models.audit import AuditLog, AuditLogArchive
from labtenancy.models.lab_data import Sample, TestResult
from labtenancy.models.tenancy import Lab
from labtenancy.security.context import Role


def test_lab_bound_session_sees_only_its_lab(seed, as_lab):
    db = as_lab(seed.alice, seed.lab_b, Role.VIEWER)
    assert [s.id for s in db.scalars(select(Sample)).all()] == [seed.sample_b]
    assert db.get(Sample, seed.sample_a) is None
    assert db.scalars(select(TestResult)).all() == []


def test_every_lab_scoped_model_is_filtered(seed, as_lab):
    db = as_lab(seed.tom, seed.lab_a, Role.TECHNICIAN)
    for model in (Sample, TestResult, AuditLog, AuditLogArchive):
        lab_ids = set(db.scalars(select(model.lab_id)).all())
        assert lab_ids <= {seed.lab_a}, model.__name__
    assert [s.id for s in db.scalars(select(Sample)).all()] == [seed.sample_a]


def test_system_admin_sees_every_lab(seed, admin_session):
    ids = {s.id for s in admin_session.scalars(select(Sample)).all()}
    assert ids == {seed.sample_a, seed.sample_b}


def test_lab_scope_applies_inside_joins_and_aggregates(seed, as_lab):
    db = as_lab(seed.vic, seed.lab_a, Role.VIEWER)
    count = db.scalar(select(func.count(TestResult.id)).join(Sample, Sample.id == TestResult.sample_id))
    assert count == 1

    other = as_lab(seed.alice, seed.lab_b, Role.VIEWER)
    assert other.scalar(select(func.count(TestResult.id))) == 0


def test_audit_rows_are_scoped_to_the_selected_lab(seed, as_lab):
    db = as_lab(seed.alice, seed.lab_b, Role.VIEWER)
    lab_ids = set(db.scalars(select(AuditLog.lab_id)).all())
    assert lab_ids == {seed.lab_b}


def test_relationship_loads_follow_parent_criteria(seed, as_lab):
    db = as_lab(seed.alice, seed.lab_a, Role.ADMIN)
    result = db.get(TestResult, seed.result_a)
    result.is_deleted = True
    db.commit()

    sample = db.scalars(select(Sample).where(Sample.id == seed.sample_a)).one()
    assert sample.test_results == []
    assert sample.location is not None


def test_soft_deleted_lab_hidden_by_default(seed, admin_session):
    lab = admin_session.get(Lab, seed.lab_c)
    admin_session.delete(lab)
    admin_session.commit()

    names = admin_session.scalars(select(Lab.name).order_by(Lab.name)).all()
    assert names == ["Lab A", "Lab B"]
    assert len(admin_session.scalars(select(Lab).execution_options(include_deleted=True)).all()) == 3
