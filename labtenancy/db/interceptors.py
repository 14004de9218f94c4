"""
Flush-time orchestration.

Order inside ``before_flush`` is fixed:

1. audit capture (sees the caller's intent: deletes are still deletes)
2. tracking-column stamping
3. soft-delete rewrite

``after_flush`` writes the staged audit rows once primary keys and column
defaults are known.
"""

from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.orm import Session

from labtenancy.db.audit import capture_changes, write_audit_records
from labtenancy.db.soft_delete import apply_soft_delete
from labtenancy.db.unit_of_work import UnitOfWorkContext, get_context
from labtenancy.models.mixins import TrackedMixin


def stamp_tracking_columns(session: Session, uow: UnitOfWorkContext) -> None:
    now = uow.clock.now()
    actor = uow.actor

    for obj in session.new:
        if isinstance(obj, TrackedMixin):
            obj.created_at = now
            obj.created_by = actor

    for obj in session.dirty:
        if isinstance(obj, TrackedMixin) and session.is_modified(obj, include_collections=False):
            obj.updated_at = now
            obj.updated_by = actor


@event.listens_for(Session, "before_flush")
def _before_flush(session: Session, flush_context, instances) -> None:
    uow = get_context(session)
    uow.staged_audit = capture_changes(session, uow)
    stamp_tracking_columns(session, uow)
    apply_soft_delete(session, uow)


@event.listens_for(Session, "after_flush")
def _after_flush(session: Session, flush_context) -> None:
    write_audit_records(session, get_context(session))
