from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from labtenancy.db.unit_of_work import get_context
from labtenancy.models.audit import ARCHIVE_AFTER, AuditLog, AuditLogArchive

logger = logging.getLogger(__name__)

_COPIED_COLUMNS = tuple(c.key for c in AuditLog.__table__.columns if c.key != "is_archived")


def archive_audit_logs(db: Session, older_than: timedelta = ARCHIVE_AFTER) -> int:
    """
    Copy audit rows older than ``older_than`` into the archive table and flag
    the originals as archived. Flushes; the caller commits.

    Run it on a session opened with a system-admin context so every lab's
    rows are visible (``open_session`` in labtenancy/db/session.py).
    """

    now = get_context(db).clock.now()
    cutoff = now - older_than

    rows = db.scalars(
        select(AuditLog)
        .where(AuditLog.is_archived.is_(False), AuditLog.timestamp < cutoff)
        .order_by(AuditLog.timestamp)
    ).all()

    for row in rows:
        db.add(AuditLogArchive(**{key: getattr(row, key) for key in _COPIED_COLUMNS}, archived_at=now))
        row.is_archived = True

    db.flush()
    logger.info("Archived %d audit record(s) older than %s", len(rows), cutoff.isoformat())
    return len(rows)
