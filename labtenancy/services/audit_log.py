"""
Read model over the audit trail.

Read-only by construction: writes only ever come from the flush hooks in
labtenancy/db/audit.py. Lab scoping is applied by the session filters, so a
lab admin only ever sees audit rows of the selected lab.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from pydantic import BaseModel, Field, field_validator
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from labtenancy.models.audit import AuditAction, AuditLog, EntityType

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100


class AuditLogQuery(BaseModel):
    entity_type: EntityType | None = None
    entity_id: UUID | None = None
    user_id: str | None = None
    action: AuditAction | None = None
    start: datetime | None = None
    end: datetime | None = None
    include_archived: bool = False
    page_number: int = Field(default=1, ge=1)
    page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)

    @field_validator("start", "end")
    @classmethod
    def assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


@dataclass(frozen=True)
class AuditLogPage:
    items: list[AuditLog]
    total_count: int
    page_number: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.page_size) if self.total_count else 0


def _conditions(query: AuditLogQuery) -> list:
    conditions = []
    if query.entity_type is not None:
        conditions.append(AuditLog.entity_type == query.entity_type)
    if query.entity_id is not None:
        conditions.append(AuditLog.entity_id == query.entity_id)
    if query.user_id is not None:
        conditions.append(AuditLog.user_id == query.user_id)
    if query.action is not None:
        conditions.append(AuditLog.action == query.action)
    if query.start is not None:
        conditions.append(AuditLog.timestamp >= query.start)
    if query.end is not None:
        conditions.append(AuditLog.timestamp <= query.end)
    if not query.include_archived:
        conditions.append(AuditLog.is_archived.is_(False))
    return conditions


def query_audit_logs(db: Session, query: AuditLogQuery) -> AuditLogPage:
    """Filtered audit rows, newest first, one page at a time."""

    conditions = _conditions(query)
    total = db.scalar(select(func.count(AuditLog.id)).where(*conditions)) or 0

    stmt = (
        select(AuditLog)
        .where(*conditions)
        .order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
        .offset((query.page_number - 1) * query.page_size)
        .limit(query.page_size)
    )
    items = list(db.scalars(stmt).all())
    return AuditLogPage(items=items, total_count=total, page_number=query.page_number, page_size=query.page_size)


def get_audit_log(db: Session, audit_log_id: UUID) -> AuditLog | None:
    return db.scalars(select(AuditLog).where(AuditLog.id == audit_log_id)).first()
