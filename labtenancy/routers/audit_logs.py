from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import ValidationError
from sqlalchemy.orm import Session

from labtenancy.db.session import get_db
from labtenancy.models.audit import AuditAction, AuditLog, EntityType
from labtenancy.schemas.audit import AuditLogOut, AuditLogPageOut
from labtenancy.services.audit_log import DEFAULT_PAGE_SIZE, AuditLogQuery, get_audit_log, query_audit_logs

router = APIRouter(prefix="/audit-logs", tags=["audit_logs"])


@router.get("", response_model=AuditLogPageOut)
def list_audit_logs(
    entity_type: EntityType | None = None,
    entity_id: UUID | None = None,
    user_id: str | None = None,
    action: AuditAction | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    include_archived: bool = False,
    page_number: int = Query(default=1),
    page_size: int = Query(default=DEFAULT_PAGE_SIZE),
    db: Session = Depends(get_db),
) -> AuditLogPageOut:
    try:
        query = AuditLogQuery(
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            action=action,
            start=start,
            end=end,
            include_archived=include_archived,
            page_number=page_number,
            page_size=page_size,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=exc.errors(include_url=False)) from exc

    page = query_audit_logs(db, query)
    return AuditLogPageOut(
        items=[AuditLogOut.model_validate(item) for item in page.items],
        total_count=page.total_count,
        page_number=page.page_number,
        page_size=page.page_size,
        total_pages=page.total_pages,
    )


@router.get("/{audit_log_id}", response_model=AuditLogOut)
def read_audit_log(audit_log_id: UUID, db: Session = Depends(get_db)) -> AuditLog:
    entry = get_audit_log(db, audit_log_id)
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Audit log not found")
    return entry
