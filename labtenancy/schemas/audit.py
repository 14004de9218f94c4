from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from labtenancy.models.audit import AuditAction, EntityType


class AuditLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: str
    entity_type: EntityType
    entity_id: UUID
    lab_id: UUID | None
    action: AuditAction
    old_value: str | None
    new_value: str | None
    is_truncated: bool
    timestamp: datetime
    ip_address: str | None
    is_archived: bool


class AuditLogPageOut(BaseModel):
    items: list[AuditLogOut]
    total_count: int
    page_number: int
    page_size: int
    total_pages: int
