from __future__ import annotations

import enum
import uuid
from datetime import datetime, timedelta

from sqlalchemy import Boolean, Enum, String, Text, Uuid, event, inspect
from sqlalchemy.orm import Mapped, mapped_column

from labtenancy.db.base import Base, UTCDateTime
from labtenancy.errors import ImmutableAuditRecordError
from labtenancy.models.mixins import LabScoped

ARCHIVE_AFTER = timedelta(days=90)


class EntityType(str, enum.Enum):
    """Closed set of audited entity types."""

    LAB = "Lab"
    USER = "User"
    USER_LAB = "UserLab"
    SAMPLE = "Sample"
    TEST_RESULT = "TestResult"
    PARAMETER = "Parameter"
    AUDIT_LOG = "AuditLog"
    AUDIT_LOG_ARCHIVE = "AuditLogArchive"


class AuditAction(str, enum.Enum):
    CREATE = "Create"
    UPDATE = "Update"
    DELETE = "Delete"
    RESTORE = "Restore"


class _AuditColumns(LabScoped):
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    entity_type: Mapped[EntityType] = mapped_column(
        Enum(EntityType, native_enum=False, length=32), nullable=False, index=True
    )
    entity_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    # No FK: audit rows outlive anything they describe.
    lab_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    action: Mapped[AuditAction] = mapped_column(Enum(AuditAction, native_enum=False, length=16), nullable=False)
    old_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_truncated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)


class AuditLog(_AuditColumns, Base):
    """
    Immutable change record.

    Inserted only by the flush hooks (labtenancy/db/audit.py). The one
    permitted in-place change is flipping ``is_archived``.
    """

    __tablename__ = "audit_logs"

    is_archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)

    @property
    def archive_eligible_at(self) -> datetime:
        return self.timestamp + ARCHIVE_AFTER


class AuditLogArchive(_AuditColumns, Base):
    __tablename__ = "audit_logs_archive"

    archived_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


MUTABLE_AUDIT_FIELDS = frozenset({"is_archived"})


@event.listens_for(AuditLog, "before_update")
def _reject_audit_update(mapper, connection, target: AuditLog) -> None:
    state = inspect(target)
    changed = {attr.key for attr in state.attrs if attr.history.has_changes()}
    illegal = changed - MUTABLE_AUDIT_FIELDS
    if illegal:
        raise ImmutableAuditRecordError(f"Audit records are immutable; attempted change to {sorted(illegal)}")


@event.listens_for(AuditLog, "before_delete")
@event.listens_for(AuditLogArchive, "before_delete")
def _reject_audit_delete(mapper, connection, target) -> None:
    raise ImmutableAuditRecordError("Audit records cannot be deleted")


@event.listens_for(AuditLogArchive, "before_update")
def _reject_archive_update(mapper, connection, target: AuditLogArchive) -> None:
    raise ImmutableAuditRecordError("Archived audit records are immutable")
