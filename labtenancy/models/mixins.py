from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from labtenancy.db.base import UTCDateTime


class TrackedMixin:
    """Who/when columns, stamped by the flush hook (never by callers)."""

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    created_by: Mapped[str] = mapped_column(String(100), nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    updated_by: Mapped[str | None] = mapped_column(String(100), nullable=True)


class SoftDeleteMixin:
    """
    Soft-delete contract: ``is_deleted`` + ``deleted_at`` travel together.

    ``session.delete(obj)`` on these models is rewritten into an UPDATE at
    flush time; see labtenancy/db/soft_delete.py.
    """

    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    deleted_by: Mapped[str | None] = mapped_column(String(100), nullable=True)


class LabScoped:
    """
    Marker for models carrying a ``lab_id`` attribute.

    Reads of these models are restricted to the current lab when the session
    is bound to one (app-level mirror of the database RLS policies).
    """


class LabOwnedMixin(LabScoped):
    lab_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("labs.id"), nullable=False, index=True)
