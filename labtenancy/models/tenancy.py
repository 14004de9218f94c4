from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Enum, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from labtenancy.db.base import Base
from labtenancy.models.mixins import SoftDeleteMixin, TrackedMixin
from labtenancy.security.context import Role


class Lab(TrackedMixin, SoftDeleteMixin, Base):
    __tablename__ = "labs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    location: Mapped[str | None] = mapped_column(String(500), nullable=True)
    contact_info: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    memberships: Mapped[list["UserLab"]] = relationship(back_populates="lab")


class User(TrackedMixin, Base):
    """Global identity. Roles live on UserLab, never here."""

    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("email"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(256), nullable=False)
    user_name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    memberships: Mapped[list["UserLab"]] = relationship(back_populates="user")


class UserLab(TrackedMixin, Base):
    """Membership of a user in a lab; the only source of a user's role."""

    __tablename__ = "user_labs"
    __table_args__ = (UniqueConstraint("user_id", "lab_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    lab_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("labs.id"), nullable=False, index=True)
    role: Mapped[Role] = mapped_column(Enum(Role, native_enum=False, length=20), nullable=False)

    user: Mapped[User] = relationship(back_populates="memberships")
    lab: Mapped[Lab] = relationship(back_populates="memberships")
