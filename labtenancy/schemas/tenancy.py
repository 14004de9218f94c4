from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, ConfigDict


class MembershipOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    lab_id: UUID
    role: str


class MeOut(BaseModel):
    id: UUID
    email: str
    user_name: str
    is_system_admin: bool
    lab_id: UUID | None
    role: str | None
