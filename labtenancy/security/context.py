from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from uuid import UUID


class Role(IntEnum):
    """
    Per-lab role. Ascending values encode the hierarchy, so "at least X" is a
    plain ``>=`` comparison.
    """

    VIEWER = 1
    TECHNICIAN = 2
    ADMIN = 3

    @classmethod
    def parse(cls, value: object) -> "Role":
        if isinstance(value, Role):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(f"Unknown role: {value!r}") from None
        return cls(value)


@dataclass(frozen=True)
class SecurityContext:
    """
    Per-request security context.

    Exactly one of these shapes:
    - lab-bound: ``lab_id`` and ``role`` set (role taken from the UserLab row)
    - system admin: ``is_system_admin`` set, no lab
    - unscoped: authenticated (or not) but no lab selected

    Built once per request and never mutated; the role cannot be raised
    mid-request.
    """

    user_id: UUID | None
    lab_id: UUID | None = None
    role: Role | None = None
    is_system_admin: bool = False

    def __post_init__(self) -> None:
        if self.is_system_admin and (self.lab_id is not None or self.role is not None):
            raise ValueError("system admin context carries no lab or role")
        if (self.lab_id is None) != (self.role is None):
            raise ValueError("lab_id and role must be set together")

    @classmethod
    def for_lab(cls, user_id: UUID, lab_id: UUID, role: Role) -> "SecurityContext":
        return cls(user_id=user_id, lab_id=lab_id, role=Role(role))

    @classmethod
    def system_admin(cls, user_id: UUID) -> "SecurityContext":
        return cls(user_id=user_id, is_system_admin=True)

    @classmethod
    def unscoped(cls, user_id: UUID | None = None) -> "SecurityContext":
        return cls(user_id=user_id)

    @property
    def is_lab_bound(self) -> bool:
        return self.lab_id is not None
