from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sqlalchemy.orm import Session

from labtenancy.clock import Clock, SystemClock
from labtenancy.security.context import SecurityContext

if TYPE_CHECKING:
    from labtenancy.db.registry import EntityRegistry

UOW_KEY = "uow"
SYSTEM_ACTOR = "System"


@dataclass
class UnitOfWorkContext:
    """
    Everything the data-layer hooks need for one unit of work.

    Lives in ``Session.info`` so it has exactly the lifetime of the session
    that serves one request; nothing here is shared between requests.
    """

    security: SecurityContext
    clock: Clock = field(default_factory=SystemClock)
    ip_address: str | None = None
    registry: "EntityRegistry | None" = None
    suppress_audit: bool = False
    staged_audit: list[Any] = field(default_factory=list)

    @property
    def actor(self) -> str:
        if self.security.user_id is None:
            return SYSTEM_ACTOR
        return str(self.security.user_id)

    def entity_registry(self) -> "EntityRegistry":
        if self.registry is None:
            from labtenancy.db.registry import get_registry

            self.registry = get_registry()
        return self.registry

    @contextmanager
    def audit_suppressed(self) -> Iterator[None]:
        previous = self.suppress_audit
        self.suppress_audit = True
        try:
            yield
        finally:
            self.suppress_audit = previous


def attach_context(session: Session, context: UnitOfWorkContext) -> UnitOfWorkContext:
    session.info[UOW_KEY] = context
    return context


def get_context(session: Session) -> UnitOfWorkContext:
    """
    Context for ``session``; sessions opened without one act as "System" with
    no lab bound (RLS then denies lab-scoped rows by default).
    """

    context = session.info.get(UOW_KEY)
    if context is None:
        context = attach_context(session, UnitOfWorkContext(security=SecurityContext.unscoped()))
    return context
