from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from labtenancy.db.registry import (
    SOFT_DELETE_ACTOR,
    SOFT_DELETE_FLAG,
    SOFT_DELETE_TIMESTAMP,
    EntityRegistration,
    EntityRegistry,
)
from labtenancy.db.unit_of_work import UnitOfWorkContext

logger = logging.getLogger(__name__)


def apply_soft_delete(session: Session, uow: UnitOfWorkContext) -> list[Any]:
    """
    Turn pending deletes of soft-deletable entities into flagged updates.

    ``Session.add`` on an object pending deletion takes it off the delete
    list, so the flush emits an UPDATE for it instead of a DELETE. Owned
    records of each rewritten entity are put back the same way, walking the
    registry's ownership map.

    Returns the rewritten entities.
    """

    pending = list(session.deleted)
    if not pending:
        return []

    registry = uow.entity_registry()
    now = uow.clock.now()
    rewritten: list[Any] = []

    for obj in pending:
        registration = registry.classify(type(obj))
        if not isinstance(registration, EntityRegistration) or not registration.soft_delete:
            continue

        session.add(obj)
        setattr(obj, SOFT_DELETE_FLAG, True)
        setattr(obj, SOFT_DELETE_TIMESTAMP, now)
        if hasattr(type(obj), SOFT_DELETE_ACTOR):
            setattr(obj, SOFT_DELETE_ACTOR, uow.actor)

        _keep_owned(session, registry, obj)
        rewritten.append(obj)
        logger.debug(
            "Delete rewritten to soft delete entity_type=%s entity_id=%s",
            registration.entity_type.value,
            getattr(obj, "id", None),
        )

    return rewritten


def _keep_owned(session: Session, registry: EntityRegistry, owner: Any) -> None:
    for key in registry.owned_relationships(type(owner)):
        value = getattr(owner, key)
        if value is None:
            continue
        children = value if isinstance(value, (list, set, tuple)) else [value]
        for child in children:
            if child in session.deleted:
                session.add(child)
            _keep_owned(session, registry, child)


def restore(obj: Any) -> None:
    """Undo a soft delete. Audited as ``Restore`` on the next flush."""

    setattr(obj, SOFT_DELETE_FLAG, False)
    setattr(obj, SOFT_DELETE_TIMESTAMP, None)
    if hasattr(type(obj), SOFT_DELETE_ACTOR):
        setattr(obj, SOFT_DELETE_ACTOR, None)
