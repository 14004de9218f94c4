"""
Audit capture and writer.

Capture runs at the very start of ``before_flush`` so it observes what the
caller asked for (a delete is still a delete, an update diff has no
tracking-column noise). Rows are written in ``after_flush`` with a Core
INSERT on the flush's own connection, so they commit or roll back together
with the business rows.

Payloads are JSON objects keyed by attribute name. Values go through
``pydantic_core.to_jsonable_python`` (UUIDs and datetimes become strings,
enums their value) and then per-field truncation.
"""

from __future__ import annotations

import json
import logging
import math
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic_core import to_jsonable_python
from sqlalchemy import inspect, insert, select
from sqlalchemy.orm import Session, attributes

from labtenancy.db.registry import SOFT_DELETE_FLAG, EntityRegistration
from labtenancy.db.unit_of_work import SYSTEM_ACTOR, UnitOfWorkContext
from labtenancy.models.audit import AuditAction, AuditLog

logger = logging.getLogger(__name__)

TRUNCATION_THRESHOLD = 50
TRUNCATION_MARKER = "...[truncated]"

__all__ = [
    "SYSTEM_ACTOR",
    "TRUNCATION_MARKER",
    "TRUNCATION_THRESHOLD",
    "PendingAudit",
    "capture_changes",
    "truncate_values",
    "write_audit_records",
]


@dataclass
class PendingAudit:
    obj: Any
    registration: EntityRegistration
    action: AuditAction
    timestamp: datetime
    old_values: dict[str, Any] | None = None
    new_values: dict[str, Any] | None = None


def truncate_values(values: dict[str, Any] | None) -> tuple[dict[str, Any] | None, list[str]]:
    """
    Truncate oversized string values one field at a time.

    Returns the new mapping and the names of the truncated fields. A
    truncated value is exactly ``TRUNCATION_THRESHOLD`` characters long and
    ends with ``TRUNCATION_MARKER``.
    """

    if values is None:
        return None, []

    keep = TRUNCATION_THRESHOLD - len(TRUNCATION_MARKER)
    result: dict[str, Any] = {}
    truncated: list[str] = []
    for key, value in values.items():
        if isinstance(value, str) and len(value) > TRUNCATION_THRESHOLD:
            result[key] = value[:keep] + TRUNCATION_MARKER
            truncated.append(key)
        else:
            result[key] = value
    return result, truncated


def _committed_values(session: Session, obj: Any, keys: list[str] | tuple[str, ...]) -> dict[str, Any]:
    """
    Values of ``keys`` as last loaded from (or flushed to) the database.

    Attributes that were expired or never loaded have no history to read
    from; those are fetched with a Core SELECT on the flush connection,
    which bypasses the ORM read filters.
    """

    values: dict[str, Any] = {}
    missing: list[str] = []
    for key in keys:
        history = attributes.get_history(obj, key, passive=attributes.PASSIVE_NO_INITIALIZE)
        if history.deleted:
            values[key] = history.deleted[0]
        elif history.unchanged:
            values[key] = history.unchanged[0]
        else:
            missing.append(key)

    if missing:
        values.update(_load_committed(session, obj, missing))
    return values


def _load_committed(session: Session, obj: Any, keys: list[str]) -> dict[str, Any]:
    state = inspect(obj)
    if state.identity is None:
        return {key: None for key in keys}

    mapper = state.mapper
    columns = [mapper.column_attrs[key].columns[0] for key in keys]
    criteria = [column == value for column, value in zip(mapper.primary_key, state.identity)]
    row = session.connection().execute(select(*columns).where(*criteria)).one_or_none()
    if row is None:
        return {key: None for key in keys}
    return dict(zip(keys, row))


def _snapshot_committed(session: Session, obj: Any, registration: EntityRegistration) -> dict[str, Any]:
    committed = _committed_values(session, obj, registration.fields)
    return {key: committed[key] for key in registration.fields}


def _snapshot_current(obj: Any, registration: EntityRegistration) -> dict[str, Any]:
    return {key: getattr(obj, key) for key in registration.fields}


def _diff(session: Session, obj: Any, registration: EntityRegistration) -> tuple[dict[str, Any], dict[str, Any]]:
    pending: dict[str, Any] = {}
    for key in registration.fields:
        history = attributes.get_history(obj, key, passive=attributes.PASSIVE_NO_INITIALIZE)
        if history.added:
            pending[key] = history.added[0]
    if not pending:
        return {}, {}

    committed = _committed_values(session, obj, list(pending))
    old: dict[str, Any] = {}
    new: dict[str, Any] = {}
    for key, after in pending.items():
        before = committed[key]
        if before == after:
            continue
        old[key] = before
        new[key] = after
    return old, new


def capture_changes(session: Session, uow: UnitOfWorkContext) -> list[PendingAudit]:
    """
    One pending audit entry per pending insert, real update, and delete.

    Must run before anything else in ``before_flush`` touches the session.
    """

    if uow.suppress_audit:
        return []

    registry = uow.entity_registry()
    now = uow.clock.now()
    pending: list[PendingAudit] = []

    for obj in session.new:
        registration = registry.classify(type(obj))
        if isinstance(registration, EntityRegistration):
            pending.append(PendingAudit(obj, registration, AuditAction.CREATE, now))

    for obj in session.dirty:
        registration = registry.classify(type(obj))
        if not isinstance(registration, EntityRegistration):
            continue
        old, new = _diff(session, obj, registration)
        if not new:
            continue
        action = AuditAction.UPDATE
        if registration.soft_delete and old.get(SOFT_DELETE_FLAG) is True and new.get(SOFT_DELETE_FLAG) is False:
            action = AuditAction.RESTORE
        pending.append(PendingAudit(obj, registration, action, now, old_values=old, new_values=new))

    for obj in session.deleted:
        registration = registry.classify(type(obj))
        if isinstance(registration, EntityRegistration):
            pending.append(
                PendingAudit(obj, registration, AuditAction.DELETE, now, old_values=_snapshot_committed(session, obj, registration))
            )

    return pending


def _encode(values: dict[str, Any] | None) -> dict[str, Any] | None:
    if values is None:
        return None
    return {key: _finite(value) for key, value in to_jsonable_python(values).items()}


def _finite(value: Any) -> Any:
    # JSON has no NaN/Infinity literals; keep them readable as strings.
    if isinstance(value, float) and not math.isfinite(value):
        if math.isnan(value):
            return "NaN"
        return "Infinity" if value > 0 else "-Infinity"
    return value


def _lab_id(entry: PendingAudit) -> Any:
    field = entry.registration.lab_field
    if field is None:
        return None
    if entry.old_values is not None and field in entry.old_values:
        return entry.old_values[field]
    return getattr(entry.obj, field)


def _render(entry: PendingAudit, uow: UnitOfWorkContext) -> dict[str, Any]:
    if entry.action is AuditAction.CREATE:
        entry.new_values = _snapshot_current(entry.obj, entry.registration)

    old, old_truncated = truncate_values(_encode(entry.old_values))
    new, new_truncated = truncate_values(_encode(entry.new_values))
    # Identity keys are assigned after after_flush; read the PK straight off the instance.
    entity_id = inspect(type(entry.obj)).primary_key_from_instance(entry.obj)[0]

    truncated_fields = sorted(set(old_truncated) | set(new_truncated))
    if truncated_fields:
        logger.warning(
            "Audit values truncated entity_type=%s entity_id=%s fields=%s",
            entry.registration.entity_type.value,
            entity_id,
            ",".join(truncated_fields),
        )

    return {
        "id": uuid.uuid4(),
        "user_id": uow.actor,
        "entity_type": entry.registration.entity_type,
        "entity_id": entity_id,
        "lab_id": _lab_id(entry),
        "action": entry.action,
        "old_value": json.dumps(old, allow_nan=False) if old is not None else None,
        "new_value": json.dumps(new, allow_nan=False) if new is not None else None,
        "is_truncated": bool(truncated_fields),
        "timestamp": entry.timestamp,
        "ip_address": uow.ip_address,
        "is_archived": False,
    }


def write_audit_records(session: Session, uow: UnitOfWorkContext) -> int:
    """Insert the staged audit rows on the flush connection; returns the row count."""

    staged, uow.staged_audit = uow.staged_audit, []
    if not staged:
        return 0

    rows = [_render(entry, uow) for entry in staged]
    with uow.audit_suppressed():
        session.connection().execute(insert(AuditLog.__table__), rows)

    logger.debug("Wrote %d audit record(s)", len(rows))
    return len(rows)
