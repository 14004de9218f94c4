"""
Session-scoped security settings for database row-level security.

Every time a Session begins a transaction on a (possibly pooled, possibly
reused) connection, both settings are rewritten from the session's own
context. A connection is never trusted to carry over a previous tenant's
values, and a failed write invalidates the connection instead of handing it
to the request.

PostgreSQL: ``set_config(name, value, false)`` (session scope), read back by
RLS policies through ``current_setting(name, true)``.
SQLite (tests/dev): a per-connection TEMP table with the same key/value
shape, since SQLite has no session configuration.
"""

from __future__ import annotations

import logging

from sqlalchemy import event, text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from labtenancy.db.unit_of_work import get_context
from labtenancy.errors import ConfigurationError, SessionBindingError
from labtenancy.security.context import SecurityContext

logger = logging.getLogger(__name__)

CURRENT_LAB_ID_SETTING = "app.current_lab_id"
IS_SYSTEM_ADMIN_SETTING = "app.is_system_admin"

_PG_WRITE = text("SELECT set_config(:name, :value, false)")
_PG_READ = text("SELECT current_setting(:name, true)")

_SQLITE_CREATE = text(
    "CREATE TEMP TABLE IF NOT EXISTS session_settings (name TEXT PRIMARY KEY, value TEXT NOT NULL)"
)
_SQLITE_WRITE = text("INSERT OR REPLACE INTO temp.session_settings (name, value) VALUES (:name, :value)")
_SQLITE_READ = text("SELECT value FROM temp.session_settings WHERE name = :name")


def session_settings_for(context: SecurityContext) -> dict[str, str]:
    """
    Both settings, always. The one not in use is cleared to ``""`` so RLS
    policies see "nothing bound" rather than a stale value.
    """

    if context.is_system_admin:
        return {CURRENT_LAB_ID_SETTING: "", IS_SYSTEM_ADMIN_SETTING: "true"}
    if context.lab_id is not None:
        return {CURRENT_LAB_ID_SETTING: str(context.lab_id), IS_SYSTEM_ADMIN_SETTING: ""}
    return {CURRENT_LAB_ID_SETTING: "", IS_SYSTEM_ADMIN_SETTING: ""}


def write_session_setting(connection: Connection, name: str, value: str) -> None:
    dialect = connection.dialect.name
    if dialect == "postgresql":
        connection.execute(_PG_WRITE, {"name": name, "value": value})
    elif dialect == "sqlite":
        connection.execute(_SQLITE_CREATE)
        connection.execute(_SQLITE_WRITE, {"name": name, "value": value})
    else:
        raise ConfigurationError(f"No session setting support for dialect {dialect!r}")


def read_session_setting(connection: Connection, name: str) -> str | None:
    dialect = connection.dialect.name
    if dialect == "postgresql":
        return connection.execute(_PG_READ, {"name": name}).scalar()
    if dialect == "sqlite":
        connection.execute(_SQLITE_CREATE)
        return connection.execute(_SQLITE_READ, {"name": name}).scalar()
    raise ConfigurationError(f"No session setting support for dialect {dialect!r}")


@event.listens_for(Session, "after_begin")
def bind_session_context(session: Session, transaction, connection: Connection) -> None:
    context = get_context(session).security
    settings = session_settings_for(context)
    try:
        for name, value in settings.items():
            write_session_setting(connection, name, value)
    except SQLAlchemyError as exc:
        logger.error("Session context binding failed; invalidating connection (%s)", type(exc).__name__)
        connection.invalidate()
        raise SessionBindingError("Could not bind security context to the database connection") from exc

    logger.debug(
        "Session context bound lab_id=%s system_admin=%s",
        settings[CURRENT_LAB_ID_SETTING] or None,
        bool(settings[IS_SYSTEM_ADMIN_SETTING]),
    )
