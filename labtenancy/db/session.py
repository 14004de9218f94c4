from __future__ import annotations

from collections.abc import Generator

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from labtenancy.clock import SystemClock
from labtenancy.db import binder as _binder  # noqa: F401  (register session hooks)
from labtenancy.db import filters as _filters  # noqa: F401
from labtenancy.db import interceptors as _interceptors  # noqa: F401
from labtenancy.db.unit_of_work import UnitOfWorkContext, attach_context
from labtenancy.security.context import SecurityContext
from labtenancy.settings import get_settings

_settings = get_settings()
_db_url = _settings.resolved_db_url()

if _db_url.startswith("sqlite"):
    engine = create_engine(_db_url, connect_args={"check_same_thread": False})
else:
    engine = create_engine(
        _db_url,
        pool_size=_settings.db_pool_size,
        max_overflow=_settings.db_max_overflow,
        pool_recycle=_settings.db_pool_recycle,
        pool_pre_ping=True,
    )

SessionLocal = sessionmaker(bind=engine, autoflush=False, class_=Session)


def open_session(context: UnitOfWorkContext, factory: sessionmaker = SessionLocal) -> Session:
    """
    Session carrying ``context`` for its whole lifetime.

    For work outside a request (jobs, seeding): pass an explicit context, e.g.
    ``UnitOfWorkContext(security=SecurityContext.unscoped())`` for "System".
    """

    session = factory()
    attach_context(session, context)
    return session


def request_session(request: Request, factory: sessionmaker) -> Generator[Session, None, None]:
    """
    One session per request, carrying the request's security context.

    Existing query code stays unchanged: ``db.scalars(select(Sample))`` is
    scoped by the ``do_orm_execute`` filters, every transaction binds the
    connection's session settings, and every flush is audited.
    """

    security = getattr(request.state, "security_context", None) or SecurityContext.unscoped()
    clock = getattr(request.app.state, "clock", None) or SystemClock()
    ip_address = request.client.host if request.client else None

    db = open_session(UnitOfWorkContext(security=security, clock=clock, ip_address=ip_address), factory)
    try:
        yield db
    finally:
        db.close()


def get_db(request: Request) -> Generator[Session, None, None]:
    """Main DB dependency. Uses the app's session factory when one was configured."""

    factory = getattr(request.app.state, "session_factory", None) or SessionLocal
    yield from request_session(request, factory)


def get_security_db(request: Request) -> Generator[Session, None, None]:
    """
    Session for the global security dependency (user and membership lookups).

    Opened before the request's security context exists, so it is always
    unscoped. FastAPI caches dependency results per callable for the whole
    request; a callable distinct from ``get_db`` keeps this session from
    being handed to an endpoint.
    """

    factory = getattr(request.app.state, "session_factory", None) or SessionLocal
    yield from request_session(request, factory)
