"""
Pytest fixtures for the test suite.

Every test gets a fresh in-memory SQLite database behind a ``StaticPool``:
one physical connection shared by every session, which is exactly the
"pooled connection reused by the next request" situation the session
binder has to handle.
"""
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from labtenancy.clock import FixedClock
from labtenancy.db.base import Base
from labtenancy.db.binder import CURRENT_LAB_ID_SETTING, IS_SYSTEM_ADMIN_SETTING
from labtenancy.db.session import open_session
from labtenancy.db.unit_of_work import UnitOfWorkContext
from labtenancy.models import audit as _audit_models  # noqa: F401  (register mappers)
from labtenancy.models.lab_data import (
    ComplianceStatus,
    Sample,
    SampleLocation,
    SampleType,
    TestMethod,
    TestResult,
)
from labtenancy.models.tenancy import Lab, User, UserLab
from labtenancy.security.context import Role, SecurityContext

TEST_DB_URL = "sqlite:///:memory:"
CONFIG_PATH = Path(__file__).resolve().parents[1] / "config" / "security_config.yaml"
NOW = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def engine():
    """Fresh in-memory SQLite engine; one shared connection for the whole test."""
    return create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )


@pytest.fixture
def tables(engine):
    """Create all ORM tables on the test engine."""
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def session_factory(tables):
    return sessionmaker(bind=tables, autoflush=False, class_=Session)


@pytest.fixture
def make_session(session_factory, clock):
    """
    Factory for sessions carrying an explicit security context.

    ``make_session()`` acts as "System"; pass a SecurityContext to act as a user.
    """
    opened: list[Session] = []

    def _make(security: SecurityContext | None = None, *, ip_address: str | None = None, registry=None) -> Session:
        context = UnitOfWorkContext(
            security=security or SecurityContext.unscoped(),
            clock=clock,
            ip_address=ip_address,
            registry=registry,
        )
        session = open_session(context, session_factory)
        opened.append(session)
        return session

    yield _make
    for session in opened:
        session.close()


@pytest.fixture
def db_session(make_session):
    """Session acting as "System" (no user, no lab)."""
    return make_session()


@pytest.fixture
def statements(engine):
    """
    Every SQL statement sent to the driver, in order, as
    ``(dbapi_connection_id, statement, parameters)``.
    """
    recorded: list[tuple[int, str, object]] = []

    def _record(conn, cursor, statement, parameters, context, executemany):
        recorded.append((id(conn.connection.dbapi_connection), statement, parameters))

    event.listen(engine, "before_cursor_execute", _record)
    yield recorded
    event.remove(engine, "before_cursor_execute", _record)


def settings_writes(recorded) -> list[tuple[str, str]]:
    """(name, value) pairs written by the session binder, in order."""
    writes = []
    for _conn_id, statement, parameters in recorded:
        if statement.lstrip().upper().startswith("INSERT OR REPLACE INTO TEMP.SESSION_SETTINGS"):
            name, value = tuple(parameters)
            writes.append((name, value))
    return writes


def bound_settings_at_each_statement(recorded, marker: str) -> list[dict[str, str]]:
    """
    Session settings in effect each time a statement containing ``marker``
    was executed (replaying the binder's writes in order).
    """
    current = {CURRENT_LAB_ID_SETTING: None, IS_SYSTEM_ADMIN_SETTING: None}
    seen = []
    for _conn_id, statement, parameters in recorded:
        if statement.lstrip().upper().startswith("INSERT OR REPLACE INTO TEMP.SESSION_SETTINGS"):
            name, value = tuple(parameters)
            current[name] = value
        elif marker in statement:
            seen.append(dict(current))
    return seen


@pytest.fixture
def seed(make_session):
    """
    Three labs and a handful of users:

    - alice: Admin in lab A, Viewer in lab B, Technician in lab C
    - tom:   Technician in lab A
    - vic:   Viewer in lab A
    - root:  no memberships (configured as system admin by the API fixtures)
    - gone:  inactive user, Admin in lab A

    plus one sample (with location and a TestResult of 7.1) in lab A and one
    sample in lab B. Returns ids only; seed sessions are closed.
    """
    db = make_session()

    lab_a = Lab(name="Lab A", location="North")
    lab_b = Lab(name="Lab B", location="South")
    lab_c = Lab(name="Lab C", location="East")
    db.add_all([lab_a, lab_b, lab_c])

    alice = User(email="alice@example.com", user_name="alice")
    tom = User(email="tom@example.com", user_name="tom")
    vic = User(email="vic@example.com", user_name="vic")
    root = User(email="root@example.com", user_name="root")
    gone = User(email="gone@example.com", user_name="gone", is_active=False)
    db.add_all([alice, tom, vic, root, gone])
    db.flush()

    db.add_all(
        [
            UserLab(user_id=alice.id, lab_id=lab_a.id, role=Role.ADMIN),
            UserLab(user_id=alice.id, lab_id=lab_b.id, role=Role.VIEWER),
            UserLab(user_id=alice.id, lab_id=lab_c.id, role=Role.TECHNICIAN),
            UserLab(user_id=tom.id, lab_id=lab_a.id, role=Role.TECHNICIAN),
            UserLab(user_id=vic.id, lab_id=lab_a.id, role=Role.VIEWER),
            UserLab(user_id=gone.id, lab_id=lab_a.id, role=Role.ADMIN),
        ]
    )

    sample_a = Sample(
        lab_id=lab_a.id,
        sample_type=SampleType.DRINKING_WATER,
        collection_date=NOW,
        collector_name="Tom",
        location=SampleLocation(latitude=52.1, longitude=4.3, description="Tap 3"),
    )
    sample_b = Sample(
        lab_id=lab_b.id,
        sample_type=SampleType.WASTEWATER,
        collection_date=NOW,
        collector_name="Bea",
    )
    db.add_all([sample_a, sample_b])
    db.flush()

    result_a = TestResult(
        sample=sample_a,
        lab_id=lab_a.id,
        parameter_name="pH",
        value=7.1,
        unit="pH",
        test_date=NOW,
        technician_name="Tom",
        test_method=TestMethod.ELECTRODE,
        compliance_status=ComplianceStatus.PASS,
    )
    db.add(result_a)
    db.commit()

    ids = SimpleNamespace(
        lab_a=lab_a.id,
        lab_b=lab_b.id,
        lab_c=lab_c.id,
        alice=alice.id,
        tom=tom.id,
        vic=vic.id,
        root=root.id,
        gone=gone.id,
        sample_a=sample_a.id,
        sample_b=sample_b.id,
        location_a=sample_a.location.id,
        result_a=result_a.id,
    )
    db.close()
    return ids


@pytest.fixture
def as_lab(make_session, seed):
    """Session for ``user`` with ``lab`` selected at ``role``."""

    def _as_lab(user, lab, role: Role) -> Session:
        return make_session(SecurityContext.for_lab(user, lab, role))

    return _as_lab


@pytest.fixture
def admin_session(make_session, seed):
    """Session of the break-glass system admin (sees every lab)."""
    return make_session(SecurityContext.system_admin(seed.root))
