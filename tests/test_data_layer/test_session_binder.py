"""Session settings for row-level security, rebound on every transaction."""
from __future__ import annotations

import uuid
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.engine import Connection
from sqlalchemy.exc import OperationalError

from labtenancy.db.binder import (
    CURRENT_LAB_ID_SETTING,
    IS_SYSTEM_ADMIN_SETTING,
    read_session_setting,
    session_settings_for,
    write_session_setting,
)
from labtenancy.errors import ConfigurationError, SessionBindingError
from labtenancy.models.lab_data import Sample
from labtenancy.security.context import Role, SecurityContext

from conftest import bound_settings_at_each_statement, settings_writes


def test_settings_for_lab_context_clear_admin_flag():
    lab = uuid.uuid4()
    settings = session_settings_for(SecurityContext.for_lab(uuid.uuid4(), lab, Role.VIEWER))
    assert settings == {CURRENT_LAB_ID_SETTING: str(lab), IS_SYSTEM_ADMIN_SETTING: ""}


def test_settings_for_system_admin_carry_no_lab():
    settings = session_settings_for(SecurityContext.system_admin(uuid.uuid4()))
    assert settings == {CURRENT_LAB_ID_SETTING: "", IS_SYSTEM_ADMIN_SETTING: "true"}


def test_settings_for_unscoped_context_bind_nothing():
    settings = session_settings_for(SecurityContext.unscoped(uuid.uuid4()))
    assert settings == {CURRENT_LAB_ID_SETTING: "", IS_SYSTEM_ADMIN_SETTING: ""}


def test_binding_is_visible_on_the_connection(seed, as_lab):
    db = as_lab(seed.alice, seed.lab_b, Role.VIEWER)
    connection = db.connection()
    assert read_session_setting(connection, CURRENT_LAB_ID_SETTING) == str(seed.lab_b)
    assert read_session_setting(connection, IS_SYSTEM_ADMIN_SETTING) == ""


def test_binding_uses_bound_parameters(seed, as_lab, statements):
    db = as_lab(seed.alice, seed.lab_b, Role.VIEWER)
    db.scalars(select(Sample)).all()

    writes = [s for _c, s, _p in statements if "session_settings" in s and "INSERT" in s.upper()]
    assert writes
    assert all(str(seed.lab_b) not in s for s in writes)
    assert (CURRENT_LAB_ID_SETTING, str(seed.lab_b)) in settings_writes(statements)


def test_scenario_d_reused_connection_is_rebound(seed, as_lab, statements):
    first = as_lab(seed.alice, seed.lab_b, Role.VIEWER)
    assert [s.id for s in first.scalars(select(Sample)).all()] == [seed.sample_b]
    first.commit()
    first.close()

    second = as_lab(seed.alice, seed.lab_c, Role.TECHNICIAN)
    assert second.scalars(select(Sample)).all() == []
    assert read_session_setting(second.connection(), CURRENT_LAB_ID_SETTING) == str(seed.lab_c)

    # One physical connection served both units of work.
    assert len({conn_id for conn_id, _s, _p in statements}) == 1

    in_effect = bound_settings_at_each_statement(statements, "FROM samples")
    assert [s[CURRENT_LAB_ID_SETTING] for s in in_effect] == [str(seed.lab_b), str(seed.lab_c)]


def test_every_transaction_rebinds(seed, as_lab, statements):
    db = as_lab(seed.alice, seed.lab_a, Role.ADMIN)
    db.scalars(select(Sample)).all()
    db.commit()
    db.scalars(select(Sample)).all()
    db.commit()

    lab_writes = [w for w in settings_writes(statements) if w[0] == CURRENT_LAB_ID_SETTING]
    assert lab_writes == [(CURRENT_LAB_ID_SETTING, str(seed.lab_a))] * 2


def test_system_admin_binding_replaces_previous_lab(seed, as_lab, admin_session):
    lab_session = as_lab(seed.alice, seed.lab_b, Role.VIEWER)
    lab_session.scalars(select(Sample)).all()
    lab_session.commit()

    connection = admin_session.connection()
    assert read_session_setting(connection, IS_SYSTEM_ADMIN_SETTING) == "true"
    assert read_session_setting(connection, CURRENT_LAB_ID_SETTING) == ""


def test_binding_failure_fails_closed(seed, as_lab):
    db = as_lab(seed.alice, seed.lab_a, Role.ADMIN)
    boom = OperationalError("SELECT set_config(...)", {}, Exception("connection reset"))

    with patch("labtenancy.db.binder.write_session_setting", side_effect=boom), patch.object(
        Connection, "invalidate", autospec=True
    ) as invalidate:
        with pytest.raises(SessionBindingError) as excinfo:
            db.scalars(select(Sample)).all()

    assert excinfo.value.retryable is True
    assert isinstance(excinfo.value.__cause__, OperationalError)
    invalidate.assert_called_once()


def test_unsupported_dialect_is_a_configuration_error():
    connection = MagicMock()
    connection.dialect.name = "mysql"
    with pytest.raises(ConfigurationError):
        write_session_setting(connection, CURRENT_LAB_ID_SETTING, "x")
    with pytest.raises(ConfigurationError):
        read_session_setting(connection, CURRENT_LAB_ID_SETTING)
    connection.execute.assert_not_called()
