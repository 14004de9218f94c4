from __future__ import annotations

import pytest
from pydantic import ValidationError

from labtenancy.security.config import SecurityConfig, SecurityConfigModel, load_security_config
from labtenancy.security.context import Role
from labtenancy.security.decorators import require_role, tenant_optional
from labtenancy.security.dependencies import _stricter

from conftest import CONFIG_PATH


@pytest.fixture
def config():
    return load_security_config(CONFIG_PATH)


def test_shipped_config_loads(config):
    assert config.auth.provider == "dummy"
    assert config.auth.tenant_header == "X-Lab-Id"


@pytest.mark.parametrize(
    ("path", "method", "role", "lab_scoped"),
    [
        ("/samples", "GET", Role.VIEWER, True),
        ("/samples", "post", Role.TECHNICIAN, True),
        ("/samples/3f1c", "DELETE", Role.ADMIN, True),
        ("/test-results/abc", "PATCH", Role.TECHNICIAN, True),
        ("/audit-logs", "GET", Role.ADMIN, True),
        ("/me", "GET", None, False),
    ],
)
def test_route_rules(config, path, method, role, lab_scoped):
    rule = config.match(path, method)
    assert rule.auth_required is True
    assert rule.minimum_role is role
    assert rule.lab_scoped is lab_scoped


def test_public_routes(config):
    rule = config.match("/health", "GET")
    assert rule.auth_required is False
    assert rule.lab_scoped is False


def test_unmatched_route_falls_back_to_defaults(config):
    rule = config.match("/nowhere", "GET")
    assert rule.auth_required is True
    assert rule.minimum_role is None
    assert rule.lab_scoped is True


def test_exact_path_beats_template():
    config = SecurityConfig(
        SecurityConfigModel.model_validate(
            {
                "routes": [
                    {"path": "/samples/{id}", "methods": ["GET"], "minimum_role": "admin"},
                    {"path": "/samples/summary", "methods": ["GET"], "minimum_role": "viewer"},
                ]
            }
        )
    )
    assert config.match("/samples/summary", "GET").minimum_role is Role.VIEWER
    assert config.match("/samples/other", "GET").minimum_role is Role.ADMIN


def test_role_requirement_implies_auth():
    config = SecurityConfig(
        SecurityConfigModel.model_validate(
            {
                "default": {"auth_required": False},
                "routes": [{"path": "/x", "methods": ["GET"], "minimum_role": "technician", "lab_scoped": False}],
            }
        )
    )
    assert config.match("/x", "GET").auth_required is True


def test_unknown_role_rejected():
    with pytest.raises(ValidationError):
        SecurityConfigModel.model_validate({"routes": [{"path": "/x", "minimum_role": "owner"}]})


def test_unknown_provider_rejected():
    with pytest.raises(ValidationError):
        SecurityConfigModel.model_validate({"auth": {"provider": "kerberos"}})


def test_missing_top_level_key(tmp_path):
    path = tmp_path / "security.yaml"
    path.write_text("auth:\n  provider: dummy\n", encoding="utf-8")
    with pytest.raises(ValueError, match="security"):
        load_security_config(path)


def test_decorators_record_metadata():
    @require_role("viewer")
    @require_role(Role.ADMIN)
    def endpoint():
        return None

    @tenant_optional()
    def open_endpoint():
        return None

    assert endpoint.__security_minimum_role__ is Role.ADMIN
    assert open_endpoint.__security_tenant_optional__ is True


def test_stricter_role_wins():
    assert _stricter(None, None) is None
    assert _stricter(Role.VIEWER, None) is Role.VIEWER
    assert _stricter(None, Role.TECHNICIAN) is Role.TECHNICIAN
    assert _stricter(Role.ADMIN, Role.TECHNICIAN) is Role.ADMIN
