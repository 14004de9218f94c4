from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from labtenancy.security.context import Role


def _parse_role(value: Any) -> Role | None:
    if value is None:
        return None
    return Role.parse(value)


class JwtConfig(BaseModel):
    algorithms: list[str] = Field(default_factory=lambda: ["HS256"])
    audience: str | None = None
    issuer: str | None = None
    leeway_seconds: int = 60


class AuthConfig(BaseModel):
    provider: str = "dummy"
    authorization_header: str = "Authorization"
    bearer_prefix: str = "Bearer"
    tenant_header: str = "X-Lab-Id"
    jwt: JwtConfig = Field(default_factory=JwtConfig)

    @field_validator("provider")
    @classmethod
    def known_provider(cls, value: str) -> str:
        if value not in ("dummy", "jwt"):
            raise ValueError(f"Unknown auth provider: {value!r}")
        return value


class DefaultRule(BaseModel):
    auth_required: bool = True
    minimum_role: Role | None = None
    lab_scoped: bool = True

    @field_validator("minimum_role", mode="before")
    @classmethod
    def parse_minimum_role(cls, value: Any) -> Role | None:
        return _parse_role(value)


class RouteRule(BaseModel):
    path: str
    methods: list[str] = Field(default_factory=lambda: ["GET"])

    auth_required: bool | None = None
    minimum_role: Role | None = None
    lab_scoped: bool | None = None

    @field_validator("minimum_role", mode="before")
    @classmethod
    def parse_minimum_role(cls, value: Any) -> Role | None:
        return _parse_role(value)

    def normalized_methods(self) -> set[str]:
        return {m.upper() for m in self.methods}


class SecurityConfigModel(BaseModel):
    auth: AuthConfig = Field(default_factory=AuthConfig)
    default: DefaultRule = Field(default_factory=DefaultRule)
    routes: list[RouteRule] = Field(default_factory=list)


@dataclass(frozen=True)
class EffectiveRule:
    """
    Fully-resolved rule (defaults applied) for a particular request.
    """

    auth_required: bool
    minimum_role: Role | None
    lab_scoped: bool


def _path_template_to_regex(path_template: str) -> re.Pattern[str]:
    # "/samples/{id}" -> r"^/samples/[^/]+$"
    regex = re.sub(r"\{[^/]+\}", r"[^/]+", path_template)
    return re.compile(rf"^{regex}$")


class SecurityConfig:
    """
    Runtime helper around validated config + route matching.
    """

    def __init__(self, model: SecurityConfigModel):
        self.model = model

        self._exact_rules: dict[str, list[RouteRule]] = {}
        for rule in self.model.routes:
            self._exact_rules.setdefault(rule.path, []).append(rule)
        self._compiled_rules = [(_path_template_to_regex(rule.path), rule) for rule in self.model.routes]

    @property
    def auth(self) -> AuthConfig:
        return self.model.auth

    def match(self, path: str, method: str) -> EffectiveRule:
        """
        Find the best matching rule for (path, method), then apply defaults.
        """

        method = method.upper()
        default = self.model.default

        # 1) exact path match
        for candidate in self._exact_rules.get(path, []):
            if method in candidate.normalized_methods():
                return _effective(candidate, default)

        # 2) template match
        for regex, candidate in self._compiled_rules:
            if method in candidate.normalized_methods() and regex.match(path):
                return _effective(candidate, default)

        # 3) no match -> defaults
        return EffectiveRule(
            auth_required=default.auth_required,
            minimum_role=default.minimum_role,
            lab_scoped=default.lab_scoped,
        )


def _effective(rule: RouteRule, default: DefaultRule) -> EffectiveRule:
    # A rule with a role requirement is auth-required even if the default is public.
    inferred_auth_required = default.auth_required or rule.minimum_role is not None or bool(rule.lab_scoped)

    return EffectiveRule(
        auth_required=inferred_auth_required if rule.auth_required is None else rule.auth_required,
        minimum_role=rule.minimum_role if rule.minimum_role is not None else default.minimum_role,
        lab_scoped=default.lab_scoped if rule.lab_scoped is None else rule.lab_scoped,
    )


def load_security_config(path: Path) -> SecurityConfig:
    raw_text = path.read_text(encoding="utf-8")
    raw: dict[str, Any] = yaml.safe_load(raw_text) or {}

    if "security" not in raw:
        raise ValueError(f"Missing top-level 'security' key in config: {path}")

    model = SecurityConfigModel.model_validate(raw["security"])
    return SecurityConfig(model)
