"""Token validation configuration. No hardcoded secrets."""

from __future__ import annotations

import os
from dataclasses import dataclass


def _getenv(key: str, default: str | None = None) -> str | None:
    return os.environ.get(key, default)


def _getenv_int(key: str, default: int) -> int:
    raw = os.environ.get(key)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class TokenConfig:
    """
    JWT validation settings.

    From environment (``from_environ``):
        JWT_SIGNING_KEY: Shared secret (HS*) or PEM public key (RS*/ES*). Required.
        JWT_ALGORITHMS: Comma-separated list (default "HS256").
        JWT_AUDIENCE: Expected ``aud``; not checked when unset.
        JWT_ISSUER: Expected ``iss``; not checked when unset.
        CLOCK_SKEW_SECONDS: Tolerance for exp/nbf (default 60).
    """

    key: str
    algorithms: tuple[str, ...] = ("HS256",)
    audience: str | None = None
    issuer: str | None = None
    leeway_seconds: int = 60

    def __post_init__(self) -> None:
        if not self.key:
            raise ValueError("A signing key is required for token validation")
        if not self.algorithms:
            raise ValueError("At least one algorithm must be allowed")
        if "none" in {a.lower() for a in self.algorithms}:
            raise ValueError("Unsigned tokens are never accepted")

    @classmethod
    def from_environ(cls) -> TokenConfig:
        key = _getenv("JWT_SIGNING_KEY")
        if not key:
            raise ValueError("JWT_SIGNING_KEY must be set")
        algorithms = tuple(a.strip() for a in (_getenv("JWT_ALGORITHMS") or "HS256").split(",") if a.strip())
        return cls(
            key=key,
            algorithms=algorithms,
            audience=_strip_or_none(_getenv("JWT_AUDIENCE")),
            issuer=_strip_or_none(_getenv("JWT_ISSUER")),
            leeway_seconds=_getenv_int("CLOCK_SKEW_SECONDS", 60),
        )


def _strip_or_none(s: str | None) -> str | None:
    if s is None:
        return None
    t = s.strip()
    return t if t else None
