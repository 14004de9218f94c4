"""
Validate a signed JWT and extract the subject.

Before anything in the token is trusted, PyJWT checks the signature, the
lifetime (``exp``/``nbf`` with leeway) and, when configured, ``iss`` and
``aud``. Only then is ``sub`` read.

Role claims (``roles``, ``role``, groups) are ignored on purpose: a role in a
token is a snapshot from issuance time and goes stale when a membership is
revoked.
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

import jwt

from .config import TokenConfig
from .context import TokenSubject

logger = logging.getLogger(__name__)


class TokenValidationError(Exception):
    """Raised when token validation fails. Do not log the token."""


def _extract_subject(payload: dict[str, Any]) -> TokenSubject:
    raw_sub = payload.get("sub")
    try:
        user_id = UUID(str(raw_sub))
    except (TypeError, ValueError) as e:
        raise TokenValidationError("Invalid token: subject") from e

    scopes: list[str] = []
    scp = payload.get("scp")
    if isinstance(scp, str):
        scopes = [s.strip() for s in scp.split() if s.strip()]
    elif isinstance(scp, list):
        scopes = [str(s) for s in scp]

    preferred_username = payload.get("preferred_username")
    if preferred_username is not None:
        preferred_username = str(preferred_username)

    return TokenSubject(user_id=user_id, scopes=tuple(scopes), preferred_username=preferred_username)


class TokenValidator:
    def __init__(self, config: TokenConfig | None = None) -> None:
        self._config = config or TokenConfig.from_environ()

    def validate(self, token: str) -> TokenSubject:
        """
        Validate ``token`` and return its subject.

        Raises TokenValidationError if signature, lifetime, issuer, audience
        or subject checks fail.
        """

        config = self._config
        try:
            payload = jwt.decode(
                token,
                config.key,
                algorithms=list(config.algorithms),
                audience=config.audience,
                issuer=config.issuer,
                leeway=config.leeway_seconds,
                options={
                    "require": ["exp", "sub"],
                    "verify_signature": True,
                    "verify_exp": True,
                    "verify_nbf": True,
                    "verify_iss": config.issuer is not None,
                    "verify_aud": config.audience is not None,
                },
            )
        except jwt.ExpiredSignatureError as e:
            logger.info("Token expired")
            raise TokenValidationError("Token expired") from e
        except jwt.InvalidIssuerError as e:
            logger.info("Token invalid issuer")
            raise TokenValidationError("Invalid token: issuer") from e
        except jwt.InvalidAudienceError as e:
            logger.info("Token invalid audience")
            raise TokenValidationError("Invalid token: audience") from e
        except jwt.InvalidTokenError as e:
            logger.info("Token invalid: %s", type(e).__name__)
            raise TokenValidationError("Invalid token") from e

        return _extract_subject(payload)


def validate_and_extract(token: str, config: TokenConfig | None = None) -> TokenSubject:
    """Convenience one-shot: build a validator (env config if ``config`` is None) and validate."""
    return TokenValidator(config=config).validate(token)
