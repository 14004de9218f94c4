"""
Bearer token validation.

This package has no dependency on other labtenancy packages. It validates a
signed JWT and returns the authenticated subject; it never returns roles.
Per-lab roles come from UserLab memberships, resolved on every request.
"""

from .config import TokenConfig
from .context import TokenSubject
from .validator import TokenValidationError, TokenValidator, validate_and_extract

__all__ = [
    "TokenConfig",
    "TokenSubject",
    "TokenValidator",
    "TokenValidationError",
    "validate_and_extract",
]
