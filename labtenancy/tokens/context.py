"""Subject extracted from a validated bearer token."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True)
class TokenSubject:
    """
    Who the token says the caller is. Deliberately nothing about what they may do.
    """

    user_id: UUID
    """``sub`` claim, parsed as the user's UUID."""

    scopes: tuple[str, ...] = ()
    """OAuth2 scopes (``scp``), informational only."""

    preferred_username: str | None = None
    """Display name; for logs/UI only, never for authorization."""

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serializable dict."""
        return {
            "user_id": str(self.user_id),
            "scopes": list(self.scopes),
            "preferred_username": self.preferred_username,
        }
