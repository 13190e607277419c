"""Authenticated user identity as supplied by the request layer."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


@dataclass
class UserIdentity:
    """Who is calling and which OAuth tokens they hold.

    Session and token management happen upstream; this is only what reaches us.
    """

    email: str
    refresh_token: str | None = None
    access_token: str | None = None

    @property
    def cache_key(self) -> str:
        """Stable per-user key for backend client caching."""
        return self.email.strip().lower()

    @property
    def has_calendar_credentials(self) -> bool:
        return bool(self.refresh_token)

    def as_dict(self) -> dict[str, Any]:
        """Loggable view without secrets."""
        return {
            "email": self.email,
            "has_refresh_token": bool(self.refresh_token),
            "has_access_token": bool(self.access_token),
        }


@dataclass
class CachedClient[T]:
    """A cache entry for a per-user backend client."""

    client: T
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    last_activity: datetime = field(default_factory=lambda: datetime.now(UTC))

    def touch(self) -> None:
        """Update the last activity timestamp."""
        self.last_activity = datetime.now(UTC)
