"""Per-user cache of calendar backend clients."""

import threading
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from toolchat.errors import AuthenticationRequired
from toolchat.models.session import CachedClient, UserIdentity
from toolchat.services.calendar_backend import CalendarBackend
from toolchat.utils.logging import get_logger

logger = get_logger(__name__)

CalendarFactory = Callable[[UserIdentity], CalendarBackend]


class CalendarClientCache:
    """Thread-safe get-or-create map from user to calendar backend."""

    def __init__(self, factory: CalendarFactory, ttl_minutes: int = 60):
        """Initialize the cache.

        Args:
            factory: Builds a backend for a user with calendar credentials
            ttl_minutes: Minutes of inactivity before an entry expires
        """
        self.factory = factory
        self.ttl = timedelta(minutes=ttl_minutes)
        self._entries: dict[str, CachedClient[CalendarBackend]] = {}
        self._lock = threading.Lock()

    def get(self, identity: UserIdentity) -> CalendarBackend:
        """Return the user's backend, creating it on first use.

        Raises:
            AuthenticationRequired: the user has no refresh token
        """
        if not identity.has_calendar_credentials:
            raise AuthenticationRequired("Authentication required: Please sign in to access calendar features.")

        key = identity.cache_key
        with self._lock:
            self._cleanup_expired()

            entry = self._entries.get(key)
            if entry is None:
                logger.info(f"Creating calendar client for {key}")
                entry = CachedClient(client=self.factory(identity))
                self._entries[key] = entry
            entry.touch()
            return entry.client

    def evict(self, identity: UserIdentity | str) -> bool:
        """Drop a user's backend, e.g. on sign-out.

        Returns:
            True if an entry was removed
        """
        key = identity.cache_key if isinstance(identity, UserIdentity) else identity.strip().lower()
        with self._lock:
            removed = self._entries.pop(key, None) is not None
        if removed:
            logger.info(f"Evicted calendar client for {key}")
        return removed

    def _cleanup_expired(self) -> None:
        current_time = datetime.now(UTC)
        expired = [key for key, entry in self._entries.items() if current_time - entry.last_activity > self.ttl]
        for key in expired:
            del self._entries[key]

    def __len__(self) -> int:
        with self._lock:
            self._cleanup_expired()
            return len(self._entries)
