"""Active session persistence with a sliding expiry window.

Exactly one session id is persisted at a time, under SESSION_STORAGE_KEY.
Expiry is checked lazily on every read; there is no background timer.
"""

import logging
import time
from collections.abc import Callable
from datetime import timedelta

from pydantic import ValidationError

from ragchat.api import ApiClient
from ragchat.errors import SessionCreationError, TransportError
from ragchat.models import StoredSession
from ragchat.session.storage import Storage

logger = logging.getLogger(__name__)

SESSION_STORAGE_KEY = "ragchat_session"
SESSION_DURATION = timedelta(hours=24)


class SessionLifecycleManager:
    """Owns creation, expiry and extension of the active session.

    Args:
        api: Backend client used to create sessions.
        storage: Where the active session record is persisted.
        on_reset: Called whenever the active session is dropped or
            superseded, so that message history tied to it is cleared.
        duration: Sliding expiry window.
        clock: Returns the current time in seconds since the epoch.
    """

    def __init__(
        self,
        api: ApiClient,
        storage: Storage,
        on_reset: Callable[[], None] | None = None,
        duration: timedelta = SESSION_DURATION,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._api = api
        self._storage = storage
        self._on_reset = on_reset
        self._duration_ms = int(duration.total_seconds() * 1000)
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _save(self, session_id: str) -> StoredSession:
        now = self._now_ms()
        record = StoredSession(
            session_id=session_id,
            timestamp=now,
            expires_at=now + self._duration_ms,
        )
        try:
            self._storage.set(SESSION_STORAGE_KEY, record.model_dump_json(by_alias=True))
        except OSError as e:
            logger.warning(f"Failed to persist session {session_id}: {e}")
        return record

    def _clear(self) -> None:
        try:
            self._storage.remove(SESSION_STORAGE_KEY)
        except OSError as e:
            logger.warning(f"Failed to clear stored session: {e}")
        if self._on_reset is not None:
            self._on_reset()

    def info(self) -> StoredSession | None:
        """Return the stored session record if it has not expired.

        An expired or unreadable record is removed as a side effect.
        """
        try:
            raw = self._storage.get(SESSION_STORAGE_KEY)
        except OSError as e:
            logger.warning(f"Failed to read stored session: {e}")
            return None
        if raw is None:
            return None

        try:
            record = StoredSession.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable stored session: {e}")
            self._clear()
            return None

        if self._now_ms() > record.expires_at:
            logger.info(f"Session {record.session_id} expired")
            self._clear()
            return None
        return record

    def get(self) -> str | None:
        """Return the active session id, or None if absent or expired."""
        record = self.info()
        return record.session_id if record else None

    async def create(self, metadata: dict | None = None) -> str:
        """Create a backend session and make it the active one.

        Any previous session and its local message history are dropped.

        Raises:
            SessionCreationError: If the backend call fails. Nothing is
                persisted in that case.
        """
        try:
            session = await self._api.create_session(metadata)
        except TransportError as e:
            logger.error(f"Failed to create session: {e}")
            raise SessionCreationError(f"Failed to create session: {e}") from e

        self._clear()
        self._save(session.session_id)
        logger.info(f"Created session {session.session_id}")
        return session.session_id

    async def ensure(self) -> str:
        """Return the active session id, creating a session on first use."""
        session_id = self.get()
        if session_id is None:
            session_id = await self.create()
        return session_id

    def extend(self) -> bool:
        """Push the expiry of the active session out by a full window.

        Does not contact the backend.

        Returns:
            False if there was no active session to extend.
        """
        session_id = self.get()
        if session_id is None:
            return False
        self._save(session_id)
        return True

    def reset(self) -> None:
        """Forget the active session and its local history."""
        self._clear()

    def time_until_expiry(self) -> timedelta | None:
        record = self.info()
        if record is None:
            return None
        remaining_ms = max(0, record.expires_at - self._now_ms())
        return timedelta(milliseconds=remaining_ms)

    def format_time_until_expiry(self) -> str | None:
        """Remaining session time as ``"5h 12m"`` or ``"12m"``."""
        remaining = self.time_until_expiry()
        if remaining is None:
            return None
        total_minutes = int(remaining.total_seconds()) // 60
        hours, minutes = divmod(total_minutes, 60)
        if hours > 0:
            return f"{hours}h {minutes}m"
        return f"{minutes}m"
