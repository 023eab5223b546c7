"""
Editing Session Storage

Process-local store for editing sessions:
- Session objects are held as-is (no serialization); commands mutate them in place
- User -> session indexing
- Idle TTL enforced lazily on read and by a background cleanup loop

Nothing here is persisted. A restart drops every uncommitted overlay.
"""

import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set

from ..models.session import EditingSession, SESSION_SCHEMA_VERSION

logger = logging.getLogger(__name__)

_SESSION_ID_PATTERN = re.compile(r"^[a-fA-F0-9-]{8,50}$")  # UUID-like format


def _validate_session_id(session_id: str) -> str:
    """
    Validate session ID format.

    Raises:
        ValueError: If session ID is invalid
    """
    if not session_id:
        raise ValueError("session_id cannot be empty")

    if not isinstance(session_id, str):
        raise ValueError(f"session_id must be a string, got {type(session_id).__name__}")

    if not _SESSION_ID_PATTERN.match(session_id):
        raise ValueError(
            "session_id must be a valid UUID-like format (alphanumeric and hyphens, 8-50 chars)"
        )

    return session_id


def _utc_now() -> datetime:
    """Return timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


class InMemorySessionStorage:
    """
    In-memory storage for editing sessions.

    TTL is counted from the last access, so an operator mid-edit never loses
    the overlay while working.
    """

    def __init__(self, ttl: int = 3600, cleanup_interval: int = 300):
        self._sessions: Dict[str, EditingSession] = {}
        self._user_sessions: Dict[str, Set[str]] = {}
        self._session_metadata: Dict[str, Dict[str, Any]] = {}  # Track creation / access time
        self.ttl = ttl
        self.cleanup_interval = cleanup_interval
        self._cleanup_task: Optional[asyncio.Task] = None
        self._shutdown = False
        self._expiry_listeners: List[Callable[[str], None]] = []

    def _is_expired(self, session_id: str, now: Optional[datetime] = None) -> bool:
        if self.ttl <= 0:
            return False
        metadata = self._session_metadata.get(session_id)
        if not metadata:
            return False
        last_access = metadata.get("last_access") or metadata.get("created_at")
        return ((now or _utc_now()) - last_access).total_seconds() > self.ttl

    def add_expiry_listener(self, listener: Callable[[str], None]):
        """Call `listener(session_id)` whenever a session is dropped for idling past the TTL."""
        self._expiry_listeners.append(listener)

    async def _expire(self, session_id: str):
        await self.delete_session(session_id)
        for listener in self._expiry_listeners:
            listener(session_id)

    async def save_session(self, session: EditingSession):
        """Store an editing session and refresh its TTL."""
        session_id = _validate_session_id(session.session_id)
        session.schema_version = SESSION_SCHEMA_VERSION
        session.touch()

        self._sessions[session_id] = session

        now = _utc_now()
        if session_id not in self._session_metadata:
            self._session_metadata[session_id] = {"created_at": now, "last_access": now, "ttl": self.ttl}
        else:
            self._session_metadata[session_id]["last_access"] = now

        if session.owner_user_id:
            self._user_sessions.setdefault(session.owner_user_id, set()).add(session_id)

        logger.debug("Saved session %s to in-memory storage", session_id)

    async def get_session(self, session_id: str) -> Optional[EditingSession]:
        """Retrieve a live session; expired ones are dropped on the spot."""
        session = self._sessions.get(session_id)
        if session is None:
            return None

        if self._is_expired(session_id):
            logger.info("Session %s expired (idle > %ss)", session_id, self.ttl)
            await self._expire(session_id)
            return None

        await self.touch_session(session_id)
        logger.debug("Retrieved session %s from in-memory storage", session_id)
        return session

    async def delete_session(self, session_id: str) -> bool:
        """Delete session from memory. Returns False if it did not exist."""
        session = self._sessions.pop(session_id, None)
        self._session_metadata.pop(session_id, None)
        if session is None:
            return False

        if session.owner_user_id:
            sessions = self._user_sessions.get(session.owner_user_id)
            if sessions:
                sessions.discard(session_id)
                if not sessions:
                    self._user_sessions.pop(session.owner_user_id, None)

        logger.debug("Deleted session %s from in-memory storage", session_id)
        return True

    async def session_exists(self, session_id: str) -> bool:
        return session_id in self._sessions and not self._is_expired(session_id)

    async def get_all_session_ids(self) -> List[str]:
        """Return list of session IDs."""
        return sorted(self._sessions.keys())

    async def get_sessions_for_user(self, user_id: str) -> List[str]:
        """Return all session IDs for a user."""
        return sorted(self._user_sessions.get(user_id, set()))

    async def touch_session(self, session_id: str):
        """Update session last access time."""
        if session_id in self._session_metadata:
            self._session_metadata[session_id]["last_access"] = _utc_now()

    def start_cleanup_loop(self):
        """Start the background cleanup task (needs a running event loop)."""
        if self.ttl <= 0 or (self._cleanup_task and not self._cleanup_task.done()):
            return
        self._shutdown = False
        logger.info(f"Starting in-memory session cleanup task (TTL: {self.ttl}s)")
        self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def _cleanup_loop(self):
        """Background task to periodically clean up expired sessions."""
        logger.info("In-memory session cleanup loop started")
        try:
            while not self._shutdown:
                await asyncio.sleep(self.cleanup_interval)
                if self._shutdown:
                    break
                await self.cleanup_expired_sessions()
        except asyncio.CancelledError:
            logger.info("Session cleanup loop cancelled")
            raise

    async def cleanup_expired_sessions(self) -> List[str]:
        """Remove sessions that have been idle longer than the TTL."""
        now = _utc_now()
        expired_sessions = [
            session_id for session_id in self._session_metadata if self._is_expired(session_id, now)
        ]

        if expired_sessions:
            logger.info(f"Cleaning up {len(expired_sessions)} expired sessions")
            for session_id in expired_sessions:
                await self._expire(session_id)
            logger.debug(f"Removed expired sessions: {expired_sessions}")
        return expired_sessions

    async def stop_cleanup_loop(self):
        """Stop the background cleanup task gracefully."""
        self._shutdown = True
        if self._cleanup_task and not self._cleanup_task.done():
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            logger.info("In-memory session cleanup task stopped")


_session_storage: Optional[InMemorySessionStorage] = None


def get_session_storage() -> InMemorySessionStorage:
    """Get the global session storage, creating a default one on first use."""
    global _session_storage
    if _session_storage is None:
        _session_storage = InMemorySessionStorage()
        logger.info("Initialized default in-memory session storage")
    return _session_storage


def init_session_storage(ttl: int = 3600, cleanup_interval: int = 300) -> InMemorySessionStorage:
    """Initialize global session storage instance."""
    global _session_storage
    _session_storage = InMemorySessionStorage(ttl=ttl, cleanup_interval=cleanup_interval)
    logger.info("In-memory session storage initialized (TTL: %ss)", ttl)
    return _session_storage
