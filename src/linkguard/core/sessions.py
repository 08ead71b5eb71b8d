"""
Server-side session storage with TTL semantics.

``SessionStore`` is the seam the CSRF guard and the admin routes depend
on. ``MemorySessionStore`` keeps sessions in a ``TTLCache``; a persistent
backend only has to implement the same four methods.
"""

import secrets
import threading
import time
from typing import Any, Callable, Dict, MutableMapping, Optional, Protocol

import structlog
from cachetools import TTLCache

logger = structlog.get_logger(__name__)

SessionData = Dict[str, Any]


class SessionStore(Protocol):
    """Key-value session storage. Entries disappear once their TTL elapses."""

    def create(self) -> str:
        ...

    def get(self, session_id: str) -> Optional[SessionData]:
        ...

    def save(self, session_id: str, data: SessionData) -> None:
        ...

    def destroy(self, session_id: str) -> None:
        ...


class MemorySessionStore:
    """
    In-process session store.

    Saving a session refreshes its TTL. ``TTLCache`` is not thread-safe,
    so every access goes through a lock.
    """

    def __init__(
        self,
        ttl_seconds: float = 7200,
        max_size: int = 10000,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._storage: MutableMapping[str, SessionData] = TTLCache(
            maxsize=max_size, ttl=ttl_seconds, timer=timer
        )
        self._lock = threading.Lock()

    def create(self) -> str:
        """Allocate an empty session and return its id."""
        session_id = secrets.token_urlsafe(32)
        with self._lock:
            self._storage[session_id] = {}
        logger.debug("Session created")
        return session_id

    def get(self, session_id: str) -> Optional[SessionData]:
        if not session_id:
            return None
        with self._lock:
            data = self._storage.get(session_id)
            return dict(data) if data is not None else None

    def save(self, session_id: str, data: SessionData) -> None:
        with self._lock:
            self._storage[session_id] = dict(data)

    def destroy(self, session_id: str) -> None:
        with self._lock:
            self._storage.pop(session_id, None)
        logger.debug("Session destroyed")

    def __len__(self) -> int:
        with self._lock:
            return len(self._storage)
