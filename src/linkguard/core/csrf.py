"""
Double-submit CSRF protection.

Each session holds one random token. State-changing requests must echo it
back in the ``X-CSRF-Token`` header; a cross-origin page can trigger the
request but cannot read the token to forge the header.
"""

import secrets
from typing import FrozenSet, Optional

import structlog

from .sessions import SessionStore

logger = structlog.get_logger(__name__)

CSRF_HEADER = "X-CSRF-Token"
SESSION_KEY = "csrf_token"
TOKEN_BYTES = 32

SAFE_METHODS: FrozenSet[str] = frozenset({"GET", "HEAD", "OPTIONS"})
# Login runs before a session exists
EXEMPT_PATHS: FrozenSet[str] = frozenset({"/api/admin/login"})


class CsrfGuard:
    """Issues and verifies per-session anti-forgery tokens."""

    def __init__(
        self,
        sessions: SessionStore,
        safe_methods: FrozenSet[str] = SAFE_METHODS,
        exempt_paths: FrozenSet[str] = EXEMPT_PATHS,
    ) -> None:
        self.sessions = sessions
        self.safe_methods = safe_methods
        self.exempt_paths = exempt_paths

    def requires_check(self, method: str, path: str) -> bool:
        return method.upper() not in self.safe_methods and path not in self.exempt_paths

    def issue(self, session_id: str) -> str:
        """Return the session's token, creating one on first use."""
        data = self.sessions.get(session_id)
        if data is None:
            data = {}

        token = data.get(SESSION_KEY)
        if token:
            return token

        token = secrets.token_hex(TOKEN_BYTES)
        data[SESSION_KEY] = token
        self.sessions.save(session_id, data)
        return token

    def rotate(self, session_id: str) -> str:
        """Replace the session's token with a fresh one."""
        data = self.sessions.get(session_id) or {}
        token = secrets.token_hex(TOKEN_BYTES)
        data[SESSION_KEY] = token
        self.sessions.save(session_id, data)
        return token

    def verify(self, session_id: Optional[str], supplied: Optional[str]) -> bool:
        """
        Check a supplied token against the session's token.

        Fails closed: no session, no stored token, no supplied token and a
        mismatch are all just False.
        """
        if not session_id or not supplied:
            return False

        data = self.sessions.get(session_id)
        expected = data.get(SESSION_KEY) if data else None
        if not expected:
            return False

        return secrets.compare_digest(expected.encode("utf-8"), supplied.encode("utf-8"))
