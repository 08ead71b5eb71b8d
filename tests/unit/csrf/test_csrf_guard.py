"""
Tests for CsrfGuard double-submit verification.
"""

import pytest

from src.linkguard.core.csrf import SESSION_KEY, CsrfGuard
from src.linkguard.core.sessions import MemorySessionStore


@pytest.fixture
def sessions() -> MemorySessionStore:
    return MemorySessionStore(ttl_seconds=60)


@pytest.fixture
def guard(sessions: MemorySessionStore) -> CsrfGuard:
    return CsrfGuard(sessions)


class TestIssue:
    """Token issuance and rotation."""

    def test_issue_creates_64_hex_token(self, guard: CsrfGuard, sessions: MemorySessionStore) -> None:
        session_id = sessions.create()
        token = guard.issue(session_id)
        assert len(token) == 64
        int(token, 16)
        assert sessions.get(session_id)[SESSION_KEY] == token

    def test_issue_is_stable_within_session(self, guard: CsrfGuard, sessions: MemorySessionStore) -> None:
        session_id = sessions.create()
        assert guard.issue(session_id) == guard.issue(session_id)

    def test_sessions_get_distinct_tokens(self, guard: CsrfGuard, sessions: MemorySessionStore) -> None:
        assert guard.issue(sessions.create()) != guard.issue(sessions.create())

    def test_rotate_replaces_token(self, guard: CsrfGuard, sessions: MemorySessionStore) -> None:
        session_id = sessions.create()
        old = guard.issue(session_id)
        new = guard.rotate(session_id)
        assert new != old
        assert not guard.verify(session_id, old)
        assert guard.verify(session_id, new)

    def test_issue_keeps_other_session_data(self, guard: CsrfGuard, sessions: MemorySessionStore) -> None:
        session_id = sessions.create()
        sessions.save(session_id, {"admin_id": 1})
        guard.issue(session_id)
        assert sessions.get(session_id)["admin_id"] == 1


class TestVerify:
    """Verification fails closed."""

    def test_matching_token(self, guard: CsrfGuard, sessions: MemorySessionStore) -> None:
        session_id = sessions.create()
        token = guard.issue(session_id)
        assert guard.verify(session_id, token)

    def test_missing_supplied_token(self, guard: CsrfGuard, sessions: MemorySessionStore) -> None:
        session_id = sessions.create()
        guard.issue(session_id)
        assert not guard.verify(session_id, None)
        assert not guard.verify(session_id, "")

    def test_mismatched_token(self, guard: CsrfGuard, sessions: MemorySessionStore) -> None:
        session_id = sessions.create()
        token = guard.issue(session_id)
        assert not guard.verify(session_id, token[:-1] + ("0" if token[-1] != "0" else "1"))

    def test_session_without_token(self, guard: CsrfGuard, sessions: MemorySessionStore) -> None:
        session_id = sessions.create()
        assert not guard.verify(session_id, "a" * 64)

    def test_no_session(self, guard: CsrfGuard) -> None:
        assert not guard.verify(None, "a" * 64)
        assert not guard.verify("unknown-session", "a" * 64)

    def test_token_from_other_session(self, guard: CsrfGuard, sessions: MemorySessionStore) -> None:
        first = sessions.create()
        second = sessions.create()
        guard.issue(second)
        assert not guard.verify(second, guard.issue(first))

    def test_destroyed_session_invalidates_token(self, guard: CsrfGuard, sessions: MemorySessionStore) -> None:
        session_id = sessions.create()
        token = guard.issue(session_id)
        sessions.destroy(session_id)
        assert not guard.verify(session_id, token)


class TestRequiresCheck:
    """Which requests need a token."""

    @pytest.mark.parametrize("method", ["GET", "HEAD", "OPTIONS", "get"])
    def test_safe_methods_skip(self, guard: CsrfGuard, method: str) -> None:
        assert not guard.requires_check(method, "/api/generate")

    @pytest.mark.parametrize("method", ["POST", "PUT", "PATCH", "DELETE"])
    def test_state_changing_methods_checked(self, guard: CsrfGuard, method: str) -> None:
        assert guard.requires_check(method, "/api/generate")

    def test_login_is_exempt(self, guard: CsrfGuard) -> None:
        assert not guard.requires_check("POST", "/api/admin/login")
        assert guard.requires_check("POST", "/api/admin/logout")
