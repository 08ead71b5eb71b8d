"""
Tests for RequestPipeline ordering and error mapping.
"""

import pytest

from src.linkguard.core.blocklist import BlockList
from src.linkguard.core.csrf import CsrfGuard
from src.linkguard.core.exceptions import BlockedError, CsrfError, RateLimitError
from src.linkguard.core.metrics import MetricsCollector
from src.linkguard.core.pipeline import RequestPipeline
from src.linkguard.core.rate_limiter import SlidingWindowLimiter
from src.linkguard.core.sessions import MemorySessionStore
from src.linkguard.core.store import Store

IP = "198.51.100.7"


@pytest.fixture
def sessions() -> MemorySessionStore:
    return MemorySessionStore()


@pytest.fixture
def metrics() -> MetricsCollector:
    return MetricsCollector()


@pytest.fixture
def pipeline(store: Store, blocklist: BlockList, sessions: MemorySessionStore, metrics: MetricsCollector, clock) -> RequestPipeline:
    limiter = SlidingWindowLimiter(store, blocklist, max_requests=3, auto_block_hours=1, clock=clock)
    return RequestPipeline(limiter, CsrfGuard(sessions), metrics)


class TestRequestPipeline:
    """Block list, limiter and CSRF composed in order."""

    def test_allowed_request_with_valid_token(self, pipeline: RequestPipeline, sessions: MemorySessionStore) -> None:
        session_id = sessions.create()
        token = pipeline.csrf.issue(session_id)

        admission = pipeline.guard(IP, "POST", "/api/generate", session_id, token)
        assert admission.allowed
        assert admission.remaining == 2

    def test_missing_token_rejected_after_counting(
        self, pipeline: RequestPipeline, metrics: MetricsCollector
    ) -> None:
        with pytest.raises(CsrfError):
            pipeline.guard(IP, "POST", "/api/generate", None, None)

        assert pipeline.limiter.count_recent(IP) == 1
        assert metrics.registry.get_sample_value("csrf_rejections_total") == 1.0

    def test_threshold_raises_rate_limit_with_retry_after(self, pipeline: RequestPipeline) -> None:
        for _ in range(3):
            pipeline.admit(IP)

        with pytest.raises(RateLimitError) as exc_info:
            pipeline.admit(IP)
        assert exc_info.value.status_code == 429
        assert exc_info.value.details["retry_after"] == 3600
        assert "1 hour" in str(exc_info.value)

    def test_blocked_ip_rejected_before_csrf(self, pipeline: RequestPipeline, blocklist: BlockList) -> None:
        blocklist.block_manual(IP)
        with pytest.raises(BlockedError) as exc_info:
            pipeline.guard(IP, "POST", "/api/generate", None, None)
        assert exc_info.value.status_code == 403

    def test_safe_methods_skip_csrf(self, pipeline: RequestPipeline) -> None:
        pipeline.verify_csrf("GET", "/api/admin/logs", None, None)

    def test_exempt_path_skips_csrf(self, pipeline: RequestPipeline) -> None:
        pipeline.verify_csrf("POST", "/api/admin/login", None, None)

    def test_admissions_counted_by_outcome(
        self, pipeline: RequestPipeline, metrics: MetricsCollector
    ) -> None:
        for _ in range(3):
            pipeline.admit(IP)
        with pytest.raises(RateLimitError):
            pipeline.admit(IP)
        with pytest.raises(BlockedError):
            pipeline.admit(IP)

        sample = metrics.registry.get_sample_value
        assert sample("rate_limit_admissions_total", {"outcome": "allowed"}) == 3.0
        assert sample("rate_limit_admissions_total", {"outcome": "rate_limited"}) == 1.0
        assert sample("rate_limit_admissions_total", {"outcome": "blocked"}) == 1.0
