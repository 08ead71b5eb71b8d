"""
Request protection pipeline.

Runs in front of state-changing handlers, in order:
1. Block list check (cheap rejection)
2. Sliding window admission, which may promote the IP to a block
3. CSRF verification for state-changing methods

Steps 1 and 2 only apply to rate-limited routes; step 3 applies to every
state-changing route except the exempt bootstrap paths.
"""

from typing import Optional

import structlog

from .csrf import CsrfGuard
from .exceptions import BlockedError, CsrfError, RateLimitError
from .metrics import MetricsCollector
from .rate_limiter import REASON_BLOCKED, Admission, SlidingWindowLimiter

logger = structlog.get_logger(__name__)


class RequestPipeline:
    """Composes the limiter and the CSRF guard. Denials raise."""

    def __init__(
        self,
        limiter: SlidingWindowLimiter,
        csrf: CsrfGuard,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.limiter = limiter
        self.csrf = csrf
        self.metrics = metrics

    def admit(self, ip: str) -> Admission:
        """
        Run the block list and rate limit checks for ``ip``.

        Raises:
            BlockedError: the IP has an active block.
            RateLimitError: the IP just crossed the threshold and is now blocked.
        """
        admission = self.limiter.admit(ip)

        if self.metrics:
            self.metrics.record_admission(admission.reason or "allowed")

        if admission.allowed:
            return admission

        if admission.reason == REASON_BLOCKED:
            raise BlockedError()

        hours = self.limiter.auto_block_hours
        raise RateLimitError(
            message=f"Rate limit exceeded. You have been blocked for {hours} hour{'s' if hours != 1 else ''}.",
            retry_after=admission.retry_after,
        )

    def verify_csrf(
        self,
        method: str,
        path: str,
        session_id: Optional[str],
        supplied_token: Optional[str],
    ) -> None:
        """Raise ``CsrfError`` unless the request is safe, exempt or carries the session token."""
        if not self.csrf.requires_check(method, path):
            return

        if self.csrf.verify(session_id, supplied_token):
            return

        logger.warning("CSRF verification failed", method=method, path=path)
        if self.metrics:
            self.metrics.record_csrf_rejection()
        raise CsrfError()

    def guard(
        self,
        ip: str,
        method: str,
        path: str,
        session_id: Optional[str],
        supplied_token: Optional[str],
    ) -> Admission:
        """Full pipeline for a rate-limited, state-changing route."""
        admission = self.admit(ip)
        self.verify_csrf(method, path, session_id, supplied_token)
        return admission
