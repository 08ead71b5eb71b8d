"""
Per-IP sliding window rate limiter with automatic blocking.

Admission counts the samples an IP left inside the trailing window. An IP
at or above the threshold is auto-blocked for a fixed lifetime. Old
samples and expired blocks are removed by ``cleanup()``, which runs on its
own schedule and never on the request path.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Tuple

import structlog
from sqlalchemy import delete, func, select

from .blocklist import BlockList
from .store import RateLimitSample, Store, utcnow

logger = structlog.get_logger(__name__)

AUTO_BLOCK_REASON = "Rate limit exceeded"

REASON_BLOCKED = "blocked"
REASON_RATE_LIMITED = "rate_limited"


@dataclass
class Admission:
    """Outcome of an admission check. Denial is a normal result, not an error."""
    allowed: bool
    limit: int
    reason: Optional[str] = None
    retry_after: Optional[int] = None
    remaining: Optional[int] = None


class SlidingWindowLimiter:
    """
    Sliding window limiter backed by the ``rate_limit_tracking`` table.

    The count and the sample insert are separate store operations, so
    concurrent requests from one IP may overshoot the limit by a request
    or two before the block lands. The block insert itself is idempotent.
    """

    def __init__(
        self,
        store: Store,
        blocklist: BlockList,
        window_seconds: int = 60,
        max_requests: int = 50,
        auto_block_hours: int = 1,
        sample_retention_seconds: int = 300,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.blocklist = blocklist
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self.auto_block_hours = auto_block_hours
        self.sample_retention_seconds = sample_retention_seconds
        self.clock = clock

    @property
    def block_seconds(self) -> int:
        return self.auto_block_hours * 3600

    def count_recent(self, ip: str, now: Optional[datetime] = None) -> int:
        """Count samples for an IP strictly inside the trailing window."""
        now = now or self.clock()
        window_start = now - timedelta(seconds=self.window_seconds)
        with self.store.read() as session:
            return session.scalar(
                select(func.count())
                .select_from(RateLimitSample)
                .where(
                    RateLimitSample.ip_address == ip,
                    RateLimitSample.requested_at > window_start,
                )
            ) or 0

    def admit(self, ip: str) -> Admission:
        """Decide whether a request from ``ip`` may proceed."""
        if self.blocklist.is_blocked(ip):
            logger.info("Request denied: IP blocked", ip=ip)
            return Admission(allowed=False, limit=self.max_requests, reason=REASON_BLOCKED)

        now = self.clock()
        count = self.count_recent(ip, now)

        if count >= self.max_requests:
            expires_at = now + timedelta(hours=self.auto_block_hours)
            self.blocklist.block_automatic(ip, AUTO_BLOCK_REASON, expires_at)
            logger.warning(
                "Rate limit exceeded",
                ip=ip,
                count=count,
                limit=self.max_requests,
                window_seconds=self.window_seconds,
                retry_after=self.block_seconds,
            )
            return Admission(
                allowed=False,
                limit=self.max_requests,
                reason=REASON_RATE_LIMITED,
                retry_after=self.block_seconds,
                remaining=0,
            )

        with self.store.write() as session:
            session.add(RateLimitSample(ip_address=ip, requested_at=now))

        remaining = max(0, self.max_requests - count - 1)
        logger.debug("Rate limit check passed", ip=ip, count=count + 1, remaining=remaining)
        return Admission(allowed=True, limit=self.max_requests, remaining=remaining)

    def cleanup(self) -> Tuple[int, int]:
        """
        Delete stale samples and expired automatic blocks.

        Returns (samples_deleted, blocks_deleted).
        """
        now = self.clock()
        cutoff = now - timedelta(seconds=self.sample_retention_seconds)
        with self.store.write() as session:
            result = session.execute(
                delete(RateLimitSample)
                .where(RateLimitSample.requested_at < cutoff)
                .execution_options(synchronize_session=False)
            )
            samples_deleted = result.rowcount or 0

        blocks_deleted = self.blocklist.purge_expired()

        if samples_deleted or blocks_deleted:
            logger.info(
                "Rate limit cleanup completed",
                samples_deleted=samples_deleted,
                blocks_deleted=blocks_deleted,
            )
        return samples_deleted, blocks_deleted
