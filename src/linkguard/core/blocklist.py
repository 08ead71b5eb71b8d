"""
Durable IP block list.

An entry is active while ``expires_at`` is NULL (manual) or still in the
future. At most one entry exists per IP; automatic inserts never replace
an active entry, manual blocks always do.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, List, Optional

import structlog
from sqlalchemy import delete, func, or_, select
from sqlalchemy.dialects import postgresql, sqlite

from .store import BlockedIP, Store, utcnow

logger = structlog.get_logger(__name__)

DEFAULT_MANUAL_REASON = "Manually blocked by admin"


@dataclass
class BlockEntry:
    """Detached view of a block row."""
    ip: str
    reason: str
    blocked_at: datetime
    expires_at: Optional[datetime]
    is_manual: bool

    @classmethod
    def from_row(cls, row: BlockedIP) -> "BlockEntry":
        return cls(
            ip=row.ip_address,
            reason=row.reason,
            blocked_at=row.blocked_at,
            expires_at=row.expires_at,
            is_manual=row.is_manual,
        )


class BlockList:
    """Block list backed by the ``blocked_ips`` table."""

    def __init__(self, store: Store, clock: Callable[[], datetime] = utcnow) -> None:
        self.store = store
        self.clock = clock

    def _active_clause(self, now: datetime) -> Any:
        return or_(BlockedIP.expires_at.is_(None), BlockedIP.expires_at > now)

    def _insert(self) -> Any:
        # Both dialects support ON CONFLICT on the unique ip_address column
        if self.store.dialect_name == "postgresql":
            return postgresql.insert(BlockedIP.__table__)
        return sqlite.insert(BlockedIP.__table__)

    def active_entry(self, ip: str) -> Optional[BlockEntry]:
        """Return the active entry for an IP, if any."""
        now = self.clock()
        with self.store.read() as session:
            row = session.scalars(
                select(BlockedIP).where(BlockedIP.ip_address == ip, self._active_clause(now))
            ).first()
            return BlockEntry.from_row(row) if row else None

    def is_blocked(self, ip: str) -> bool:
        return self.active_entry(ip) is not None

    def block_automatic(self, ip: str, reason: str, expires_at: datetime) -> bool:
        """
        Insert an automatic block.

        Does nothing if the IP already has an active entry. A lapsed
        automatic entry that cleanup has not removed yet is renewed in
        place. Returns True when a row was written.
        """
        now = self.clock()
        table = BlockedIP.__table__
        stmt = self._insert().values(
            ip_address=ip,
            reason=reason,
            blocked_at=now,
            expires_at=expires_at,
            is_manual=False,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["ip_address"],
            set_={
                "reason": stmt.excluded.reason,
                "blocked_at": stmt.excluded.blocked_at,
                "expires_at": stmt.excluded.expires_at,
            },
            where=(table.c.is_manual == False) & (table.c.expires_at <= now),  # noqa: E712
        )
        with self.store.write() as session:
            result = session.execute(stmt)
            created = bool(result.rowcount)

        if created:
            logger.warning("IP auto-blocked", ip=ip, reason=reason, expires_at=expires_at.isoformat())
        return created

    def block_manual(self, ip: str, reason: Optional[str] = None) -> BlockEntry:
        """Create or replace the entry for an IP with a permanent manual block."""
        now = self.clock()
        reason = reason or DEFAULT_MANUAL_REASON
        stmt = self._insert().values(
            ip_address=ip,
            reason=reason,
            blocked_at=now,
            expires_at=None,
            is_manual=True,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["ip_address"],
            set_={
                "reason": stmt.excluded.reason,
                "blocked_at": stmt.excluded.blocked_at,
                "expires_at": None,
                "is_manual": True,
            },
        )
        with self.store.write() as session:
            session.execute(stmt)

        logger.info("IP manually blocked", ip=ip, reason=reason)
        return BlockEntry(ip=ip, reason=reason, blocked_at=now, expires_at=None, is_manual=True)

    def unblock(self, ip: str) -> bool:
        """Remove any entry for an IP, manual or automatic."""
        with self.store.write() as session:
            result = session.execute(
                delete(BlockedIP)
                .where(BlockedIP.ip_address == ip)
                .execution_options(synchronize_session=False)
            )
            removed = bool(result.rowcount)

        logger.info("IP unblocked", ip=ip, removed=removed)
        return removed

    def list_active(self) -> List[BlockEntry]:
        now = self.clock()
        with self.store.read() as session:
            rows = session.scalars(
                select(BlockedIP)
                .where(self._active_clause(now))
                .order_by(BlockedIP.blocked_at.desc())
            ).all()
            return [BlockEntry.from_row(row) for row in rows]

    def count_active(self) -> int:
        now = self.clock()
        with self.store.read() as session:
            return session.scalar(
                select(func.count()).select_from(BlockedIP).where(self._active_clause(now))
            ) or 0

    def purge_expired(self) -> int:
        """Delete automatic blocks whose expiry has passed. Manual blocks are kept."""
        now = self.clock()
        with self.store.write() as session:
            result = session.execute(
                delete(BlockedIP)
                .where(
                    BlockedIP.is_manual == False,  # noqa: E712
                    BlockedIP.expires_at.is_not(None),
                    BlockedIP.expires_at <= now,
                )
                .execution_options(synchronize_session=False)
            )
            return result.rowcount or 0
