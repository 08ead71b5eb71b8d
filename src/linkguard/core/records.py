"""
Sealed link-request records.

PII (phone and message) is sealed before it is written; the IP, user agent
and generated link are stored alongside for the dashboard. Reading a row
that cannot be opened yields a placeholder, never an error.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

import structlog
from sqlalchemy import func, select

from .crypto import SealedRecordCodec
from .exceptions import DecryptionError
from .store import LinkRequest, Store, utcnow

logger = structlog.get_logger(__name__)

REDACTED_PLACEHOLDER = "[encrypted]"


@dataclass
class LinkRequestView:
    """A link request as shown to administrators."""
    id: int
    phone: str
    message: str
    ip_address: str
    user_agent: Optional[str]
    whatsapp_link: str
    created_at: datetime


@dataclass
class RequestStats:
    total_requests: int
    today_requests: int
    week_requests: int


class LinkRequestRepository:
    """Writes and reads ``link_requests`` rows through the codec."""

    def __init__(
        self,
        store: Store,
        codec: SealedRecordCodec,
        clock: Callable[[], datetime] = utcnow,
        on_decrypt_failure: Optional[Callable[[], None]] = None,
    ) -> None:
        self.store = store
        self.codec = codec
        self.clock = clock
        self.on_decrypt_failure = on_decrypt_failure

    def record(
        self,
        phone: str,
        message: str,
        ip_address: str,
        user_agent: Optional[str],
        whatsapp_link: str,
    ) -> int:
        """Seal the PII and persist one request. Returns the row id."""
        payload = json.dumps({"phone": phone, "message": message})
        ciphertext, iv, tag = self.codec.seal(payload).hex()

        row = LinkRequest(
            encrypted_data=ciphertext,
            iv=iv,
            auth_tag=tag,
            ip_address=ip_address,
            user_agent=user_agent,
            whatsapp_link=whatsapp_link,
            created_at=self.clock(),
        )
        with self.store.write() as session:
            session.add(row)
            session.flush()
            row_id = row.id

        logger.info("Link request recorded", record_id=row_id, ip=ip_address)
        return row_id

    def page(self, page: int = 1, limit: int = 20) -> Tuple[List[LinkRequestView], int]:
        """Newest-first page of decrypted requests, plus the total row count."""
        offset = (page - 1) * limit
        with self.store.read() as session:
            rows = session.scalars(
                select(LinkRequest)
                .order_by(LinkRequest.created_at.desc(), LinkRequest.id.desc())
                .limit(limit)
                .offset(offset)
            ).all()
            total = session.scalar(select(func.count()).select_from(LinkRequest)) or 0

        return [self._to_view(row) for row in rows], total

    def stats(self) -> RequestStats:
        now = self.clock()
        day_ago = now - timedelta(days=1)
        week_ago = now - timedelta(days=7)
        with self.store.read() as session:
            total = session.scalar(select(func.count()).select_from(LinkRequest)) or 0
            today = session.scalar(
                select(func.count()).select_from(LinkRequest).where(LinkRequest.created_at > day_ago)
            ) or 0
            week = session.scalar(
                select(func.count()).select_from(LinkRequest).where(LinkRequest.created_at > week_ago)
            ) or 0
        return RequestStats(total_requests=total, today_requests=today, week_requests=week)

    def _to_view(self, row: LinkRequest) -> LinkRequestView:
        phone = REDACTED_PLACEHOLDER
        message = REDACTED_PLACEHOLDER

        try:
            decrypted = json.loads(self.codec.open_hex(row.encrypted_data, row.iv, row.auth_tag))
            phone = decrypted["phone"]
            message = decrypted["message"]
        except (DecryptionError, ValueError, KeyError, TypeError):
            # Anonymized or corrupted rows are expected
            logger.debug("Record unavailable", record_id=row.id)
            if self.on_decrypt_failure is not None:
                self.on_decrypt_failure()

        return LinkRequestView(
            id=row.id,
            phone=phone,
            message=message,
            ip_address=row.ip_address,
            user_agent=row.user_agent,
            whatsapp_link=row.whatsapp_link,
            created_at=row.created_at,
        )
