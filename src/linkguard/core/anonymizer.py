"""
Retention sweep for sealed link requests.

Records older than the retention period lose their sealed PII, their
user agent and all but the leading part of their IP address. Rows are
kept as anonymized history.
"""

import ipaddress
from datetime import datetime, timedelta
from typing import Callable

import structlog
from sqlalchemy import select, update

from .store import ANONYMIZED, LinkRequest, Store, utcnow

logger = structlog.get_logger(__name__)

DEFAULT_RETENTION_DAYS = 30


def truncate_ip(ip_address: str) -> str:
    """
    Keep only the leading group of an address.

    ``203.0.113.9`` becomes ``203.*.*.*`` and ``2001:db8::1`` becomes
    ``2001:*``. IPv4-mapped IPv6 is treated as IPv4. Anything that does
    not parse becomes ``*``.
    """
    try:
        address = ipaddress.ip_address(ip_address.strip())
    except (ValueError, AttributeError):
        return "*"

    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        address = address.ipv4_mapped

    if isinstance(address, ipaddress.IPv4Address):
        return str(address).split(".")[0] + ".*.*.*"

    first_hextet = address.exploded.split(":")[0].lstrip("0") or "0"
    return first_hextet + ":*"


class AnonymizationScheduler:
    """Runs the anonymization sweep against the store."""

    def __init__(self, store: Store, clock: Callable[[], datetime] = utcnow) -> None:
        self.store = store
        self.clock = clock

    def sweep(self, retention_days: int = DEFAULT_RETENTION_DAYS) -> int:
        """
        Anonymize every record older than ``retention_days``.

        Each row is rewritten with a conditional update that only matches
        while the row still holds sealed data, so re-running the sweep, or
        running two at once, never counts a row twice.

        Returns:
            Number of rows anonymized by this call.
        """
        cutoff = self.clock() - timedelta(days=retention_days)
        anonymized = 0

        with self.store.write() as session:
            candidates = session.execute(
                select(LinkRequest.id, LinkRequest.ip_address).where(
                    LinkRequest.created_at < cutoff,
                    LinkRequest.encrypted_data != ANONYMIZED,
                )
            ).all()

            for record_id, ip_address in candidates:
                result = session.execute(
                    update(LinkRequest)
                    .where(
                        LinkRequest.id == record_id,
                        LinkRequest.encrypted_data != ANONYMIZED,
                    )
                    .values(
                        encrypted_data=ANONYMIZED,
                        iv=ANONYMIZED,
                        auth_tag=ANONYMIZED,
                        ip_address=truncate_ip(ip_address),
                        user_agent=None,
                    )
                    .execution_options(synchronize_session=False)
                )
                anonymized += result.rowcount or 0

        if anonymized:
            logger.info(
                "Anonymization sweep completed",
                records_anonymized=anonymized,
                retention_days=retention_days,
            )
        else:
            logger.debug("Anonymization sweep found nothing to do", retention_days=retention_days)
        return anonymized
