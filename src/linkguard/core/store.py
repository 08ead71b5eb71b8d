"""
Durable record store.

SQLAlchemy tables for admin users, sealed link requests, rate window
samples and blocked IPs, plus the ``Store`` handle every component
receives at construction.

Writes are serialized at the store boundary: ``Store.write()`` holds a
process-wide writer lock for the whole transaction, so request handlers
and background sweeps never interleave partial updates. Reads use their
own sessions and do not take the lock.
"""

import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

import structlog
from sqlalchemy import (
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    create_engine,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.types import TypeDecorator

from .exceptions import PersistenceError

logger = structlog.get_logger(__name__)

ANONYMIZED = "ANONYMIZED"


def _driver_error(e: SQLAlchemyError) -> str:
    # The DBAPI message only; str(e) also carries the SQL statement
    orig = getattr(e, "orig", None)
    return f"{type(e).__name__}: {orig}" if orig is not None else type(e).__name__


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    DateTime column that always round-trips timezone-aware UTC values.

    SQLite drops tzinfo on storage; values are normalized to naive UTC on
    the way in and tagged as UTC on the way out.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect: Any) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value: Optional[datetime], dialect: Any) -> Optional[datetime]:
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


class Base(DeclarativeBase):
    """Declarative base shared by all tables."""


class AdminUser(Base):
    """Dashboard administrator credentials."""

    __tablename__ = "admin_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)


class LinkRequest(Base):
    """
    A sealed link-generation record.

    ``encrypted_data``, ``iv`` and ``auth_tag`` are hex text produced by one
    seal call and must be written and read together.
    """

    __tablename__ = "link_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    encrypted_data: Mapped[str] = mapped_column(Text, nullable=False)
    iv: Mapped[str] = mapped_column(String(64), nullable=False)
    auth_tag: Mapped[str] = mapped_column(String(64), nullable=False)
    ip_address: Mapped[str] = mapped_column(String(64), nullable=False)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    whatsapp_link: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_link_requests_created", "created_at"),
    )


class RateLimitSample(Base):
    """One admitted request inside the sliding window."""

    __tablename__ = "rate_limit_tracking"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ip_address: Mapped[str] = mapped_column(String(64), nullable=False)
    requested_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_rate_limit_ip_time", "ip_address", "requested_at"),
    )


class BlockedIP(Base):
    """
    A block entry. At most one row per IP.

    Manual blocks have ``expires_at`` NULL and are only removed by an
    explicit unblock.
    """

    __tablename__ = "blocked_ips"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ip_address: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    blocked_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    is_manual: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    __table_args__ = (
        Index("idx_blocked_ips_expires", "expires_at"),
    )


class Store:
    """
    Handle to the durable store.

    Lifecycle is ``open()`` / ``close()`` (or use it as a context manager).
    ``close()`` waits for the active writer so the last transaction is
    flushed before the engine is disposed.
    """

    def __init__(self, url: str, echo: bool = False) -> None:
        self.url = url
        self.echo = echo
        self._engine: Optional[Engine] = None
        self._sessionmaker: Optional[sessionmaker[Session]] = None
        self._write_lock = threading.Lock()

    @property
    def dialect_name(self) -> str:
        return self._require_engine().dialect.name

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    def open(self) -> "Store":
        """Create the engine and the schema."""
        if self._engine is not None:
            return self

        connect_args = {}
        if self.url.startswith("sqlite"):
            connect_args["check_same_thread"] = False

        try:
            engine = create_engine(
                self.url, echo=self.echo, connect_args=connect_args, hide_parameters=True
            )
            Base.metadata.create_all(bind=engine)
        except SQLAlchemyError as e:
            logger.error("Failed to open store", url=self._safe_url(), error=_driver_error(e))
            raise PersistenceError("Failed to open store") from e

        self._engine = engine
        self._sessionmaker = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
        logger.info("Store opened", url=self._safe_url())
        return self

    def close(self) -> None:
        """Dispose the engine once any in-flight write has committed."""
        with self._write_lock:
            if self._engine is None:
                return
            self._engine.dispose()
            self._engine = None
            self._sessionmaker = None
        logger.info("Store closed")

    def __enter__(self) -> "Store":
        return self.open()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @contextmanager
    def read(self) -> Iterator[Session]:
        """Session for read-only work."""
        session = self._new_session()
        try:
            yield session
        except SQLAlchemyError as e:
            logger.error("Store read failed", error=_driver_error(e))
            raise PersistenceError("Storage read failed") from e
        finally:
            session.close()

    @contextmanager
    def write(self) -> Iterator[Session]:
        """
        Session for a single write transaction.

        Holds the writer lock until commit or rollback.
        """
        with self._write_lock:
            session = self._new_session()
            try:
                yield session
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                logger.error("Store write failed", error=_driver_error(e))
                raise PersistenceError("Storage write failed") from e
            except BaseException:
                session.rollback()
                raise
            finally:
                session.close()

    def ping(self) -> bool:
        """Round-trip a trivial query."""
        with self.read() as session:
            session.execute(text("SELECT 1"))
        return True

    def _new_session(self) -> Session:
        if self._sessionmaker is None:
            raise PersistenceError("Store is not open")
        return self._sessionmaker()

    def _require_engine(self) -> Engine:
        if self._engine is None:
            raise PersistenceError("Store is not open")
        return self._engine

    def _safe_url(self) -> str:
        # Never log credentials embedded in the URL
        return self.url.split("@")[-1] if "@" in self.url else self.url
