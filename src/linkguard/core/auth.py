"""
Admin credentials.

Passwords are hashed with Argon2id. The configured admin account is
seeded at startup; an existing account gets its hash replaced so a
changed password in the environment takes effect on restart.
"""

from dataclasses import dataclass

import structlog
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from sqlalchemy import select

from .exceptions import AuthenticationError
from .store import AdminUser, Store

logger = structlog.get_logger(__name__)

_hasher = PasswordHasher()


@dataclass
class AdminIdentity:
    id: int
    username: str


def hash_password(password: str) -> str:
    return _hasher.hash(password)


def seed_admin(store: Store, username: str, password: str) -> AdminIdentity:
    """Create the admin user, or reset its password if it already exists."""
    password_hash = hash_password(password)

    with store.write() as session:
        admin = session.scalars(select(AdminUser).where(AdminUser.username == username)).first()
        if admin is None:
            admin = AdminUser(username=username, password_hash=password_hash)
            session.add(admin)
            created = True
        else:
            admin.password_hash = password_hash
            created = False
        session.flush()
        identity = AdminIdentity(id=admin.id, username=admin.username)

    logger.info("Admin user seeded", username=username, created=created)
    return identity


def verify_admin_credentials(store: Store, username: str, password: str) -> AdminIdentity:
    """
    Check a username/password pair.

    Raises:
        AuthenticationError: unknown user or wrong password. The message
            does not say which.
    """
    with store.read() as session:
        admin = session.scalars(select(AdminUser).where(AdminUser.username == username)).first()

    if admin is None:
        logger.warning("Admin login failed: unknown user", username=username)
        raise AuthenticationError("Invalid credentials")

    try:
        _hasher.verify(admin.password_hash, password)
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        logger.warning("Admin login failed: bad password", username=username)
        raise AuthenticationError("Invalid credentials")

    if _hasher.check_needs_rehash(admin.password_hash):
        with store.write() as session:
            row = session.get(AdminUser, admin.id)
            if row is not None:
                row.password_hash = hash_password(password)

    logger.info("Admin logged in", username=username)
    return AdminIdentity(id=admin.id, username=admin.username)
