"""
Authenticated encryption for PII at rest.

AES-256-GCM with a fresh 96-bit random nonce per seal and a 128-bit tag.
The key is loaded once at startup; a missing or malformed key is fatal.
"""

import os
from dataclasses import dataclass
from typing import Optional

import structlog
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .exceptions import ConfigurationError, DecryptionError

logger = structlog.get_logger(__name__)

KEY_LENGTH_BYTES = 32
NONCE_LENGTH_BYTES = 12
TAG_LENGTH_BYTES = 16


@dataclass(frozen=True)
class SealedPayload:
    """Output of one seal call. The three parts only open together."""
    ciphertext: bytes
    iv: bytes
    tag: bytes

    def hex(self) -> "tuple[str, str, str]":
        """Storage encoding: (ciphertext, iv, tag) as hex strings."""
        return self.ciphertext.hex(), self.iv.hex(), self.tag.hex()

    @classmethod
    def from_hex(cls, ciphertext: str, iv: str, tag: str) -> "SealedPayload":
        """
        Decode a stored triple.

        Raises DecryptionError for anything that is not hex, which includes
        the anonymization sentinel.
        """
        try:
            return cls(
                ciphertext=bytes.fromhex(ciphertext),
                iv=bytes.fromhex(iv),
                tag=bytes.fromhex(tag),
            )
        except (TypeError, ValueError) as e:
            raise DecryptionError("Sealed record is not decodable") from e


class SealedRecordCodec:
    """
    Seals and opens PII payloads.

    Nonces come from ``os.urandom`` on every call, so concurrent callers
    never share nonce state.
    """

    def __init__(self, key: bytes) -> None:
        if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_LENGTH_BYTES:
            raise ConfigurationError(
                f"Encryption key must be exactly {KEY_LENGTH_BYTES} bytes",
                details={"expected_bytes": KEY_LENGTH_BYTES},
            )
        self._aead = AESGCM(bytes(key))

    @classmethod
    def from_hex(cls, key_hex: Optional[str]) -> "SealedRecordCodec":
        """
        Build a codec from the operator-supplied hex key.

        Raises ConfigurationError if the key is absent, not hex, or not
        64 hex characters.
        """
        if not key_hex:
            raise ConfigurationError(
                "Encryption key is not set. Provide 64 hex characters (32 bytes); "
                "generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
            )

        key_hex = key_hex.strip()
        if len(key_hex) != KEY_LENGTH_BYTES * 2:
            raise ConfigurationError(
                "Encryption key must be exactly 64 hex characters (32 bytes)",
                details={"length": len(key_hex)},
            )

        try:
            key = bytes.fromhex(key_hex)
        except ValueError as e:
            raise ConfigurationError("Encryption key is not valid hex") from e

        return cls(key)

    def seal(self, plaintext: str) -> SealedPayload:
        """Encrypt a UTF-8 string under a fresh nonce."""
        iv = os.urandom(NONCE_LENGTH_BYTES)
        sealed = self._aead.encrypt(iv, plaintext.encode("utf-8"), None)
        return SealedPayload(
            ciphertext=sealed[:-TAG_LENGTH_BYTES],
            iv=iv,
            tag=sealed[-TAG_LENGTH_BYTES:],
        )

    def open(self, ciphertext: bytes, iv: bytes, tag: bytes) -> str:
        """
        Decrypt and authenticate.

        Raises DecryptionError if the tag does not verify or the parts are
        malformed. No plaintext is returned unless authentication succeeds.
        """
        if len(iv) != NONCE_LENGTH_BYTES or len(tag) != TAG_LENGTH_BYTES:
            raise DecryptionError("Sealed record has malformed nonce or tag")

        try:
            plaintext = self._aead.decrypt(iv, ciphertext + tag, None)
        except InvalidTag as e:
            raise DecryptionError("Authentication tag did not verify") from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError("Sealed record is not valid UTF-8") from e

    def open_payload(self, payload: SealedPayload) -> str:
        return self.open(payload.ciphertext, payload.iv, payload.tag)

    def open_hex(self, ciphertext: str, iv: str, tag: str) -> str:
        """Open a triple in its hex storage encoding."""
        return self.open_payload(SealedPayload.from_hex(ciphertext, iv, tag))
