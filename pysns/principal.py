"""Principals: the addresses of identities and canisters on the network."""

from __future__ import annotations

import base64
import hashlib
import zlib
from typing import Type, Union

from pysns.exception import InvalidDataException

__all__ = [
    "PRINCIPAL_MAX_SIZE",
    "SELF_AUTHENTICATING_SUFFIX",
    "ANONYMOUS_SUFFIX",
    "Principal",
]

PRINCIPAL_MAX_SIZE = 29

SELF_AUTHENTICATING_SUFFIX = 0x02

ANONYMOUS_SUFFIX = 0x04


class Principal:
    """An opaque binary identifier of at most 29 bytes.

    The textual form is the CRC32 (big-endian) of the raw bytes followed by the
    bytes themselves, base32 encoded in lowercase without padding and grouped in
    chunks of five characters separated by dashes.

    Args:
        payload (bytes): Raw principal bytes.
    """

    __slots__ = "_payload"

    def __init__(self, payload: bytes):
        if len(payload) > PRINCIPAL_MAX_SIZE:
            raise InvalidDataException(
                f"Invalid principal size: {len(payload)}, expected at most {PRINCIPAL_MAX_SIZE} bytes"
            )
        self._payload = bytes(payload)

    @property
    def payload(self) -> bytes:
        return self._payload

    @classmethod
    def self_authenticating(cls: Type[Principal], der_public_key: bytes) -> Principal:
        """Principal of an identity, derived from its DER encoded public key."""
        digest = hashlib.sha224(der_public_key).digest()
        return cls(digest + bytes([SELF_AUTHENTICATING_SUFFIX]))

    @classmethod
    def anonymous(cls: Type[Principal]) -> Principal:
        return cls(bytes([ANONYMOUS_SUFFIX]))

    @classmethod
    def management_canister(cls: Type[Principal]) -> Principal:
        return cls(b"")

    @classmethod
    def from_str(cls: Type[Principal], text: str) -> Principal:
        """Parse the textual form of a principal, verifying its checksum.

        Raises:
            :class:`InvalidDataException`: When the text is not a valid principal.
        """
        compact = text.strip().replace("-", "").upper()
        padding = "=" * (-len(compact) % 8)
        try:
            decoded = base64.b32decode(compact + padding)
        except ValueError as e:
            raise InvalidDataException(f"Invalid principal text: {text}") from e
        if len(decoded) < 4:
            raise InvalidDataException(f"Principal text too short: {text}")
        checksum, payload = decoded[:4], decoded[4:]
        principal = cls(payload)
        if principal.checksum() != checksum or str(principal) != text.strip().lower():
            raise InvalidDataException(f"Principal checksum mismatch: {text}")
        return principal

    @classmethod
    def from_primitive(cls: Type[Principal], value: Union[str, bytes, Principal]) -> Principal:
        if isinstance(value, Principal):
            return value
        elif isinstance(value, bytes):
            return cls(value)
        return cls.from_str(value)

    def checksum(self) -> bytes:
        return (zlib.crc32(self._payload) & 0xFFFFFFFF).to_bytes(4, "big")

    def is_self_authenticating(self) -> bool:
        return (
            len(self._payload) == PRINCIPAL_MAX_SIZE
            and self._payload[-1] == SELF_AUTHENTICATING_SUFFIX
        )

    def __len__(self):
        return len(self._payload)

    def __bytes__(self):
        return self._payload

    def __hash__(self):
        return hash(self._payload)

    def __eq__(self, other):
        if isinstance(other, Principal):
            return self._payload == other._payload
        return False

    def __lt__(self, other):
        return self._payload < bytes(other)

    def __str__(self):
        encoded = base64.b32encode(self.checksum() + self._payload).decode()
        encoded = encoded.rstrip("=").lower()
        return "-".join(encoded[i : i + 5] for i in range(0, len(encoded), 5))

    def __repr__(self):
        return f"{self.__class__.__name__}({self})"
