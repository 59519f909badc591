"""Sub-account derivations understood by the ledger, governance and sale services."""

from __future__ import annotations

import hashlib
from typing import Optional, Type, Union

from pysns.exception import InvalidArgumentException, InvalidDataException
from pysns.principal import Principal
from pysns.types import typechecked

__all__ = [
    "SUBACCOUNT_SIZE",
    "NEURON_STAKE_DOMAIN",
    "Subaccount",
    "neuron_stake_subaccount",
    "participant_subaccount",
    "principal_from_subaccount",
]

SUBACCOUNT_SIZE = 32

NEURON_STAKE_DOMAIN = b"neuron-stake"


class Subaccount:
    """A 32-byte suffix selecting one of many balances held under a principal.

    Args:
        payload (bytes): Exactly 32 bytes.
    """

    __slots__ = "_payload"

    def __init__(self, payload: bytes):
        if len(payload) != SUBACCOUNT_SIZE:
            raise InvalidArgumentException(
                f"Invalid subaccount size: {len(payload)}, expected {SUBACCOUNT_SIZE} bytes"
            )
        self._payload = bytes(payload)

    @property
    def payload(self) -> bytes:
        return self._payload

    @classmethod
    def from_hex(cls: Type[Subaccount], text: str) -> Subaccount:
        try:
            return cls(bytes.fromhex(text.strip()))
        except ValueError as e:
            raise InvalidArgumentException(f"Invalid subaccount hex: {text}") from e

    @classmethod
    def default(cls: Type[Subaccount]) -> Subaccount:
        return cls(bytes(SUBACCOUNT_SIZE))

    def to_hex(self) -> str:
        return self._payload.hex()

    def __bytes__(self):
        return self._payload

    def __hash__(self):
        return hash(self._payload)

    def __eq__(self, other):
        if isinstance(other, Subaccount):
            return self._payload == other._payload
        return False

    def __repr__(self):
        return f"{self.__class__.__name__}(hex='{self.to_hex()}')"

    def __str__(self):
        return self.to_hex()


@typechecked
def neuron_stake_subaccount(controller: Principal, memo: int) -> Subaccount:
    """Subaccount of the governance canister that a neuron's stake is sent to.

    ``sha256(len(domain) || domain || controller || memo as big-endian u64)``.
    """
    if not 0 <= memo < 2**64:
        raise InvalidArgumentException(f"Neuron memo out of u64 range: {memo}")
    h = hashlib.sha256()
    h.update(bytes([len(NEURON_STAKE_DOMAIN)]))
    h.update(NEURON_STAKE_DOMAIN)
    h.update(bytes(controller))
    h.update(memo.to_bytes(8, "big"))
    return Subaccount(h.digest())


@typechecked
def participant_subaccount(principal: Principal) -> Subaccount:
    """Subaccount of the sale canister that holds a buyer's participation.

    The first byte is the principal length, followed by the principal bytes,
    zero padded to 32 bytes.
    """
    raw = bytes(principal)
    return Subaccount(bytes([len(raw)]) + raw + bytes(SUBACCOUNT_SIZE - 1 - len(raw)))


def principal_from_subaccount(subaccount: Union[Subaccount, bytes]) -> Optional[Principal]:
    """Recover the principal embedded by :func:`participant_subaccount`.

    Returns None if the subaccount does not have the length-prefixed shape.
    """
    raw = bytes(subaccount)
    size = raw[0]
    if size + 1 > len(raw) or any(raw[size + 1 :]):
        return None
    try:
        return Principal(raw[1 : size + 1])
    except InvalidDataException:
        return None
