"""
Identities and Derived Addresses

Every account, program and signer is a 32-byte identity. Records owned by a
program live at addresses derived from a seed prefix, the owner identity and
the program identity, so any party can recompute where a record lives.
"""

import secrets
from typing import Iterable, Union

from eth_utils import decode_hex, encode_hex

from ..constants import DERIVED_ADDRESS_MARKER, IDENTITY_LENGTH
from ..exceptions import InvalidOrderDataError
from .hashing import sha256

Identity = bytes

ZERO_IDENTITY: Identity = bytes(IDENTITY_LENGTH)


def to_identity(value: Union[bytes, bytearray, str]) -> Identity:
    """
    Normalize a 32-byte identity from raw bytes or a hex string.

    Raises:
        InvalidOrderDataError: if the value is not exactly 32 bytes.
    """
    if isinstance(value, str):
        try:
            raw = decode_hex(value)
        except (ValueError, TypeError) as e:
            raise InvalidOrderDataError(f"identity is not valid hex: {e}") from e
    else:
        raw = bytes(value)
    if len(raw) != IDENTITY_LENGTH:
        raise InvalidOrderDataError(f"identity must be {IDENTITY_LENGTH} bytes, got {len(raw)}")
    return raw


def identity_hex(identity: Identity) -> str:
    """0x-prefixed hex text form of an identity."""
    return encode_hex(identity)


def new_identity() -> Identity:
    """Random identity (test wallets, keeper signers)."""
    return secrets.token_bytes(IDENTITY_LENGTH)


def derive_address(seeds: Iterable[bytes], program_id: Identity) -> Identity:
    """
    Deterministic record address.

    address = sha256(seed_0 || ... || seed_n || program_id || "ProgramDerivedAddress")

    The same seeds under a different program give a different address, so a
    record can only ever be claimed by the program that derives it.
    """
    preimage = b"".join(bytes(s) for s in seeds) + bytes(program_id) + DERIVED_ADDRESS_MARKER
    return sha256(preimage)
