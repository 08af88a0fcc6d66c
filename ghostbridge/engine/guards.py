"""
Precondition guards.

Each operation starts with these checks; a failed guard raises a typed error
before any write, which aborts the atomic unit. Status guards double as the
optimistic compare-and-swap against racing keepers.
"""

from __future__ import annotations

from typing import Type

from ..constants import MAX_ENCRYPTED_DATA_LEN
from ..crypto.address import Identity, identity_hex
from ..exceptions import (
    AddressMismatchError,
    EncryptedDataTooLongError,
    ExecutorNotAuthorizedError,
    GhostBridgeError,
    InvalidOrderDataError,
    UnauthorizedError,
)
from .registry import ExecutorAuthority


def require_owner(signer: Identity, owner: Identity) -> None:
    if signer != owner:
        raise UnauthorizedError(f"signer {identity_hex(signer)}")


def require_address(actual: Identity, expected: Identity) -> None:
    """Derived-address equality."""
    if actual != expected:
        raise AddressMismatchError(f"expected {identity_hex(expected)}, got {identity_hex(actual)}")


def require_status(status, *allowed, error: Type[GhostBridgeError]) -> None:
    if status not in allowed:
        raise error(f"status is {status.name}")


def require_can_trigger(authority: ExecutorAuthority, caller: Identity) -> None:
    if not authority.can_trigger(caller):
        raise ExecutorNotAuthorizedError(identity_hex(caller))


def require_payload(data: bytes) -> None:
    if len(data) == 0:
        raise InvalidOrderDataError("encrypted payload is empty")
    if len(data) > MAX_ENCRYPTED_DATA_LEN:
        raise EncryptedDataTooLongError(f"{len(data)} > {MAX_ENCRYPTED_DATA_LEN} bytes")
