"""
Ghost Bridge Cryptography Module

Hashing and identity helpers. Order sealing lives in
``ghostbridge.crypto.sealing`` and is imported explicitly by its users.
"""

from .hashing import (
    blake3_hash,
    sha256,
    method_selector,
    short_hash,
)
from .address import (
    Identity,
    ZERO_IDENTITY,
    to_identity,
    identity_hex,
    new_identity,
    derive_address,
)

__all__ = [
    'blake3_hash',
    'sha256',
    'method_selector',
    'short_hash',
    'Identity',
    'ZERO_IDENTITY',
    'to_identity',
    'identity_hex',
    'new_identity',
    'derive_address',
]
