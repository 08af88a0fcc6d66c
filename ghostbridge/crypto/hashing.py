"""
Ghost Bridge Crypto Hashing Module

Provides the hash functions used by the engine:
- blake3: order content hash (compressed and encrypted order commitments)
- sha256: order-params commitment, derived addresses, method selectors
"""

import hashlib
from typing import Union

import blake3
from eth_utils import decode_hex, is_0x_prefixed


def _to_bytes(data: Union[bytes, str]) -> bytes:
    """Strings must be 0x-prefixed hex."""
    if isinstance(data, str):
        if not is_0x_prefixed(data):
            raise ValueError(f"expected 0x-prefixed hex, got {data[:16]!r}")
        return decode_hex(data)
    return bytes(data)


def blake3_hash(data: Union[bytes, str]) -> bytes:
    """
    Compute a 32-byte BLAKE3 digest.

    Args:
        data: Input bytes or 0x-prefixed hex string

    Returns:
        32-byte hash
    """
    return blake3.blake3(_to_bytes(data)).digest()


def sha256(data: Union[bytes, str]) -> bytes:
    """
    Compute SHA-256 hash.

    Args:
        data: Input bytes or 0x-prefixed hex string

    Returns:
        32-byte hash
    """
    return hashlib.sha256(_to_bytes(data)).digest()


def method_selector(name: str, namespace: str = "global") -> bytes:
    """
    8-byte method selector of a downstream program entry point.

    Computed as sha256("<namespace>:<name>")[0:8], e.g.
    method_selector("place_perp_order") == 45a15dca787e4cb9.
    """
    return hashlib.sha256(f"{namespace}:{name}".encode("utf-8")).digest()[:8]


def short_hash(digest: bytes) -> str:
    """First 8 bytes of a digest as hex, for logs."""
    return '0x' + bytes(digest[:8]).hex()
