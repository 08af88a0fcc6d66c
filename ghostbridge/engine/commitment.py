"""
Order Commitment Codec

The compressed order is never stored. Only its blake3 digest is registered,
and the owner (or a keeper holding the sealed preimage) reveals the fields at
execution time so the engine can recompute and compare.

Preimage layout (117 bytes, little-endian integers):

    owner             32
    order_id           8  u64
    market_index       2  u16
    trigger_price      8  i64
    trigger_condition  1  u8
    order_side         1  u8
    base_asset_amount  8  u64
    reduce_only        1  u8
    expiry             8  i64 (0 = never)
    feed_id           32
    salt              16
"""

from __future__ import annotations

import hmac
import secrets
import struct
from dataclasses import dataclass, replace

from ..constants import FEED_ID_LENGTH, IDENTITY_LENGTH, SALT_LENGTH
from ..crypto.hashing import blake3_hash, sha256
from ..exceptions import InvalidOrderDataError
from .types import (
    I64_MAX,
    U16_MAX,
    U64_MAX,
    OrderSide,
    TriggerCondition,
    check_fixed_bytes,
    check_signed,
    check_unsigned,
)

_PREIMAGE = struct.Struct("<32sQHqBBQBq32s16s")
PREIMAGE_SIZE = _PREIMAGE.size  # 117

_PARAMS = struct.Struct("<HBQB")
PARAMS_SIZE = _PARAMS.size  # 12


# ---------------------------------------------------------------------------
# Shared predicates
# ---------------------------------------------------------------------------

def trigger_met(condition: TriggerCondition, trigger_price: int, price: int) -> bool:
    """Inclusive at the boundary for both directions."""
    if condition == TriggerCondition.ABOVE:
        return price >= trigger_price
    return price <= trigger_price


def expired(expiry: int, now: int) -> bool:
    return expiry > 0 and now > expiry


def absolute_expiry(now: int, expiry_seconds: int) -> int:
    """Relative expiry from order arguments; non-positive means never."""
    if expiry_seconds <= 0:
        return 0
    return min(now + expiry_seconds, I64_MAX)


def generate_salt() -> bytes:
    return secrets.token_bytes(SALT_LENGTH)


def generate_nonce() -> int:
    return secrets.randbits(64)


# ---------------------------------------------------------------------------
# Compressed order
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CompressedOrder:
    """A trigger order whose only public trace is ``order_hash``."""
    owner: bytes
    order_id: int
    market_index: int
    trigger_price: int
    trigger_condition: TriggerCondition
    order_side: OrderSide
    base_asset_amount: int
    reduce_only: bool
    expiry: int
    feed_id: bytes
    salt: bytes

    def __post_init__(self):
        check_fixed_bytes("owner", self.owner, IDENTITY_LENGTH)
        check_unsigned("order_id", self.order_id, U64_MAX)
        check_unsigned("market_index", self.market_index, U16_MAX)
        check_signed("trigger_price", self.trigger_price)
        check_unsigned("base_asset_amount", self.base_asset_amount, U64_MAX)
        check_signed("expiry", self.expiry)
        check_fixed_bytes("feed_id", self.feed_id, FEED_ID_LENGTH)
        check_fixed_bytes("salt", self.salt, SALT_LENGTH)
        object.__setattr__(self, "trigger_condition", TriggerCondition.parse(int(self.trigger_condition)))
        object.__setattr__(self, "order_side", OrderSide.parse(int(self.order_side)))
        object.__setattr__(self, "reduce_only", bool(self.reduce_only))

    # -- Serialization ------------------------------------------------------

    def to_bytes(self) -> bytes:
        return _PREIMAGE.pack(
            self.owner,
            self.order_id,
            self.market_index,
            self.trigger_price,
            int(self.trigger_condition),
            int(self.order_side),
            self.base_asset_amount,
            1 if self.reduce_only else 0,
            self.expiry,
            self.feed_id,
            self.salt,
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "CompressedOrder":
        if len(data) != PREIMAGE_SIZE:
            raise InvalidOrderDataError(f"preimage must be {PREIMAGE_SIZE} bytes, got {len(data)}")
        (owner, order_id, market_index, trigger_price, condition, side,
         amount, reduce_only, expiry, feed_id, salt) = _PREIMAGE.unpack(data)
        if reduce_only > 1:
            raise InvalidOrderDataError(f"reduce_only flag {reduce_only}")
        return cls(
            owner=owner,
            order_id=order_id,
            market_index=market_index,
            trigger_price=trigger_price,
            trigger_condition=TriggerCondition.parse(condition),
            order_side=OrderSide.parse(side),
            base_asset_amount=amount,
            reduce_only=bool(reduce_only),
            expiry=expiry,
            feed_id=feed_id,
            salt=salt,
        )

    # -- Commitment ---------------------------------------------------------

    def compute_hash(self) -> bytes:
        return blake3_hash(self.to_bytes())

    def check_trigger(self, price: int) -> bool:
        return trigger_met(self.trigger_condition, self.trigger_price, price)

    def is_expired(self, now: int) -> bool:
        return expired(self.expiry, now)

    def params(self) -> "OrderParams":
        return OrderParams(
            market_index=self.market_index,
            order_side=self.order_side,
            base_asset_amount=self.base_asset_amount,
            reduce_only=self.reduce_only,
        )

    def with_changes(self, **changes) -> "CompressedOrder":
        return replace(self, **changes)


def compute_hash(order: CompressedOrder) -> bytes:
    """blake3 over the 117-byte canonical preimage."""
    return order.compute_hash()


# ---------------------------------------------------------------------------
# Ready-commitment over trade parameters
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OrderParams:
    """The trade half of an order, committed to at ``mark_ready``."""
    market_index: int
    order_side: OrderSide
    base_asset_amount: int
    reduce_only: bool

    def __post_init__(self):
        check_unsigned("market_index", self.market_index, U16_MAX)
        check_unsigned("base_asset_amount", self.base_asset_amount, U64_MAX)
        object.__setattr__(self, "order_side", OrderSide.parse(int(self.order_side)))
        object.__setattr__(self, "reduce_only", bool(self.reduce_only))

    def to_bytes(self) -> bytes:
        return _PARAMS.pack(
            self.market_index,
            int(self.order_side),
            self.base_asset_amount,
            1 if self.reduce_only else 0,
        )


def compute_params_commitment(params: OrderParams, nonce: int) -> bytes:
    check_unsigned("nonce", nonce, U64_MAX)
    return sha256(params.to_bytes() + nonce.to_bytes(8, "little"))


def verify_params_commitment(params: OrderParams, nonce: int, commitment: bytes) -> bool:
    return hmac.compare_digest(compute_params_commitment(params, nonce), commitment)
