"""
Settlement Call Builder

Encodes the downstream venue's ``place_perp_order`` request. The payload is
an 8-byte selector followed by the venue's order-params struct; every
optional field is encoded as absent, which gives a fixed 40-byte market
order:

    [0..8)   selector sha256("global:place_perp_order")[:8]
    [8]      order type
    [9]      market type (PERP)
    [10]     direction
    [11]     user order id (0 = venue assigns)
    [12..20) base asset amount  u64 LE
    [20..28) price              u64 LE (0 for market)
    [28..30) market index       u16 LE
    [30]     reduce only
    [31]     post only (none)
    [32]     bit flags
    [33..40) optional-field tags, all absent
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import List, Tuple

from ..constants import PLACE_PERP_ORDER_DATA_LEN, PLACE_PERP_ORDER_DISCRIMINATOR
from ..crypto.address import Identity
from ..exceptions import InvalidOrderDataError
from .types import U8_MAX, U16_MAX, U64_MAX, MarketType, OrderSide, OrderType, check_unsigned

POST_ONLY_NONE = 0
OPTIONAL_ABSENT = 0
# max_ts, trigger_price, trigger_condition, oracle_price_offset,
# auction_duration, auction_start_price, auction_end_price
OPTIONAL_FIELD_COUNT = 7

_ORDER_PARAMS = struct.Struct("<BBBBQQHBBB")


@dataclass(frozen=True)
class AccountMeta:
    """One account touched by a sub-call."""
    identity: Identity
    is_writable: bool
    is_signer: bool = False

    def as_pair(self) -> Tuple[Identity, bool]:
        return self.identity, self.is_writable


@dataclass(frozen=True)
class SettlementAccounts:
    """The venue accounts a settlement needs, supplied by the caller."""
    venue_state: Identity
    trader_account: Identity
    trader_stats: Identity
    trader_authority: Identity
    perp_market: Identity
    oracle: Identity

    def to_account_metas(self, authority_signs: bool = False) -> List[AccountMeta]:
        """Canonical ordering used by every settlement path."""
        return [
            AccountMeta(self.venue_state, is_writable=False),
            AccountMeta(self.trader_account, is_writable=True),
            AccountMeta(self.trader_authority, is_writable=False, is_signer=authority_signs),
            AccountMeta(self.trader_stats, is_writable=True),
            AccountMeta(self.perp_market, is_writable=True),
            AccountMeta(self.oracle, is_writable=False),
        ]

    def with_authority(self, authority: Identity) -> "SettlementAccounts":
        return SettlementAccounts(
            venue_state=self.venue_state,
            trader_account=self.trader_account,
            trader_stats=self.trader_stats,
            trader_authority=authority,
            perp_market=self.perp_market,
            oracle=self.oracle,
        )


@dataclass(frozen=True)
class SettlementCall:
    """A fully built venue request: destination, accounts and payload."""
    program_id: Identity
    accounts: List[AccountMeta]
    data: bytes

    @property
    def signers(self) -> List[Identity]:
        return [meta.identity for meta in self.accounts if meta.is_signer]


def build_place_perp_order_full(
    order_type: OrderType,
    market_index: int,
    side: OrderSide,
    base_asset_amount: int,
    price: int,
    reduce_only: bool,
    bit_flags: int,
) -> bytes:
    check_unsigned("market_index", market_index, U16_MAX)
    check_unsigned("base_asset_amount", base_asset_amount, U64_MAX)
    check_unsigned("price", price, U64_MAX)
    check_unsigned("bit_flags", bit_flags, U8_MAX)

    data = PLACE_PERP_ORDER_DISCRIMINATOR + _ORDER_PARAMS.pack(
        int(OrderType(order_type)),
        int(MarketType.PERP),
        int(OrderSide(side)),
        0,
        base_asset_amount,
        price,
        market_index,
        1 if reduce_only else 0,
        POST_ONLY_NONE,
        bit_flags,
    ) + bytes([OPTIONAL_ABSENT] * OPTIONAL_FIELD_COUNT)
    if len(data) != PLACE_PERP_ORDER_DATA_LEN:
        raise InvalidOrderDataError(f"place_perp_order payload is {len(data)} bytes, need {PLACE_PERP_ORDER_DATA_LEN}")
    return data


def build_place_perp_order(market_index: int, side: OrderSide, base_asset_amount: int, reduce_only: bool) -> bytes:
    """Market order payload (price 0, no flags)."""
    return build_place_perp_order_full(
        OrderType.MARKET, market_index, side, base_asset_amount, 0, reduce_only, 0,
    )


def build_settlement_call(
    program_id: Identity,
    accounts: SettlementAccounts,
    market_index: int,
    side: OrderSide,
    base_asset_amount: int,
    reduce_only: bool,
    authority_signs: bool = False,
) -> SettlementCall:
    return SettlementCall(
        program_id=program_id,
        accounts=accounts.to_account_metas(authority_signs=authority_signs),
        data=build_place_perp_order(market_index, side, base_asset_amount, reduce_only),
    )


def decode_place_perp_order(data: bytes) -> dict:
    """Inverse of ``build_place_perp_order_full`` for venues and monitors."""
    if len(data) != PLACE_PERP_ORDER_DATA_LEN or data[:8] != PLACE_PERP_ORDER_DISCRIMINATOR:
        raise ValueError("not a place_perp_order payload")
    (order_type, market_type, direction, user_order_id, amount, price,
     market_index, reduce_only, post_only, bit_flags) = _ORDER_PARAMS.unpack_from(data, 8)
    return {
        "order_type": OrderType(order_type),
        "market_type": MarketType(market_type),
        "direction": OrderSide(direction),
        "user_order_id": user_order_id,
        "base_asset_amount": amount,
        "price": price,
        "market_index": market_index,
        "reduce_only": bool(reduce_only),
        "post_only": post_only,
        "bit_flags": bit_flags,
    }
