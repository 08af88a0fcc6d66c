"""
Price Oracle Reader

Reads a signed price out of a raw oracle feed account. Two layouts are
accepted:

  VALIDATED  min 64 bytes, magic at [0..4), i64 LE price at [40..48)
  LEGACY     min 32 bytes, magic at [0..4), i64 LE price at [8..16)

Validation order: owning program (as recorded by the ledger), feed id,
length, magic, price. Each failure raises InvalidPriceFeedError; no path
ever yields a price that skipped a check.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from enum import Enum

from ..constants import (
    LEGACY_PRICE_FEED_MIN_LEN,
    LEGACY_PRICE_FEED_PRICE_OFFSET,
    PRICE_FEED_MAGIC,
    PRICE_FEED_MAGIC_V2,
    PRICE_FEED_MIN_LEN,
    PRICE_FEED_PRICE_OFFSET,
)
from ..crypto.address import Identity, identity_hex
from ..crypto.hashing import short_hash
from ..exceptions import InvalidPriceFeedError
from .ledger import Ledger

logger = logging.getLogger(__name__)

_PRICE = struct.Struct("<q")
ACCEPTED_MAGICS = (PRICE_FEED_MAGIC, PRICE_FEED_MAGIC_V2)


class PriceFeedFormat(Enum):
    VALIDATED = "validated"
    LEGACY = "legacy"

    @property
    def min_length(self) -> int:
        return PRICE_FEED_MIN_LEN if self is PriceFeedFormat.VALIDATED else LEGACY_PRICE_FEED_MIN_LEN

    @property
    def price_offset(self) -> int:
        return PRICE_FEED_PRICE_OFFSET if self is PriceFeedFormat.VALIDATED else LEGACY_PRICE_FEED_PRICE_OFFSET


@dataclass(frozen=True)
class PriceFeed:
    """Contents of a feed account. Its owning program is whatever the ledger recorded."""
    feed_id: bytes
    data: bytes


def decode_price(data: bytes, fmt: PriceFeedFormat = PriceFeedFormat.VALIDATED) -> int:
    """Length, magic and price checks on raw feed bytes."""
    if len(data) < fmt.min_length:
        logger.warning("Price feed data too short: %d bytes", len(data))
        raise InvalidPriceFeedError(f"{len(data)} bytes, need {fmt.min_length}")

    if bytes(data[0:4]) not in ACCEPTED_MAGICS:
        logger.warning("Invalid price feed magic bytes")
        raise InvalidPriceFeedError("bad magic")

    offset = fmt.price_offset
    if len(data) < offset + _PRICE.size:
        raise InvalidPriceFeedError("price missing at expected offset")

    (price,) = _PRICE.unpack_from(data, offset)
    return price


class PriceFeedReader:
    """Reads prices from ledger feed accounts owned by a single oracle program."""

    def __init__(self, ledger: Ledger, oracle_program_id: Identity):
        self.ledger = ledger
        self.oracle_program_id = oracle_program_id

    def read_price(
        self,
        address: Identity,
        feed_id: bytes,
        fmt: PriceFeedFormat = PriceFeedFormat.VALIDATED,
    ) -> int:
        """
        Load the feed at ``address``, validate it and return its signed price.

        ``feed_id`` is the feed the order was committed against; a feed
        account publishing any other id is rejected.

        Raises:
            AccountNotFoundError: nothing is published at ``address``.
            InvalidPriceFeedError: wrong owner, wrong feed, too short, bad magic or missing price.
        """
        feed = self.ledger.load(address, PriceFeed)
        owner = self.ledger.program_of(address)
        if owner != self.oracle_program_id:
            logger.warning(
                "Invalid price feed owner: expected %s, got %s",
                identity_hex(self.oracle_program_id), identity_hex(owner),
            )
            raise InvalidPriceFeedError("owner is not the oracle program")

        if bytes(feed.feed_id) != bytes(feed_id):
            logger.warning("Price feed %s publishes %s, order expects %s",
                           identity_hex(address), short_hash(feed.feed_id), short_hash(feed_id))
            raise InvalidPriceFeedError("feed id does not match the order")

        return decode_price(feed.data, fmt)
