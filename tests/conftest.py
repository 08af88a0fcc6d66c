"""
Shared fixtures for the Ghost Bridge test suite.

Every test gets a fresh ledger with a recording settlement venue registered
under the configured settlement program id.
"""

import struct

import pytest

from ghostbridge.config.loader import ExecutionConfig, ProgramIdsConfig
from ghostbridge.constants import PRICE_FEED_MAGIC
from ghostbridge.engine.bridge import GhostBridgeProgram
from ghostbridge.engine.commitment import CompressedOrder
from ghostbridge.engine.crank import GhostCrankProgram
from ghostbridge.engine.ledger import Clock, Ledger
from ghostbridge.engine.oracle import PriceFeed, PriceFeedFormat
from ghostbridge.engine.runtime import Runtime
from ghostbridge.engine.settlement import SettlementAccounts
from ghostbridge.engine.types import OrderSide, TriggerCondition

# ---------------------------------------------------------------------------
# Identities
# ---------------------------------------------------------------------------
OWNER = bytes([0x11]) * 32
KEEPER = bytes([0x22]) * 32
STRANGER = bytes([0x33]) * 32
FEED_ID = bytes([0x44]) * 32
FEED_ADDRESS = bytes([0x55]) * 32
TRADER_ACCOUNT = bytes([0x66]) * 32
SALT_A = bytes(range(16))
SALT_B = bytes(range(16, 32))

GENESIS_TIME = 1_700_000_000
GENESIS_SLOT = 1_000


def encode_feed(price: int, fmt: PriceFeedFormat = PriceFeedFormat.VALIDATED, magic: bytes = PRICE_FEED_MAGIC) -> bytes:
    """Minimal feed blob: magic at 0, i64 LE price at the format's offset."""
    data = bytearray(fmt.min_length)
    data[0:4] = magic
    struct.pack_into("<q", data, fmt.price_offset, price)
    return bytes(data)


def make_order(**overrides) -> CompressedOrder:
    fields = dict(
        owner=OWNER,
        order_id=1,
        market_index=7,
        trigger_price=50_000,
        trigger_condition=TriggerCondition.BELOW,
        order_side=OrderSide.LONG,
        base_asset_amount=1_000_000_000,
        reduce_only=False,
        expiry=0,
        feed_id=FEED_ID,
        salt=SALT_A,
    )
    fields.update(overrides)
    return CompressedOrder(**fields)


class RecordingVenue:
    """Downstream venue stand-in: records every call and reports fixed compute usage."""

    def __init__(self, units: int = 40_000):
        self.units = units
        self.fail_with = None
        self.calls = []

    def __call__(self, call, signers):
        if self.fail_with is not None:
            raise RuntimeError(self.fail_with)
        self.calls.append((call, list(signers)))
        return self.units


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def programs() -> ProgramIdsConfig:
    return ProgramIdsConfig()


@pytest.fixture
def execution() -> ExecutionConfig:
    return ExecutionConfig()


@pytest.fixture
def ledger() -> Ledger:
    return Ledger(Clock(unix_timestamp=GENESIS_TIME, slot=GENESIS_SLOT))


@pytest.fixture
def venue(ledger, programs) -> RecordingVenue:
    v = RecordingVenue()
    ledger.register_program(programs.settlement, v)
    return v


@pytest.fixture
def bridge(ledger, programs, execution, venue) -> GhostBridgeProgram:
    return GhostBridgeProgram(ledger, programs, execution)


@pytest.fixture
def crank(ledger, programs, execution, venue) -> GhostCrankProgram:
    return GhostCrankProgram(ledger, programs, execution)


@pytest.fixture
def runtime(ledger, bridge, crank) -> Runtime:
    return Runtime(ledger, bridge, crank)


@pytest.fixture
def accounts() -> SettlementAccounts:
    return SettlementAccounts(
        venue_state=bytes([0xA1]) * 32,
        trader_account=TRADER_ACCOUNT,
        trader_stats=bytes([0xA3]) * 32,
        trader_authority=OWNER,
        perp_market=bytes([0xA5]) * 32,
        oracle=bytes([0xA6]) * 32,
    )


@pytest.fixture
def feed_factory(ledger, programs):
    """Publishes a feed account at FEED_ADDRESS (or ``address``) and returns its address."""
    def make(price, fmt=PriceFeedFormat.VALIDATED, owner=None, address=FEED_ADDRESS, feed_id=FEED_ID):
        feed = PriceFeed(feed_id=feed_id, data=encode_feed(price, fmt))
        ledger.put_account(address, feed, owner or programs.oracle)
        return address
    return make
