"""
Test suite for the trigger keeper

Covers:
  - Commitment-reveal orders driven to EXECUTED in a single pass
  - Stale sweeps of orders left in READY_TO_EXECUTE
  - Sealed encrypted orders opened and settled, with and without re-delegation
  - Failure budget for payloads that cannot be opened
  - The async polling loop
"""

import asyncio
import dataclasses

import pytest

from ghostbridge.config.loader import KeeperConfig
from ghostbridge.crypto.sealing import generate_keypair, seal_order
from ghostbridge.engine.crank import CreateGhostOrderArgs
from ghostbridge.engine.ledger import Domain
from ghostbridge.engine.oracle import PriceFeedFormat
from ghostbridge.engine.records import EncryptedOrderStatus, GhostOrderStatus
from ghostbridge.engine.types import OrderSide, TriggerCondition
from ghostbridge.keeper import PassStats, TriggerKeeper

from conftest import FEED_ADDRESS, FEED_ID, KEEPER, OWNER, TRADER_ACCOUNT, make_order

DELEGATION_ACCOUNTS = [bytes([0x91]) * 32, bytes([0x92]) * 32, bytes([0x93]) * 32]


@pytest.fixture
def keys():
    return generate_keypair()


@pytest.fixture
def make_keeper(runtime, accounts):
    def make(config=None, resolve=None, **kwargs):
        return TriggerKeeper(
            runtime,
            KEEPER,
            resolve or (lambda owner, market_index: accounts),
            config=config,
            feeds={FEED_ID: FEED_ADDRESS},
            **kwargs,
        )
    return make


@pytest.fixture
def ghost_order(crank, ledger):
    """Delegated and activated commitment-reveal order."""
    address = crank.create_ghost_order(OWNER, CreateGhostOrderArgs(
        order_id=3,
        market_index=7,
        trigger_price=50_000,
        trigger_condition=int(TriggerCondition.BELOW),
        order_side=int(OrderSide.LONG),
        base_asset_amount=1_000_000_000,
        reduce_only=False,
        expiry_seconds=0,
        feed_id=FEED_ID,
        nonce=77,
        trader_account=TRADER_ACCOUNT,
    ))
    crank.delegate_order(OWNER, address)
    with ledger.in_domain(Domain.EPHEMERAL):
        crank.activate_order(OWNER, address)
    return address


@pytest.fixture
def sealed_order(bridge, keys):
    """Delegated encrypted order whose payload is sealed to the keeper's key."""
    _, public = keys
    order = make_order()
    bridge.init_executor(OWNER)
    bridge.authorize_executor(OWNER, KEEPER, True)
    address = bridge.create_encrypted_order(OWNER, order.compute_hash(), seal_order(order, public), FEED_ID)
    bridge.delegate_executor(OWNER)
    bridge.delegate_encrypted_order(OWNER, address)
    return address


# ============================================================================
#  Commitment-reveal orders
# ============================================================================

class TestGhostOrders:

    def test_single_pass_executes(self, make_keeper, crank, ghost_order, feed_factory, venue):
        feed_factory(49_000, PriceFeedFormat.LEGACY)
        stats = make_keeper().run_once()
        assert (stats.triggered, stats.readied, stats.executed, stats.failed) == (1, 1, 1, 0)
        order = crank.get_order(ghost_order)
        assert order.status is GhostOrderStatus.EXECUTED
        call, signers = venue.calls[0]
        assert signers == [order.delegate]

    def test_trigger_not_met(self, make_keeper, crank, ghost_order, feed_factory, venue):
        feed_factory(51_000, PriceFeedFormat.LEGACY)
        stats = make_keeper().run_once()
        assert stats.triggered == 0
        assert crank.get_order(ghost_order).status is GhostOrderStatus.ACTIVE
        assert venue.calls == []

    def test_unknown_feed_is_not_a_failure(self, runtime, accounts, crank, ghost_order):
        keeper = TriggerKeeper(runtime, KEEPER, lambda owner, market_index: accounts)
        stats = keeper.run_once()
        assert stats.failed == 0
        assert crank.get_order(ghost_order).status is GhostOrderStatus.ACTIVE

    def test_stale_ready_order_swept(self, make_keeper, crank, ledger, ghost_order, feed_factory, accounts):
        feed_factory(49_000, PriceFeedFormat.LEGACY)
        wrong = dataclasses.replace(accounts, trader_account=bytes([0x67]) * 32)
        keeper = make_keeper(resolve=lambda owner, market_index: wrong)

        first = keeper.run_once()
        assert first.failed == 1
        assert crank.get_order(ghost_order).status is GhostOrderStatus.READY_TO_EXECUTE
        assert keeper.failures[ghost_order] == 1

        ledger.clock.advance(slots=101)
        second = keeper.run_once()
        assert second.expired == 1
        assert crank.get_order(ghost_order).status is GhostOrderStatus.EXPIRED
        assert ghost_order not in keeper.failures

    def test_failure_budget(self, make_keeper, ledger, ghost_order, feed_factory, accounts):
        feed_factory(49_000, PriceFeedFormat.LEGACY)
        wrong = dataclasses.replace(accounts, trader_account=bytes([0x67]) * 32)
        keeper = make_keeper(config=KeeperConfig(max_failures_per_order=2), resolve=lambda o, m: wrong)
        keeper.run_once()
        keeper.run_once()
        third = keeper.run_once()
        assert third.skipped == [ghost_order]
        assert third.failed == 0

    def test_process_without_stats(self, make_keeper, ghost_order, feed_factory):
        feed_factory(49_000, PriceFeedFormat.LEGACY)
        assert make_keeper().process_ghost_order(ghost_order) is GhostOrderStatus.EXECUTED


# ============================================================================
#  Encrypted orders
# ============================================================================

class TestEncryptedOrders:

    def test_ignored_without_seal_key(self, make_keeper, bridge, sealed_order, feed_factory, venue):
        feed_factory(49_000)
        stats = make_keeper().run_once()
        assert stats == PassStats()
        assert bridge.get_encrypted_order(sealed_order).status is EncryptedOrderStatus.ACTIVE

    def test_opens_and_executes(self, make_keeper, bridge, ledger, sealed_order, feed_factory, keys, venue):
        private, _ = keys
        feed_factory(49_000)
        stats = make_keeper(config=KeeperConfig(seal_private_key=private)).run_once()
        assert stats.executed == 1
        assert bridge.get_encrypted_order(sealed_order).status is EncryptedOrderStatus.EXECUTED
        assert ledger.custody(sealed_order) is Domain.BASE
        assert venue.calls[0][1] == [KEEPER]

    def test_redelegates(self, make_keeper, bridge, ledger, sealed_order, feed_factory, keys):
        private, _ = keys
        feed_factory(49_000)
        keeper = make_keeper(
            config=KeeperConfig(seal_private_key=private, redelegate_after=True),
            delegation_accounts=lambda record: DELEGATION_ACCOUNTS,
        )
        keeper.run_once()
        assert ledger.is_delegated(sealed_order)

    def test_trigger_not_met(self, make_keeper, bridge, sealed_order, feed_factory, keys, venue):
        private, _ = keys
        feed_factory(50_500)
        stats = make_keeper(config=KeeperConfig(seal_private_key=private)).run_once()
        assert stats.executed == 0
        assert stats.failed == 0
        assert bridge.get_encrypted_order(sealed_order).status is EncryptedOrderStatus.ACTIVE

    def test_wrong_key_counts_against_budget(self, make_keeper, sealed_order, feed_factory):
        other_private, _ = generate_keypair()
        feed_factory(49_000)
        keeper = make_keeper(config=KeeperConfig(seal_private_key=other_private, max_failures_per_order=2))
        assert keeper.run_once().failed == 1
        assert keeper.run_once().failed == 1
        third = keeper.run_once()
        assert third.failed == 0
        assert third.skipped == [sealed_order]

    def test_garbage_payload(self, make_keeper, bridge, feed_factory, keys):
        private, _ = keys
        bridge.init_executor(OWNER)
        address = bridge.create_encrypted_order(OWNER, make_order().compute_hash(), bytes([7]) * 100, FEED_ID)
        feed_factory(49_000)
        keeper = make_keeper(config=KeeperConfig(seal_private_key=private))
        assert keeper.process_encrypted_order(address) is EncryptedOrderStatus.ACTIVE
        assert keeper.failures[address] == 1


# ============================================================================
#  Polling loop
# ============================================================================

class TestRunLoop:

    def test_runs_requested_passes(self, make_keeper, crank, ghost_order, feed_factory, venue):
        feed_factory(49_000, PriceFeedFormat.LEGACY)
        keeper = make_keeper()
        asyncio.run(keeper.run(iterations=2, interval=0))
        assert crank.get_order(ghost_order).status is GhostOrderStatus.EXECUTED
        assert len(venue.calls) == 1
        assert not keeper._running

    def test_runs_due_tasks(self, make_keeper, crank, ledger, ghost_order, feed_factory):
        feed_factory(51_000, PriceFeedFormat.LEGACY)
        with ledger.in_domain(Domain.EPHEMERAL):
            crank.schedule_monitoring(KEEPER, ghost_order, FEED_ADDRESS, 1, 400, 3)
        ledger.clock.advance(seconds=1)
        stats = make_keeper().run_once()
        assert stats.tasks_run == 1
        assert ledger.tasks[1].runs == 1
        assert ledger.tasks[1].iterations_left == 2

    def test_register_feed(self, runtime, accounts, crank, ghost_order, feed_factory):
        feed_factory(49_000, PriceFeedFormat.LEGACY, address=bytes([0x56]) * 32)
        keeper = TriggerKeeper(runtime, KEEPER, lambda owner, market_index: accounts)
        keeper.register_feed(FEED_ID, bytes([0x56]) * 32)
        assert keeper.run_once().executed == 1
        assert crank.get_order(ghost_order).status is GhostOrderStatus.EXECUTED
