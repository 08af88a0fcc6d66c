"""
Trigger Keeper

Off-chain driver for the order engine. Each pass:

  1. runs due scheduled monitoring tasks,
  2. sweeps commitment-reveal orders whose ready window or expiry passed,
  3. advances every live commitment-reveal order one step
     (check_trigger -> mark_ready -> execute_with_commitment),
  4. opens sealed encrypted orders with the keeper's X25519 key and calls
     trigger_and_execute.

The engine never retries. A rejected instruction is logged and retried on
the next pass until the per-order failure budget is spent.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from .config.loader import KeeperConfig
from .crypto.address import Identity
from .crypto.hashing import short_hash
from .crypto.sealing import open_order
from .engine.bridge import TriggerAndExecuteArgs
from .engine.ledger import Ledger
from .engine.oracle import PriceFeed
from .engine.records import EncryptedOrder, EncryptedOrderStatus, GhostOrder, GhostOrderStatus
from .engine.runtime import BRIDGE, CRANK, ExecResult, Instruction, Runtime
from .engine.settlement import SettlementAccounts
from .exceptions import AccountNotFoundError, InvalidOrderDataError
from .logger import get_logger

logger = get_logger(__name__)

# (owner, market_index) -> venue accounts to settle against
AccountResolver = Callable[[Identity, int], SettlementAccounts]
# record -> (buffer, delegation record, metadata) for re-delegation
DelegationAccountResolver = Callable[[Identity], Sequence[Identity]]


@dataclass
class PassStats:
    triggered: int = 0
    readied: int = 0
    executed: int = 0
    expired: int = 0
    failed: int = 0
    tasks_run: int = 0
    skipped: List[Identity] = field(default_factory=list)


class TriggerKeeper:
    """Watches live orders and submits the instructions that move them forward."""

    def __init__(
        self,
        runtime: Runtime,
        identity: Identity,
        resolve_accounts: AccountResolver,
        config: Optional[KeeperConfig] = None,
        feeds: Optional[Dict[bytes, Identity]] = None,
        delegation_accounts: Optional[DelegationAccountResolver] = None,
    ):
        self.runtime = runtime
        self.identity = identity
        self.resolve_accounts = resolve_accounts
        self.config = config or KeeperConfig()
        self.feeds: Dict[bytes, Identity] = dict(feeds or {})
        self.delegation_accounts = delegation_accounts
        self.failures: Dict[Identity, int] = {}
        self._running = False

    @property
    def ledger(self) -> Ledger:
        return self.runtime.ledger

    def register_feed(self, feed_id: bytes, address: Identity) -> None:
        self.feeds[bytes(feed_id)] = address

    def _feed(self, feed_id: bytes) -> Identity:
        """Address of the published feed account for ``feed_id``."""
        address = self.feeds.get(bytes(feed_id))
        if address is None:
            raise AccountNotFoundError(f"no feed registered for {short_hash(feed_id)}")
        self.ledger.load(address, PriceFeed)
        return address

    # -- Failure budget -----------------------------------------------------

    def _exhausted(self, order: Identity) -> bool:
        return self.failures.get(order, 0) >= self.config.max_failures_per_order

    def _record_failure(self, order: Identity, result: ExecResult, stats: PassStats) -> None:
        count = self.failures.get(order, 0) + 1
        self.failures[order] = count
        stats.failed += 1
        logger.warning(
            "Order %s: %s (%s), failure %d/%d",
            short_hash(order), result.error, result.detail, count, self.config.max_failures_per_order,
        )
        if count >= self.config.max_failures_per_order:
            logger.error("Order %s exceeded its failure budget, giving up", short_hash(order))

    def _submit(self, program: str, operation: str, order: Identity, stats: PassStats, **args) -> ExecResult:
        ix = Instruction(program, operation, dict(args, order=order), self.ledger.custody(order))
        result = self.runtime.process(ix)
        if result.success:
            # only a pass that wrote something counts as progress
            if result.events:
                self.failures.pop(order, None)
        else:
            self._record_failure(order, result, stats)
        return result

    # =====================================================================
    #  Passes
    # =====================================================================

    def run_due_tasks(self) -> List[ExecResult]:
        """Run every scheduled monitoring task whose next run time has come."""
        results = []
        for task in self.runtime.due_tasks():
            result = self.runtime.run_task(task)
            if not result.success:
                logger.warning("Task %d failed: %s", task.task_id, result.error)
            results.append(result)
        return results

    def run_once(self) -> PassStats:
        stats = PassStats()
        stats.tasks_run = len(self.run_due_tasks())

        for address, order in list(self.ledger.records_of(GhostOrder).items()):
            if order.status.is_terminal:
                continue
            if self._exhausted(address):
                stats.skipped.append(address)
                continue
            self.process_ghost_order(address, stats)

        if self.config.seal_private_key is not None:
            for address, record in list(self.ledger.records_of(EncryptedOrder).items()):
                if record.status.is_terminal:
                    continue
                if self._exhausted(address):
                    stats.skipped.append(address)
                    continue
                self.process_encrypted_order(address, stats)

        if stats.executed or stats.expired or stats.failed:
            logger.info(
                "Keeper pass: executed=%d expired=%d failed=%d",
                stats.executed, stats.expired, stats.failed,
            )
        return stats

    async def run(self, iterations: Optional[int] = None, interval: Optional[float] = None) -> None:
        """Poll until ``stop()`` is called or ``iterations`` passes have run."""
        interval = self.config.poll_interval if interval is None else interval
        self._running = True
        done = 0
        logger.info("Keeper %s started, interval=%.2fs", short_hash(self.identity), interval)
        while self._running and (iterations is None or done < iterations):
            self.run_once()
            done += 1
            await asyncio.sleep(interval)
        self._running = False
        logger.info("Keeper stopped after %d pass(es)", done)

    def stop(self) -> None:
        self._running = False

    # =====================================================================
    #  Commitment-reveal orders
    # =====================================================================

    def process_ghost_order(self, address: Identity, stats: Optional[PassStats] = None) -> GhostOrderStatus:
        """Advance one commitment-reveal order as far as it can go in this pass."""
        stats = stats or PassStats()
        order = self.ledger.load(address, GhostOrder)

        if order.status in (GhostOrderStatus.TRIGGERED, GhostOrderStatus.READY_TO_EXECUTE):
            result = self._submit(CRANK, "expire_stale", address, stats)
            if result.success and result.data:
                stats.expired += 1
                return GhostOrderStatus.EXPIRED

        if order.status == GhostOrderStatus.ACTIVE:
            try:
                feed = self._feed(order.feed_id)
            except AccountNotFoundError as e:
                logger.warning("Order %d: %s", order.order_id, e)
                return order.status
            result = self._submit(CRANK, "check_trigger", address, stats, feed=feed)
            if not result.success:
                return order.status
            if result.data == GhostOrderStatus.EXPIRED:
                stats.expired += 1
                return result.data
            if result.data != GhostOrderStatus.TRIGGERED:
                return result.data
            stats.triggered += 1
            order = self.ledger.load(address, GhostOrder)

        if order.status == GhostOrderStatus.TRIGGERED:
            result = self._submit(CRANK, "mark_ready", address, stats, payer=self.identity)
            if not result.success:
                return order.status
            stats.readied += 1
            order = self.ledger.load(address, GhostOrder)

        if order.status == GhostOrderStatus.READY_TO_EXECUTE:
            accounts = self.resolve_accounts(order.owner, order.market_index)
            result = self._submit(
                CRANK, "execute_with_commitment", address, stats,
                keeper=self.identity, params=order.params(), nonce=order.nonce, accounts=accounts,
            )
            if not result.success:
                return order.status
            stats.executed += 1
            return GhostOrderStatus.EXECUTED

        return order.status

    # =====================================================================
    #  Encrypted orders
    # =====================================================================

    def process_encrypted_order(self, address: Identity, stats: Optional[PassStats] = None) -> EncryptedOrderStatus:
        """Open a sealed order and try to settle it."""
        stats = stats or PassStats()
        record = self.ledger.load(address, EncryptedOrder)
        if record.status != EncryptedOrderStatus.ACTIVE:
            return record.status

        try:
            revealed = open_order(record.encrypted_data, self.config.seal_private_key)
        except (InvalidOrderDataError, ValueError) as e:
            count = self.failures.get(address, 0) + 1
            self.failures[address] = count
            stats.failed += 1
            logger.warning("Order %s could not be opened: %s", short_hash(record.order_hash), e)
            return record.status

        try:
            feed = self._feed(record.feed_id)
        except AccountNotFoundError as e:
            logger.warning("Order %s: %s", short_hash(record.order_hash), e)
            return record.status

        redelegate = self.config.redelegate_after and self.delegation_accounts is not None
        remaining = self.delegation_accounts(address) if redelegate else ()
        result = self._submit(
            BRIDGE, "trigger_and_execute", address, stats,
            payer=self.identity,
            args=TriggerAndExecuteArgs.reveal(revealed, redelegate_after=redelegate),
            feed=feed,
            accounts=self.resolve_accounts(revealed.owner, revealed.market_index),
            remaining_accounts=remaining,
        )
        if not result.success:
            return record.status
        if result.data == EncryptedOrderStatus.EXECUTED:
            stats.executed += 1
        elif result.data == EncryptedOrderStatus.CANCELLED:
            stats.expired += 1
        return result.data
