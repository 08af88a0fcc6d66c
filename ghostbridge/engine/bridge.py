"""
Ghost Bridge Program

Compressed and encrypted trigger orders. Both variants publish only the
blake3 hash of the order preimage in the owner's ExecutorAuthority; the
preimage is revealed (by the owner, or by a keeper that can open the sealed
payload) only at execution time.

Every operation runs as one atomic unit against the ledger. Guards first,
then writes, then settlement construction, then the magic action. A failure
anywhere rolls back everything.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from ..config.loader import ExecutionConfig, ProgramIdsConfig
from ..constants import FEED_ID_LENGTH, HASH_LENGTH
from ..crypto.address import Identity, identity_hex
from ..crypto.hashing import short_hash
from ..exceptions import (
    ExecutorDelegatedError,
    ExecutorNotDelegatedError,
    OrderExpiredError,
    OrderHashMismatchError,
    OrderHashNotFoundError,
    OrderNotActiveError,
    OrderNotClosableError,
    TriggerConditionNotMetError,
)
from . import events
from .commitment import CompressedOrder, absolute_expiry
from .delegation import CallHandler, CommitType, MagicAction, MagicProgram, build_redelegate_handler
from .guards import require_can_trigger, require_owner, require_payload, require_status
from .ledger import Ledger
from .oracle import PriceFeedFormat, PriceFeedReader
from .records import EncryptedOrder, EncryptedOrderStatus, encrypted_order_address, executor_address
from .registry import ExecutorAuthority
from .settlement import SettlementAccounts, build_settlement_call
from .types import check_fixed_bytes

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Operation arguments
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CreateCompressedOrderArgs:
    order_id: int
    market_index: int
    trigger_price: int
    trigger_condition: int
    order_side: int
    base_asset_amount: int
    reduce_only: bool
    expiry_seconds: int
    feed_id: bytes
    salt: bytes


@dataclass(frozen=True)
class ConsumeAndExecuteArgs:
    """Revealed preimage (with absolute expiry) plus the custody choice."""
    order_id: int
    market_index: int
    trigger_price: int
    trigger_condition: int
    order_side: int
    base_asset_amount: int
    reduce_only: bool
    expiry: int
    feed_id: bytes
    salt: bytes
    keep_delegated: bool = False

    @classmethod
    def reveal(cls, order: CompressedOrder, keep_delegated: bool = False) -> "ConsumeAndExecuteArgs":
        return cls(
            order_id=order.order_id,
            market_index=order.market_index,
            trigger_price=order.trigger_price,
            trigger_condition=int(order.trigger_condition),
            order_side=int(order.order_side),
            base_asset_amount=order.base_asset_amount,
            reduce_only=order.reduce_only,
            expiry=order.expiry,
            feed_id=order.feed_id,
            salt=order.salt,
            keep_delegated=keep_delegated,
        )


@dataclass(frozen=True)
class TriggerAndExecuteArgs:
    """Revealed preimage without the feed id, which the encrypted record stores."""
    salt: bytes
    order_id: int
    market_index: int
    trigger_price: int
    trigger_condition: int
    order_side: int
    base_asset_amount: int
    reduce_only: bool
    expiry: int
    redelegate_after: bool = False

    @classmethod
    def reveal(cls, order: CompressedOrder, redelegate_after: bool = False) -> "TriggerAndExecuteArgs":
        return cls(
            salt=order.salt,
            order_id=order.order_id,
            market_index=order.market_index,
            trigger_price=order.trigger_price,
            trigger_condition=int(order.trigger_condition),
            order_side=int(order.order_side),
            base_asset_amount=order.base_asset_amount,
            reduce_only=order.reduce_only,
            expiry=order.expiry,
            redelegate_after=redelegate_after,
        )


def _order_from_args(owner: Identity, args, expiry: int, feed_id: bytes) -> CompressedOrder:
    return CompressedOrder(
        owner=owner,
        order_id=args.order_id,
        market_index=args.market_index,
        trigger_price=args.trigger_price,
        trigger_condition=args.trigger_condition,
        order_side=args.order_side,
        base_asset_amount=args.base_asset_amount,
        reduce_only=args.reduce_only,
        expiry=expiry,
        feed_id=feed_id,
        salt=args.salt,
    )


# ---------------------------------------------------------------------------
# Program
# ---------------------------------------------------------------------------

class GhostBridgeProgram:
    """Hash-committed (compressed) and ciphertext (encrypted) trigger orders."""

    def __init__(self, ledger: Ledger, programs: ProgramIdsConfig, execution: Optional[ExecutionConfig] = None):
        self.ledger = ledger
        self.programs = programs
        self.execution = execution or ExecutionConfig()
        self.program_id = programs.engine
        self.reader = PriceFeedReader(ledger, programs.oracle)
        self.magic = MagicProgram(ledger, programs.delegation)

    # -- Addresses ----------------------------------------------------------

    def executor_address(self, owner: Identity) -> Identity:
        return executor_address(owner, self.program_id)

    def encrypted_order_address(self, owner: Identity, order_hash: bytes) -> Identity:
        return encrypted_order_address(owner, order_hash, self.program_id)

    def get_executor(self, owner: Identity) -> ExecutorAuthority:
        return self.ledger.load(self.executor_address(owner), ExecutorAuthority)

    def get_encrypted_order(self, address: Identity) -> EncryptedOrder:
        return self.ledger.load(address, EncryptedOrder)

    # =====================================================================
    #  Executor authority
    # =====================================================================

    def init_executor(self, owner: Identity) -> Identity:
        """Allocate the owner's ExecutorAuthority at its derived address."""
        address = self.executor_address(owner)
        with self.ledger.atomic():
            self.ledger.allocate(address, ExecutorAuthority(owner=owner), self.program_id)
            self.ledger.emit(events.ExecutorInitialized(owner=owner, executor_authority=address))
        logger.info("ExecutorAuthority initialized for owner %s", identity_hex(owner))
        return address

    def delegate_executor(self, signer: Identity, owner: Optional[Identity] = None) -> None:
        """Hand ``owner``'s registry (the signer's by default) to the low-latency domain."""
        owner = signer if owner is None else owner
        address = self.executor_address(owner)
        with self.ledger.atomic():
            authority = self.ledger.load(address, ExecutorAuthority)
            require_owner(signer, authority.owner)
            if authority.is_delegated:
                raise ExecutorDelegatedError(identity_hex(owner))
            self.magic.delegate(address)
            self.ledger.emit(events.ExecutorDelegated(owner=owner))

    def undelegate_executor(self, payer: Identity, owner: Identity) -> None:
        """Commit the registry and return it to the general domain."""
        address = self.executor_address(owner)
        with self.ledger.atomic():
            authority = self.ledger.load_mut(address, ExecutorAuthority)
            if not authority.is_delegated:
                raise ExecutorNotDelegatedError(identity_hex(owner))
            authority.is_delegated = False
            self.magic.execute(MagicAction.commit_and_undelegate(CommitType.standalone([address])), payer)
            self.ledger.emit(events.ExecutorUndelegated(owner=owner))
        logger.info("ExecutorAuthority undelegated for owner %s", identity_hex(owner))

    def authorize_executor(
        self,
        signer: Identity,
        executor: Identity,
        authorize: bool,
        owner: Optional[Identity] = None,
    ) -> None:
        owner = signer if owner is None else owner
        with self.ledger.atomic():
            authority = self.ledger.load_mut(self.executor_address(owner), ExecutorAuthority)
            require_owner(signer, authority.owner)
            if authorize:
                authority.add_authorized_executor(executor)
            else:
                authority.remove_authorized_executor(executor)
            self.ledger.emit(events.ExecutorAuthorizationChanged(owner=owner, executor=executor, authorized=authorize))
        logger.info(
            "Executor %s %s for owner %s",
            identity_hex(executor), "authorized" if authorize else "revoked", identity_hex(owner),
        )

    # =====================================================================
    #  Compressed orders
    # =====================================================================

    def create_compressed_order(
        self,
        signer: Identity,
        args: CreateCompressedOrderArgs,
        owner: Optional[Identity] = None,
    ) -> bytes:
        """Register the hash of a new order; nothing else about it is stored."""
        owner = signer if owner is None else owner
        with self.ledger.atomic():
            authority = self.ledger.load_mut(self.executor_address(owner), ExecutorAuthority)
            require_owner(signer, authority.owner)

            expiry = absolute_expiry(self.ledger.clock.unix_timestamp, args.expiry_seconds)
            order = _order_from_args(owner, args, expiry, args.feed_id)
            order_hash = order.compute_hash()
            authority.add_order_hash(order_hash)

            self.ledger.emit(events.CompressedOrderCreated(
                owner=owner, order_id=args.order_id, order_hash=order_hash, market_index=args.market_index,
            ))
        logger.info("Compressed order created: order_id=%d, hash=%s", args.order_id, short_hash(order_hash))
        return order_hash

    def consume_and_execute(
        self,
        payer: Identity,
        owner: Identity,
        args: ConsumeAndExecuteArgs,
        feed: Identity,
        accounts: SettlementAccounts,
    ) -> bytes:
        """
        Verify a revealed order against the registry and settle it.

        Raises:
            OrderHashMismatchError: the revealed fields hash to nothing registered.
            OrderExpiredError: the order's expiry has passed.
            InvalidPriceFeedError: the feed is not the oracle's feed for ``feed_id``.
            TriggerConditionNotMetError: the feed price does not satisfy the trigger.
        """
        address = self.executor_address(owner)
        with self.ledger.atomic():
            authority = self.ledger.load_mut(address, ExecutorAuthority)
            order = _order_from_args(authority.owner, args, args.expiry, args.feed_id)
            order_hash = order.compute_hash()

            if not authority.has_order_hash(order_hash):
                raise OrderHashMismatchError(f"recomputed {short_hash(order_hash)} is not registered")
            if order.is_expired(self.ledger.clock.unix_timestamp):
                raise OrderExpiredError(short_hash(order_hash))

            price = self.reader.read_price(feed, order.feed_id, PriceFeedFormat.VALIDATED)
            if not order.check_trigger(price):
                raise TriggerConditionNotMetError(f"price {price}, trigger {order.trigger_price}")

            authority.remove_order_hash(order_hash)
            if not args.keep_delegated:
                authority.is_delegated = False

            logger.info(
                "Order hash verified and removed, settling: market=%d side=%s amount=%d",
                order.market_index, order.order_side.name, order.base_asset_amount,
            )
            handler = self._settlement_handler(payer, order, accounts)
            commit = CommitType.with_handler([address], [handler])
            if args.keep_delegated:
                action = MagicAction.commit(commit)
            else:
                action = MagicAction.commit_and_undelegate(commit)
            self.magic.execute(action, payer)

            self.ledger.emit(events.GhostOrderExecuted(
                owner=authority.owner,
                order_id=order.order_id,
                order_hash=order_hash,
                market_index=order.market_index,
                execution_price=price,
            ))
        logger.info("Ghost order executed: order_id=%d, price=%d", order.order_id, price)
        return order_hash

    # =====================================================================
    #  Encrypted orders
    # =====================================================================

    def create_encrypted_order(
        self,
        signer: Identity,
        order_hash: bytes,
        encrypted_data: bytes,
        feed_id: bytes,
        owner: Optional[Identity] = None,
    ) -> Identity:
        """Register the hash and store the sealed payload next to it."""
        owner = signer if owner is None else owner
        require_payload(encrypted_data)
        check_fixed_bytes("order_hash", order_hash, HASH_LENGTH)
        check_fixed_bytes("feed_id", feed_id, FEED_ID_LENGTH)
        address = self.encrypted_order_address(owner, order_hash)
        authority_address = self.executor_address(owner)
        with self.ledger.atomic():
            authority = self.ledger.load_mut(authority_address, ExecutorAuthority)
            require_owner(signer, authority.owner)
            authority.add_order_hash(order_hash)

            now = self.ledger.clock.unix_timestamp
            self.ledger.allocate(address, EncryptedOrder(
                owner=owner,
                order_hash=bytes(order_hash),
                executor_authority=authority_address,
                encrypted_data=bytes(encrypted_data),
                feed_id=bytes(feed_id),
                created_at=now,
            ), self.program_id)
            self.ledger.emit(events.EncryptedOrderCreated(
                owner=owner, order_hash=order_hash, feed_id=feed_id, created_at=now,
            ))
        logger.info(
            "Encrypted order created: hash=%s, feed=%s, data_len=%d",
            short_hash(order_hash), short_hash(feed_id), len(encrypted_data),
        )
        return address

    def delegate_encrypted_order(self, owner: Identity, order: Identity) -> None:
        with self.ledger.atomic():
            record = self.ledger.load(order, EncryptedOrder)
            require_owner(owner, record.owner)
            require_status(record.status, EncryptedOrderStatus.ACTIVE, error=OrderNotActiveError)
            self.magic.delegate(order)
            self.ledger.emit(events.EncryptedOrderDelegated(owner=owner, order_hash=record.order_hash))

    def check_price_update(self, order: Identity, feed: Identity) -> Optional[int]:
        """Observe the feed for an active order. Never mutates the order."""
        record = self.ledger.load(order, EncryptedOrder)
        if not record.is_active():
            return None
        with self.ledger.atomic():
            price = self.reader.read_price(feed, record.feed_id, PriceFeedFormat.VALIDATED)
            self.ledger.emit(events.PriceUpdateChecked(
                order_hash=record.order_hash, feed_id=record.feed_id, current_price=price,
            ))
        logger.debug("Price checked for %s: %d", short_hash(record.order_hash), price)
        return price

    def trigger_and_execute(
        self,
        payer: Identity,
        order: Identity,
        args: TriggerAndExecuteArgs,
        feed: Identity,
        accounts: SettlementAccounts,
        remaining_accounts: Sequence[Identity] = (),
    ) -> EncryptedOrderStatus:
        """
        Reveal an encrypted order and settle it if its trigger holds.

        Returns the resulting status: EXECUTED, CANCELLED (expired) or
        ACTIVE (trigger not met, nothing written).
        """
        with self.ledger.atomic():
            record = self.ledger.load_mut(order, EncryptedOrder)
            authority = self.ledger.load_mut(record.executor_authority, ExecutorAuthority)

            require_status(record.status, EncryptedOrderStatus.ACTIVE, error=OrderNotActiveError)
            require_can_trigger(authority, payer)

            revealed = _order_from_args(record.owner, args, args.expiry, record.feed_id)
            computed = revealed.compute_hash()
            if computed != record.order_hash:
                raise OrderHashMismatchError(f"{short_hash(computed)} != {short_hash(record.order_hash)}")

            now = self.ledger.clock.unix_timestamp
            if revealed.is_expired(now):
                authority.remove_order_hash(computed)
                record.status = EncryptedOrderStatus.CANCELLED
                self.ledger.emit(events.EncryptedOrderCancelled(owner=record.owner, order_hash=computed, expired=True))
                logger.warning("Order expired: hash=%s", short_hash(computed))
                return record.status

            price = self.reader.read_price(feed, record.feed_id, PriceFeedFormat.VALIDATED)
            if not revealed.check_trigger(price):
                logger.debug(
                    "Trigger not met for %s: price=%d trigger=%d", short_hash(computed), price, revealed.trigger_price,
                )
                return record.status

            if not authority.has_order_hash(computed):
                raise OrderHashNotFoundError(short_hash(computed))
            authority.remove_order_hash(computed)
            record.status = EncryptedOrderStatus.EXECUTED
            record.triggered_at = now
            record.execution_price = price

            handlers = [self._settlement_handler(payer, revealed, accounts)]
            if args.redelegate_after:
                handlers.append(build_redelegate_handler(
                    self.programs.delegation, payer, order, remaining_accounts,
                    compute_units=self.execution.redelegate_compute_units,
                ))
            self.magic.execute(
                MagicAction.commit_and_undelegate(
                    CommitType.with_handler([order, record.executor_authority], handlers),
                ),
                payer,
            )

            self.ledger.emit(events.OrderTriggeredAndExecuted(
                owner=record.owner,
                order_hash=computed,
                market_index=revealed.market_index,
                order_side=int(revealed.order_side),
                base_asset_amount=revealed.base_asset_amount,
                trigger_price=revealed.trigger_price,
                execution_price=price,
                executed_at=now,
                redelegated=args.redelegate_after,
            ))
        logger.info("Order executed: hash=%s, market=%d, price=%d", short_hash(computed), revealed.market_index, price)
        return EncryptedOrderStatus.EXECUTED

    def cancel_encrypted_order(self, owner: Identity, order: Identity) -> None:
        with self.ledger.atomic():
            record = self.ledger.load_mut(order, EncryptedOrder)
            require_owner(owner, record.owner)
            require_status(record.status, EncryptedOrderStatus.ACTIVE, error=OrderNotActiveError)
            authority = self.ledger.load_mut(record.executor_authority, ExecutorAuthority)
            authority.remove_order_hash(record.order_hash)
            record.status = EncryptedOrderStatus.CANCELLED
            self.ledger.emit(events.EncryptedOrderCancelled(owner=owner, order_hash=record.order_hash))
        logger.info("Encrypted order cancelled: hash=%s", short_hash(record.order_hash))

    def close_encrypted_order(self, owner: Identity, order: Identity) -> None:
        """Reclaim a terminal order's storage to its owner."""
        with self.ledger.atomic():
            record = self.ledger.load_mut(order, EncryptedOrder)
            require_owner(owner, record.owner)
            require_status(
                record.status, EncryptedOrderStatus.EXECUTED, EncryptedOrderStatus.CANCELLED,
                error=OrderNotClosableError,
            )
            self.ledger.close(order)
            self.ledger.emit(events.EncryptedOrderClosed(owner=owner, order_hash=record.order_hash))

    def schedule_encrypted_monitoring(
        self,
        payer: Identity,
        order: Identity,
        feed: Identity,
        task_id: int,
        interval_ms: int,
        iterations: int,
    ) -> None:
        """Register a recurring ``check_price_update`` with the low-latency scheduler."""
        with self.ledger.atomic():
            record = self.ledger.load(order, EncryptedOrder)
            require_status(record.status, EncryptedOrderStatus.ACTIVE, error=OrderNotActiveError)
            self.magic.schedule_task(
                task_id, self.program_id, "check_price_update", [order, feed], interval_ms, iterations, payer,
            )
            self.ledger.emit(events.MonitoringScheduled(
                order=order, task_id=task_id, check_interval_millis=interval_ms, max_iterations=iterations,
            ))
        logger.info("Encrypted order monitoring scheduled: task_id=%d, interval=%dms", task_id, interval_ms)

    # -- Settlement ---------------------------------------------------------

    def _settlement_handler(self, payer: Identity, order: CompressedOrder, accounts: SettlementAccounts) -> CallHandler:
        call = build_settlement_call(
            self.programs.settlement,
            accounts,
            order.market_index,
            order.order_side,
            order.base_asset_amount,
            order.reduce_only,
        )
        return CallHandler.for_call(call, payer, self.execution.settlement_compute_units)
