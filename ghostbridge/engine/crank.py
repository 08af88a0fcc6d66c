"""
Ghost Crank Program

Commitment-reveal trigger orders:

    PENDING -> ACTIVE -> TRIGGERED -> READY_TO_EXECUTE -> EXECUTED
       |         |          |               |
       +-> CANCELLED        +----> EXPIRED <+

``mark_ready`` publishes only sha256(params || nonce) and a slot deadline.
``execute_with_commitment`` reveals the params, checks them against the
commitment and places the venue order signed by the owner's delegate
sub-identity, so the owner's own key is never needed at fill time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..config.loader import ExecutionConfig, ProgramIdsConfig
from ..constants import FEED_ID_LENGTH, IDENTITY_LENGTH
from ..crypto.address import Identity, identity_hex
from ..exceptions import (
    NonceMismatchError,
    CommitmentMismatchError,
    OrderNotActiveError,
    OrderNotCancellableError,
    OrderNotReadyError,
    OrderNotTriggeredError,
    ReadyWindowExpiredError,
    TraderAccountMismatchError,
)
from . import events
from .commitment import OrderParams, absolute_expiry, compute_params_commitment, verify_params_commitment
from .delegation import MagicProgram
from .guards import require_address, require_owner, require_status
from .ledger import Ledger
from .oracle import PriceFeedFormat, PriceFeedReader
from .records import GhostOrder, GhostOrderStatus, ghost_delegate_address, ghost_order_address
from .settlement import SettlementAccounts, build_settlement_call
from .types import (
    U16_MAX,
    U64_MAX,
    OrderSide,
    TriggerCondition,
    check_fixed_bytes,
    check_signed,
    check_unsigned,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CreateGhostOrderArgs:
    order_id: int
    market_index: int
    trigger_price: int
    trigger_condition: int
    order_side: int
    base_asset_amount: int
    reduce_only: bool
    expiry_seconds: int
    feed_id: bytes
    nonce: int
    trader_account: Identity


class GhostCrankProgram:
    """Commitment-reveal trigger orders driven by keepers."""

    def __init__(self, ledger: Ledger, programs: ProgramIdsConfig, execution: Optional[ExecutionConfig] = None):
        self.ledger = ledger
        self.programs = programs
        self.execution = execution or ExecutionConfig()
        self.program_id = programs.crank
        self.reader = PriceFeedReader(ledger, programs.oracle)
        self.magic = MagicProgram(ledger, programs.delegation)

    def order_address(self, owner: Identity, order_id: int) -> Identity:
        return ghost_order_address(owner, order_id, self.program_id)

    def delegate_address(self, owner: Identity) -> Identity:
        return ghost_delegate_address(owner, self.program_id)

    def get_order(self, address: Identity) -> GhostOrder:
        return self.ledger.load(address, GhostOrder)

    def _transition(self, address: Identity, order: GhostOrder, status: GhostOrderStatus, price: int = 0) -> None:
        previous = order.status
        order.status = status
        self.ledger.emit(events.GhostOrderStatusChanged(
            order=address, order_id=order.order_id, previous=previous, status=status, price=price,
        ))
        logger.info("Ghost order %d: %s -> %s", order.order_id, previous.name, status.name)

    # =====================================================================
    #  Creation and custody
    # =====================================================================

    def create_ghost_order(self, owner: Identity, args: CreateGhostOrderArgs) -> Identity:
        check_unsigned("order_id", args.order_id, U64_MAX)
        check_unsigned("market_index", args.market_index, U16_MAX)
        check_signed("trigger_price", args.trigger_price)
        check_unsigned("base_asset_amount", args.base_asset_amount, U64_MAX)
        check_unsigned("nonce", args.nonce, U64_MAX)
        check_fixed_bytes("feed_id", args.feed_id, FEED_ID_LENGTH)
        check_fixed_bytes("trader_account", args.trader_account, IDENTITY_LENGTH)
        condition = TriggerCondition.parse(args.trigger_condition)
        side = OrderSide.parse(args.order_side)

        address = self.order_address(owner, args.order_id)
        delegate = self.delegate_address(owner)
        now = self.ledger.clock.unix_timestamp
        with self.ledger.atomic():
            self.ledger.allocate(address, GhostOrder(
                owner=owner,
                order_id=args.order_id,
                market_index=args.market_index,
                trigger_price=args.trigger_price,
                trigger_condition=condition,
                order_side=side,
                base_asset_amount=args.base_asset_amount,
                reduce_only=bool(args.reduce_only),
                feed_id=bytes(args.feed_id),
                nonce=args.nonce,
                delegate=delegate,
                trader_account=bytes(args.trader_account),
                created_at=now,
                expiry=absolute_expiry(now, args.expiry_seconds),
            ), self.program_id)
            self.ledger.emit(events.GhostOrderCreated(
                owner=owner, order_id=args.order_id, order=address, delegate=delegate,
            ))
        logger.info(
            "Ghost order created: id=%d, trigger_price=%d, condition=%s",
            args.order_id, args.trigger_price, condition.name,
        )
        return address

    def delegate_order(self, owner: Identity, order: Identity) -> None:
        with self.ledger.atomic():
            record = self.ledger.load(order, GhostOrder)
            require_owner(owner, record.owner)
            require_address(order, self.order_address(record.owner, record.order_id))
            require_status(
                record.status, GhostOrderStatus.PENDING, GhostOrderStatus.ACTIVE,
                error=OrderNotActiveError,
            )
            self.magic.delegate(order)

    def activate_order(self, owner: Identity, order: Identity) -> None:
        """PENDING -> ACTIVE. Usually submitted once the order has been delegated."""
        with self.ledger.atomic():
            record = self.ledger.load_mut(order, GhostOrder)
            require_owner(owner, record.owner)
            require_status(record.status, GhostOrderStatus.PENDING, error=OrderNotActiveError)
            self._transition(order, record, GhostOrderStatus.ACTIVE)

    # =====================================================================
    #  Trigger
    # =====================================================================

    def check_trigger(self, order: Identity, feed: Identity) -> GhostOrderStatus:
        """
        Evaluate an ACTIVE order against the feed.

        Inactive orders are left untouched. Expired orders become EXPIRED;
        orders whose trigger holds become TRIGGERED with the observed price.
        """
        record = self.ledger.load(order, GhostOrder)
        if not record.is_active():
            logger.debug("Ghost order %d not active, skipping check", record.order_id)
            return record.status

        with self.ledger.atomic():
            record = self.ledger.load_mut(order, GhostOrder)
            now = self.ledger.clock.unix_timestamp
            if record.is_expired(now):
                self._transition(order, record, GhostOrderStatus.EXPIRED)
                return record.status

            price = self.reader.read_price(feed, record.feed_id, PriceFeedFormat.LEGACY)
            logger.debug(
                "Checking trigger: current_price=%d, trigger_price=%d, condition=%s",
                price, record.trigger_price, record.trigger_condition.name,
            )
            if record.check_trigger(price):
                record.triggered_at = now
                record.execution_price = price
                self._transition(order, record, GhostOrderStatus.TRIGGERED, price)
        return record.status

    def mark_ready(self, payer: Identity, order: Identity) -> bytes:
        """TRIGGERED -> READY_TO_EXECUTE; publishes the params commitment and slot deadline."""
        with self.ledger.atomic():
            record = self.ledger.load_mut(order, GhostOrder)
            require_status(record.status, GhostOrderStatus.TRIGGERED, error=OrderNotTriggeredError)
            record.params_commitment = compute_params_commitment(record.params(), record.nonce)
            record.ready_expires_at = self.ledger.clock.slot + self.execution.ready_window_slots
            self._transition(order, record, GhostOrderStatus.READY_TO_EXECUTE, record.execution_price)
        logger.info("Ghost order %d marked ready, expires at slot %d", record.order_id, record.ready_expires_at)
        return record.params_commitment

    # =====================================================================
    #  Execution
    # =====================================================================

    def execute_with_commitment(
        self,
        keeper: Identity,
        order: Identity,
        params: OrderParams,
        nonce: int,
        accounts: SettlementAccounts,
    ) -> None:
        """
        Reveal the committed params and place the venue order.

        Raises:
            OrderNotReadyError: not READY_TO_EXECUTE.
            ReadyWindowExpiredError: current slot is past ``ready_expires_at``.
            NonceMismatchError / CommitmentMismatchError: reveal does not match.
            TraderAccountMismatchError: settlement targets another trader account.
        """
        with self.ledger.atomic():
            record = self.ledger.load_mut(order, GhostOrder)
            require_status(record.status, GhostOrderStatus.READY_TO_EXECUTE, error=OrderNotReadyError)
            slot = self.ledger.clock.slot
            if record.is_ready_expired(slot):
                raise ReadyWindowExpiredError(f"slot {slot} > {record.ready_expires_at}")
            if nonce != record.nonce:
                raise NonceMismatchError(f"order {record.order_id}")
            if not verify_params_commitment(params, nonce, record.params_commitment):
                raise CommitmentMismatchError(f"order {record.order_id}")
            if accounts.trader_account != record.trader_account:
                raise TraderAccountMismatchError(identity_hex(accounts.trader_account))

            logger.info("Commitment verified for order %d, placing venue order", record.order_id)
            call = build_settlement_call(
                self.programs.settlement,
                accounts.with_authority(record.delegate),
                params.market_index,
                params.order_side,
                params.base_asset_amount,
                params.reduce_only,
                authority_signs=True,
            )
            record.executed_at = self.ledger.clock.unix_timestamp
            self._transition(order, record, GhostOrderStatus.EXECUTED, record.execution_price)
            self.ledger.invoke(call, [record.delegate], self.execution.settlement_compute_units)

    # =====================================================================
    #  Cancellation and staleness
    # =====================================================================

    def cancel_order(self, owner: Identity, order: Identity) -> None:
        with self.ledger.atomic():
            record = self.ledger.load_mut(order, GhostOrder)
            require_owner(owner, record.owner)
            require_status(
                record.status, GhostOrderStatus.PENDING, GhostOrderStatus.ACTIVE,
                error=OrderNotCancellableError,
            )
            self._transition(order, record, GhostOrderStatus.CANCELLED)

    def expire_stale(self, order: Identity) -> bool:
        """
        Sweep a TRIGGERED or READY_TO_EXECUTE order to EXPIRED once its ready
        window or its expiry has passed. Returns True if the order was expired.
        """
        record = self.ledger.load(order, GhostOrder)
        if record.status not in (GhostOrderStatus.TRIGGERED, GhostOrderStatus.READY_TO_EXECUTE):
            return False
        stale = record.is_expired(self.ledger.clock.unix_timestamp)
        if record.is_ready_to_execute():
            stale = stale or record.is_ready_expired(self.ledger.clock.slot)
        if not stale:
            return False
        with self.ledger.atomic():
            record = self.ledger.load_mut(order, GhostOrder)
            self._transition(order, record, GhostOrderStatus.EXPIRED)
        logger.warning("Ghost order %d expired awaiting execution", record.order_id)
        return True

    def schedule_monitoring(
        self,
        payer: Identity,
        order: Identity,
        feed: Identity,
        task_id: int,
        interval_ms: int,
        iterations: int,
    ) -> None:
        """Register a recurring ``check_trigger`` for an ACTIVE order."""
        with self.ledger.atomic():
            record = self.ledger.load_mut(order, GhostOrder)
            require_status(record.status, GhostOrderStatus.ACTIVE, error=OrderNotActiveError)
            self.magic.schedule_task(
                task_id, self.program_id, "check_trigger", [order, feed], interval_ms, iterations, payer,
            )
            record.crank_task_id = task_id
            self.ledger.emit(events.MonitoringScheduled(
                order=order, task_id=task_id, check_interval_millis=interval_ms, max_iterations=iterations,
            ))
        logger.info("Ghost order monitoring scheduled: task_id=%d, interval=%dms", task_id, interval_ms)
