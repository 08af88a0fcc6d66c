"""
Order records and their derived addresses.

The registry (ExecutorAuthority) lives in ``registry``; this module holds the
two stored order variants:

  EncryptedOrder  ciphertext of the order preimage plus its public hash
  GhostOrder      plaintext trigger order driven through commitment-reveal
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum

from ..constants import (
    ENCRYPTED_ORDER_SEED_PREFIX,
    EXECUTOR_SEED_PREFIX,
    GHOST_DELEGATE_SEED_PREFIX,
    GHOST_ORDER_SEED_PREFIX,
    HASH_LENGTH,
)
from ..crypto.address import Identity, derive_address
from .commitment import OrderParams, expired, trigger_met
from .types import OrderSide, TriggerCondition


# ---------------------------------------------------------------------------
# Addresses
# ---------------------------------------------------------------------------

def executor_address(owner: Identity, program_id: Identity) -> Identity:
    return derive_address([EXECUTOR_SEED_PREFIX, owner], program_id)


def encrypted_order_address(owner: Identity, order_hash: bytes, program_id: Identity) -> Identity:
    return derive_address([ENCRYPTED_ORDER_SEED_PREFIX, owner, order_hash], program_id)


def ghost_order_address(owner: Identity, order_id: int, program_id: Identity) -> Identity:
    return derive_address([GHOST_ORDER_SEED_PREFIX, owner, order_id.to_bytes(8, "little")], program_id)


def ghost_delegate_address(owner: Identity, program_id: Identity) -> Identity:
    """Sub-identity that signs venue calls for an owner's ghost orders."""
    return derive_address([GHOST_DELEGATE_SEED_PREFIX, owner], program_id)


# ---------------------------------------------------------------------------
# Encrypted order
# ---------------------------------------------------------------------------

class EncryptedOrderStatus(IntEnum):
    ACTIVE = 0
    TRIGGERED = 1
    EXECUTED = 2
    CANCELLED = 3

    @property
    def is_terminal(self) -> bool:
        return self in (EncryptedOrderStatus.EXECUTED, EncryptedOrderStatus.CANCELLED)


@dataclass
class EncryptedOrder:
    owner: Identity
    order_hash: bytes
    executor_authority: Identity
    encrypted_data: bytes
    feed_id: bytes
    created_at: int = 0
    triggered_at: int = 0
    execution_price: int = 0
    status: EncryptedOrderStatus = EncryptedOrderStatus.ACTIVE
    is_delegated: bool = False

    @property
    def data_len(self) -> int:
        return len(self.encrypted_data)

    def is_active(self) -> bool:
        return self.status == EncryptedOrderStatus.ACTIVE


# ---------------------------------------------------------------------------
# Ghost order (commitment-reveal)
# ---------------------------------------------------------------------------

class GhostOrderStatus(IntEnum):
    PENDING = 0
    ACTIVE = 1
    TRIGGERED = 2
    READY_TO_EXECUTE = 3
    EXECUTED = 4
    CANCELLED = 5
    EXPIRED = 6

    @property
    def is_terminal(self) -> bool:
        return self in (GhostOrderStatus.EXECUTED, GhostOrderStatus.CANCELLED, GhostOrderStatus.EXPIRED)


@dataclass
class GhostOrder:
    owner: Identity
    order_id: int
    market_index: int
    trigger_price: int
    trigger_condition: TriggerCondition
    order_side: OrderSide
    base_asset_amount: int
    reduce_only: bool
    feed_id: bytes
    nonce: int
    delegate: Identity
    trader_account: Identity
    status: GhostOrderStatus = GhostOrderStatus.PENDING
    created_at: int = 0
    triggered_at: int = 0
    executed_at: int = 0
    expiry: int = 0
    crank_task_id: int = 0
    execution_price: int = 0
    params_commitment: bytes = field(default=bytes(HASH_LENGTH))
    ready_expires_at: int = 0
    is_delegated: bool = False

    def is_active(self) -> bool:
        return self.status == GhostOrderStatus.ACTIVE

    def is_ready_to_execute(self) -> bool:
        return self.status == GhostOrderStatus.READY_TO_EXECUTE

    def is_expired(self, now: int) -> bool:
        return expired(self.expiry, now)

    def is_ready_expired(self, slot: int) -> bool:
        """The ready window is inclusive: execution at ``ready_expires_at`` is still allowed."""
        return self.ready_expires_at > 0 and slot > self.ready_expires_at

    def check_trigger(self, price: int) -> bool:
        return trigger_met(self.trigger_condition, self.trigger_price, price)

    def params(self) -> OrderParams:
        return OrderParams(
            market_index=self.market_index,
            order_side=self.order_side,
            base_asset_amount=self.base_asset_amount,
            reduce_only=self.reduce_only,
        )
