"""
Engine events.

Every successful operation emits one machine-readable event describing the
state change it recorded. Events are collected by the ledger inside the
atomic unit, so a rolled-back operation emits nothing.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Dict

from ..crypto.address import identity_hex


@dataclass(frozen=True)
class Event:
    @property
    def name(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"event": self.name}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, (bytes, bytearray)):
                value = identity_hex(bytes(value))
            elif isinstance(value, Enum):
                value = value.name
            out[f.name] = value
        return out


# -- Registry ----------------------------------------------------------------

@dataclass(frozen=True)
class ExecutorInitialized(Event):
    owner: bytes
    executor_authority: bytes


@dataclass(frozen=True)
class ExecutorDelegated(Event):
    owner: bytes


@dataclass(frozen=True)
class ExecutorUndelegated(Event):
    owner: bytes


@dataclass(frozen=True)
class ExecutorAuthorizationChanged(Event):
    owner: bytes
    executor: bytes
    authorized: bool


# -- Compressed orders -------------------------------------------------------

@dataclass(frozen=True)
class CompressedOrderCreated(Event):
    owner: bytes
    order_id: int
    order_hash: bytes
    market_index: int


@dataclass(frozen=True)
class GhostOrderExecuted(Event):
    owner: bytes
    order_id: int
    order_hash: bytes
    market_index: int
    execution_price: int


# -- Encrypted orders --------------------------------------------------------

@dataclass(frozen=True)
class EncryptedOrderCreated(Event):
    owner: bytes
    order_hash: bytes
    feed_id: bytes
    created_at: int


@dataclass(frozen=True)
class EncryptedOrderDelegated(Event):
    owner: bytes
    order_hash: bytes


@dataclass(frozen=True)
class PriceUpdateChecked(Event):
    order_hash: bytes
    feed_id: bytes
    current_price: int


@dataclass(frozen=True)
class OrderTriggeredAndExecuted(Event):
    owner: bytes
    order_hash: bytes
    market_index: int
    order_side: int
    base_asset_amount: int
    trigger_price: int
    execution_price: int
    executed_at: int
    redelegated: bool


@dataclass(frozen=True)
class EncryptedOrderCancelled(Event):
    owner: bytes
    order_hash: bytes
    expired: bool = False


@dataclass(frozen=True)
class EncryptedOrderClosed(Event):
    owner: bytes
    order_hash: bytes


@dataclass(frozen=True)
class MonitoringScheduled(Event):
    order: bytes
    task_id: int
    check_interval_millis: int
    max_iterations: int


# -- Commitment-reveal orders ------------------------------------------------

@dataclass(frozen=True)
class GhostOrderCreated(Event):
    owner: bytes
    order_id: int
    order: bytes
    delegate: bytes


@dataclass(frozen=True)
class GhostOrderStatusChanged(Event):
    order: bytes
    order_id: int
    previous: Enum
    status: Enum
    price: int = 0
