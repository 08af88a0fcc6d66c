"""
Authority Registry

One ExecutorAuthority per owner holds the hashes of every outstanding
compressed or encrypted order plus a short allow-list of keeper identities
that may trigger those orders on the owner's behalf.

Both collections are small bounded lists with linear membership checks.
Order-hash add rejects duplicates; executor add is idempotent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

from ..constants import HASH_LENGTH, MAX_AUTHORIZED_EXECUTORS, MAX_ORDERS_PER_EXECUTOR
from ..crypto.address import ZERO_IDENTITY, Identity
from ..crypto.hashing import short_hash
from ..exceptions import (
    MaxExecutorsReachedError,
    MaxOrdersReachedError,
    OrderHashExistsError,
    OrderHashNotFoundError,
)

logger = logging.getLogger(__name__)

ZERO_HASH = bytes(HASH_LENGTH)


@dataclass
class ExecutorAuthority:
    """Per-owner registry of outstanding order hashes and authorized executors."""
    owner: Identity
    order_count: int = 0
    is_delegated: bool = False
    order_hashes: List[bytes] = field(default_factory=list)
    authorized_executors: List[Identity] = field(default_factory=list)

    # -- Order hashes -------------------------------------------------------

    def add_order_hash(self, order_hash: bytes) -> None:
        """
        Append a hash and bump the running total.

        Raises:
            MaxOrdersReachedError: registry already holds 16 hashes.
            OrderHashExistsError: hash is already registered.
        """
        if len(self.order_hashes) >= MAX_ORDERS_PER_EXECUTOR:
            raise MaxOrdersReachedError(f"owner holds {len(self.order_hashes)} hashes")
        if self.has_order_hash(order_hash):
            raise OrderHashExistsError(short_hash(order_hash))
        self.order_hashes.append(bytes(order_hash))
        self.order_count += 1
        logger.debug("Registered order hash %s (%d active)", short_hash(order_hash), len(self.order_hashes))

    def remove_order_hash(self, order_hash: bytes) -> None:
        """Remove a hash; survivors keep their relative order."""
        for index, existing in enumerate(self.order_hashes):
            if existing == order_hash:
                del self.order_hashes[index]
                logger.debug("Removed order hash %s (%d active)", short_hash(order_hash), len(self.order_hashes))
                return
        raise OrderHashNotFoundError(short_hash(order_hash))

    def has_order_hash(self, order_hash: bytes) -> bool:
        for existing in self.order_hashes:
            if existing == order_hash:
                return True
        return False

    @property
    def active_order_count(self) -> int:
        return len(self.order_hashes)

    def order_hash_slots(self) -> List[bytes]:
        """Fixed-width view: active hashes from slot 0, vacated slots zeroed."""
        return self.order_hashes + [ZERO_HASH] * (MAX_ORDERS_PER_EXECUTOR - len(self.order_hashes))

    # -- Executors ----------------------------------------------------------

    def add_authorized_executor(self, executor: Identity) -> None:
        """
        Allow-list an executor. Re-adding an existing executor is a no-op,
        even when the list is full.

        Raises:
            MaxExecutorsReachedError: four executors are already authorized.
        """
        if self.is_authorized_executor(executor):
            return
        if len(self.authorized_executors) >= MAX_AUTHORIZED_EXECUTORS:
            raise MaxExecutorsReachedError(f"owner has {len(self.authorized_executors)} executors")
        self.authorized_executors.append(bytes(executor))

    def remove_authorized_executor(self, executor: Identity) -> None:
        """Removing an executor that is not listed is a no-op."""
        for index, existing in enumerate(self.authorized_executors):
            if existing == executor:
                del self.authorized_executors[index]
                return

    def is_authorized_executor(self, executor: Identity) -> bool:
        for existing in self.authorized_executors:
            if existing == executor:
                return True
        return False

    def executor_slots(self) -> List[Identity]:
        return self.authorized_executors + [ZERO_IDENTITY] * (
            MAX_AUTHORIZED_EXECUTORS - len(self.authorized_executors)
        )

    # -- Queries ------------------------------------------------------------

    def can_trigger(self, caller: Identity) -> bool:
        """Owner or allow-listed executor."""
        return caller == self.owner or self.is_authorized_executor(caller)

    def is_empty(self) -> bool:
        return not self.order_hashes
