"""
Ledger Runtime

In-process host for the engine: a record store keyed by 32-byte address, a
clock, custody per record and all-or-nothing atomic units.

Custody:
  Every record is held by exactly one execution domain. BASE is the general
  domain, EPHEMERAL the low-latency one. A record can only be written from
  the domain that currently holds it; reads are unrestricted.

Atomicity:
  ``atomic()`` snapshots records, custody, scheduled tasks and the event log
  and restores them if the body raises, so an operation either applies all
  of its writes or none.
"""

from __future__ import annotations

import copy
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Type, TypeVar

from ..crypto.address import Identity, identity_hex
from ..exceptions import (
    AccountAlreadyExistsError,
    AccountDelegatedError,
    AccountNotFoundError,
    ComputeBudgetExceededError,
    GhostBridgeError,
    SettlementCallFailedError,
)
from .events import Event
from .settlement import SettlementCall

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (call, signers) -> compute units consumed
DownstreamProgram = Callable[[SettlementCall, Sequence[Identity]], int]


class Domain(Enum):
    BASE = "base"
    EPHEMERAL = "ephemeral"


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------

@dataclass
class Clock:
    """Wall-clock seconds plus the monotonically increasing slot counter."""
    unix_timestamp: int = 0
    slot: int = 0

    def advance(self, seconds: int = 0, slots: int = 0) -> None:
        if seconds < 0 or slots < 0:
            raise ValueError("clock only moves forward")
        self.unix_timestamp += seconds
        self.slot += slots


# ---------------------------------------------------------------------------
# Scheduled tasks
# ---------------------------------------------------------------------------

@dataclass
class ScheduledTask:
    """A recurring check registered with the low-latency domain's scheduler."""
    task_id: int
    program_id: Identity
    operation: str
    accounts: List[Identity]
    interval_ms: int
    iterations_left: int
    payer: Identity
    next_run_ms: int = 0
    runs: int = 0

    @property
    def exhausted(self) -> bool:
        return self.iterations_left <= 0


# ---------------------------------------------------------------------------
# Stored record
# ---------------------------------------------------------------------------

@dataclass
class StoredRecord:
    value: Any
    program_id: Identity
    custody: Domain = Domain.BASE


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------

class Ledger:
    """Record store with custody, atomic units and downstream program dispatch."""

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or Clock()
        self.domain = Domain.BASE
        self.events: List[Event] = []
        self.tasks: Dict[int, ScheduledTask] = {}
        self._records: Dict[Identity, StoredRecord] = {}
        self._programs: Dict[Identity, DownstreamProgram] = {}
        self._depth = 0

    # -- Domains ------------------------------------------------------------

    @contextmanager
    def in_domain(self, domain: Domain) -> Iterator["Ledger"]:
        """Run the body as if submitted to ``domain``."""
        previous = self.domain
        self.domain = domain
        try:
            yield self
        finally:
            self.domain = previous

    # -- Atomic units -------------------------------------------------------

    @contextmanager
    def atomic(self) -> Iterator["Ledger"]:
        snapshot = self._take_snapshot()
        self._depth += 1
        try:
            yield self
        except BaseException:
            self._restore_snapshot(snapshot)
            if self._depth == 1:
                logger.debug("Atomic unit rolled back")
            raise
        finally:
            self._depth -= 1

    def _take_snapshot(self) -> Dict[str, Any]:
        return {
            "records": copy.deepcopy(self._records),
            "tasks": copy.deepcopy(self.tasks),
            "events": len(self.events),
        }

    def _restore_snapshot(self, snapshot: Dict[str, Any]) -> None:
        self._records = snapshot["records"]
        self.tasks = snapshot["tasks"]
        del self.events[snapshot["events"]:]

    # -- Records ------------------------------------------------------------

    def exists(self, address: Identity) -> bool:
        return address in self._records

    def allocate(self, address: Identity, value: Any, program_id: Identity) -> Any:
        """Create a record held by the current domain."""
        if address in self._records:
            raise AccountAlreadyExistsError(identity_hex(address))
        self._records[address] = StoredRecord(value=value, program_id=program_id, custody=self.domain)
        return value

    def load(self, address: Identity, record_type: Type[T]) -> T:
        """Read-only access from any domain."""
        stored = self._records.get(address)
        if stored is None or not isinstance(stored.value, record_type):
            raise AccountNotFoundError(f"{record_type.__name__} at {identity_hex(address)}")
        return stored.value

    def load_mut(self, address: Identity, record_type: Type[T]) -> T:
        """Write access; the current domain must hold the record."""
        value = self.load(address, record_type)
        self.require_writable(address)
        return value

    def close(self, address: Identity) -> Any:
        self.require_writable(address)
        return self._records.pop(address).value

    def program_of(self, address: Identity) -> Identity:
        stored = self._records.get(address)
        if stored is None:
            raise AccountNotFoundError(identity_hex(address))
        return stored.program_id

    def put_account(self, address: Identity, value: Any, program_id: Identity) -> None:
        """Place or replace an account owned by an external program, e.g. a price feed."""
        self._records[address] = StoredRecord(value=value, program_id=program_id)

    def records_of(self, record_type: Type[T]) -> Dict[Identity, T]:
        return {
            address: stored.value
            for address, stored in self._records.items()
            if isinstance(stored.value, record_type)
        }

    # -- Custody ------------------------------------------------------------

    def custody(self, address: Identity) -> Domain:
        stored = self._records.get(address)
        if stored is None:
            raise AccountNotFoundError(identity_hex(address))
        return stored.custody

    def is_delegated(self, address: Identity) -> bool:
        return self.custody(address) == Domain.EPHEMERAL

    def require_writable(self, address: Identity) -> None:
        held_by = self.custody(address)
        if held_by != self.domain:
            raise AccountDelegatedError(
                f"{identity_hex(address)} is held by {held_by.value}, write attempted from {self.domain.value}"
            )

    def set_custody(self, address: Identity, domain: Domain) -> None:
        stored = self._records.get(address)
        if stored is None:
            raise AccountNotFoundError(identity_hex(address))
        stored.custody = domain
        if hasattr(stored.value, "is_delegated"):
            stored.value.is_delegated = domain == Domain.EPHEMERAL

    # -- Events -------------------------------------------------------------

    def emit(self, event: Event) -> None:
        self.events.append(event)
        logger.debug("Event %s", event.name)

    # -- Downstream programs ------------------------------------------------

    def register_program(self, program_id: Identity, handler: DownstreamProgram) -> None:
        self._programs[program_id] = handler

    def invoke(self, call: SettlementCall, signers: Sequence[Identity], compute_units: int) -> int:
        """
        Run a nested call against a registered downstream program.

        Raises:
            SettlementCallFailedError: unknown program or the program failed.
            ComputeBudgetExceededError: the program used more than ``compute_units``.
        """
        handler = self._programs.get(call.program_id)
        if handler is None:
            raise SettlementCallFailedError(f"no program at {identity_hex(call.program_id)}")
        try:
            used = handler(call, list(signers))
        except GhostBridgeError:
            raise
        except Exception as e:
            raise SettlementCallFailedError(str(e)) from e
        used = int(used or 0)
        if used > compute_units:
            raise ComputeBudgetExceededError(f"used {used} of {compute_units}")
        return used
