"""
Domain Delegation Protocol

Moves exclusive write custody of records between the general (BASE) and the
low-latency (EPHEMERAL) execution domain, optionally bundling downstream
calls that run in the same atomic unit as the custody change.

Two action shapes:

  commit                 snapshot records, run handlers, keep low-latency custody
  commit_and_undelegate  snapshot records, return custody to BASE, run handlers

Operations invoke the magic program as their last step, so a failing handler
aborts the enclosing unit and every earlier write is rolled back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Sequence

from ..constants import (
    REDELEGATE_COMPUTE_UNITS,
    REDELEGATE_DISCRIMINATOR,
    REDELEGATE_REQUIRED_ACCOUNTS,
    SYSTEM_PROGRAM_ID,
)
from ..crypto.address import Identity, identity_hex
from ..crypto.hashing import short_hash
from ..exceptions import (
    AccountDelegatedError,
    MagicActionFailedError,
    SchedulingFailedError,
)
from .ledger import Domain, Ledger, ScheduledTask
from .settlement import AccountMeta, SettlementCall

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Action model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CallHandler:
    """A downstream call bundled with a custody change."""
    destination_program: Identity
    accounts: List[AccountMeta]
    data: bytes
    escrow_authority: Identity
    compute_units: int

    def to_call(self) -> SettlementCall:
        return SettlementCall(program_id=self.destination_program, accounts=list(self.accounts), data=self.data)

    @classmethod
    def for_call(cls, call: SettlementCall, escrow_authority: Identity, compute_units: int) -> "CallHandler":
        return cls(
            destination_program=call.program_id,
            accounts=list(call.accounts),
            data=call.data,
            escrow_authority=escrow_authority,
            compute_units=compute_units,
        )


@dataclass(frozen=True)
class CommitType:
    committed_records: List[Identity]
    call_handlers: List[CallHandler] = field(default_factory=list)

    @classmethod
    def standalone(cls, records: Sequence[Identity]) -> "CommitType":
        return cls(committed_records=list(records))

    @classmethod
    def with_handler(cls, records: Sequence[Identity], handlers: Sequence[CallHandler]) -> "CommitType":
        return cls(committed_records=list(records), call_handlers=list(handlers))


class MagicActionKind(Enum):
    COMMIT = "commit"
    COMMIT_AND_UNDELEGATE = "commit_and_undelegate"


@dataclass(frozen=True)
class MagicAction:
    kind: MagicActionKind
    commit_type: CommitType

    @classmethod
    def commit(cls, commit_type: CommitType) -> "MagicAction":
        return cls(MagicActionKind.COMMIT, commit_type)

    @classmethod
    def commit_and_undelegate(cls, commit_type: CommitType) -> "MagicAction":
        return cls(MagicActionKind.COMMIT_AND_UNDELEGATE, commit_type)

    @property
    def undelegates(self) -> bool:
        return self.kind is MagicActionKind.COMMIT_AND_UNDELEGATE


# ---------------------------------------------------------------------------
# Re-delegation call
# ---------------------------------------------------------------------------

def build_redelegate_data() -> bytes:
    """Selector plus a zero u64: re-delegate with the default configuration."""
    return REDELEGATE_DISCRIMINATOR + (0).to_bytes(8, "little")


def build_redelegate_handler(
    delegation_program_id: Identity,
    payer: Identity,
    record: Identity,
    remaining_accounts: Sequence[Identity],
    compute_units: int = REDELEGATE_COMPUTE_UNITS,
) -> CallHandler:
    """
    Handler that hands ``record`` back to the low-latency domain once the
    settlement has run.

    ``remaining_accounts`` are the delegation program's buffer, record and
    metadata accounts for ``record``. ``compute_units`` is the budget the
    handler runs under.

    Raises:
        MagicActionFailedError: fewer than three delegation accounts supplied.
    """
    if len(remaining_accounts) < REDELEGATE_REQUIRED_ACCOUNTS:
        raise MagicActionFailedError("missing delegation accounts for re-delegation")

    buffer, delegation_record, metadata = remaining_accounts[:REDELEGATE_REQUIRED_ACCOUNTS]
    accounts = [
        AccountMeta(payer, is_writable=True),
        AccountMeta(record, is_writable=True),
        AccountMeta(buffer, is_writable=True),
        AccountMeta(delegation_record, is_writable=True),
        AccountMeta(metadata, is_writable=True),
        AccountMeta(SYSTEM_PROGRAM_ID, is_writable=False),
    ]
    return CallHandler(
        destination_program=delegation_program_id,
        accounts=accounts,
        data=build_redelegate_data(),
        escrow_authority=payer,
        compute_units=compute_units,
    )


# ---------------------------------------------------------------------------
# Magic program
# ---------------------------------------------------------------------------

class MagicProgram:
    """Executes custody hand-offs and bundled handlers against a ledger."""

    def __init__(self, ledger: Ledger, delegation_program_id: Identity):
        self.ledger = ledger
        self.delegation_program_id = delegation_program_id

    # -- Custody hand-off ---------------------------------------------------

    def delegate(self, record: Identity) -> None:
        """BASE -> EPHEMERAL. Must be submitted from the general domain."""
        self.ledger.require_writable(record)
        if self.ledger.is_delegated(record):
            raise AccountDelegatedError(f"{identity_hex(record)} already delegated")
        self.ledger.set_custody(record, Domain.EPHEMERAL)
        logger.info("Delegated %s to the low-latency domain", short_hash(record))

    def execute(self, action: MagicAction, payer: Identity) -> None:
        """
        Commit the action's records and run its handlers.

        Raises:
            MagicActionFailedError: a committed record is not in low-latency custody.
            SettlementCallFailedError: a handler's downstream program failed.
            ComputeBudgetExceededError: a handler exceeded its budget.
        """
        commit = action.commit_type
        for record in commit.committed_records:
            if not self.ledger.exists(record) or not self.ledger.is_delegated(record):
                raise MagicActionFailedError(f"{identity_hex(record)} is not delegated")

        if action.undelegates:
            for record in commit.committed_records:
                self.ledger.set_custody(record, Domain.BASE)

        for handler in commit.call_handlers:
            if handler.destination_program == self.delegation_program_id:
                self._redelegate(handler)
            else:
                self.ledger.invoke(handler.to_call(), [handler.escrow_authority], handler.compute_units)

        logger.debug(
            "Magic action %s: %d record(s), %d handler(s)",
            action.kind.value, len(commit.committed_records), len(commit.call_handlers),
        )

    def _redelegate(self, handler: CallHandler) -> None:
        if handler.data != build_redelegate_data() or len(handler.accounts) < 2:
            raise MagicActionFailedError("malformed re-delegation call")
        record = handler.accounts[1].identity
        if not self.ledger.exists(record):
            raise MagicActionFailedError(f"re-delegation target {identity_hex(record)} missing")
        self.ledger.set_custody(record, Domain.EPHEMERAL)
        logger.info("Re-delegated %s after settlement", short_hash(record))

    # -- Scheduler ----------------------------------------------------------

    def schedule_task(
        self,
        task_id: int,
        program_id: Identity,
        operation: str,
        accounts: Sequence[Identity],
        interval_ms: int,
        iterations: int,
        payer: Identity,
    ) -> ScheduledTask:
        """
        Register a recurring operation with the low-latency domain.

        Raises:
            SchedulingFailedError: duplicate task id or non-positive interval/iterations.
        """
        if interval_ms <= 0 or iterations <= 0:
            raise SchedulingFailedError("interval and iterations must be positive")
        if task_id in self.ledger.tasks:
            raise SchedulingFailedError(f"task {task_id} already scheduled")
        now_ms = self.ledger.clock.unix_timestamp * 1000
        task = ScheduledTask(
            task_id=task_id,
            program_id=program_id,
            operation=operation,
            accounts=list(accounts),
            interval_ms=interval_ms,
            iterations_left=iterations,
            payer=payer,
            next_run_ms=now_ms + interval_ms,
        )
        self.ledger.tasks[task_id] = task
        return task
