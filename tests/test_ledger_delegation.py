"""
Test suite for the ledger runtime and the domain delegation protocol

Covers:
  - Atomic units (rollback of records, events and tasks)
  - Custody exclusivity between the general and low-latency domains
  - Nested downstream calls and compute budgets
  - Magic actions, call handlers and re-delegation
  - Scheduler
"""

import pytest

from ghostbridge.constants import REDELEGATE_DISCRIMINATOR, SYSTEM_PROGRAM_ID
from ghostbridge.engine.delegation import (
    CallHandler,
    CommitType,
    MagicAction,
    MagicProgram,
    build_redelegate_data,
    build_redelegate_handler,
)
from ghostbridge.engine.events import ExecutorDelegated
from ghostbridge.engine.ledger import Clock, Domain, Ledger
from ghostbridge.engine.registry import ExecutorAuthority
from ghostbridge.engine.settlement import build_settlement_call
from ghostbridge.engine.types import OrderSide
from ghostbridge.exceptions import (
    AccountAlreadyExistsError,
    AccountDelegatedError,
    AccountNotFoundError,
    ComputeBudgetExceededError,
    ErrorKind,
    MagicActionFailedError,
    SchedulingFailedError,
    SettlementCallFailedError,
)

from conftest import KEEPER, OWNER

RECORD = bytes([0x71]) * 32
OTHER = bytes([0x72]) * 32
BUFFER = bytes([0x73]) * 32
DELEGATION_RECORD = bytes([0x74]) * 32
METADATA = bytes([0x75]) * 32


@pytest.fixture
def magic(ledger, programs) -> MagicProgram:
    return MagicProgram(ledger, programs.delegation)


@pytest.fixture
def record(ledger, programs) -> bytes:
    ledger.allocate(RECORD, ExecutorAuthority(owner=OWNER), programs.engine)
    return RECORD


def settlement_handler(programs, accounts, units=200_000) -> CallHandler:
    call = build_settlement_call(programs.settlement, accounts, 7, OrderSide.LONG, 1, False)
    return CallHandler.for_call(call, KEEPER, units)


# ============================================================================
#  Ledger
# ============================================================================

class TestLedgerRecords:

    def test_allocate_and_load(self, ledger, record):
        assert ledger.exists(record)
        assert ledger.load(record, ExecutorAuthority).owner == OWNER
        assert ledger.custody(record) is Domain.BASE

    def test_allocate_twice(self, ledger, record, programs):
        with pytest.raises(AccountAlreadyExistsError) as exc:
            ledger.allocate(record, ExecutorAuthority(owner=OWNER), programs.engine)
        assert exc.value.kind == ErrorKind.DUPLICATE

    def test_load_missing(self, ledger):
        with pytest.raises(AccountNotFoundError):
            ledger.load(OTHER, ExecutorAuthority)

    def test_load_wrong_type(self, ledger, record):
        with pytest.raises(AccountNotFoundError):
            ledger.load(record, Clock)

    def test_close(self, ledger, record):
        value = ledger.close(record)
        assert value.owner == OWNER
        assert not ledger.exists(record)

    def test_program_of(self, ledger, record, programs):
        assert ledger.program_of(record) == programs.engine

    def test_clock_only_moves_forward(self):
        clock = Clock(unix_timestamp=10, slot=5)
        clock.advance(seconds=3, slots=2)
        assert (clock.unix_timestamp, clock.slot) == (13, 7)
        with pytest.raises(ValueError):
            clock.advance(seconds=-1)


class TestAtomicUnits:

    def test_rollback_restores_records_and_events(self, ledger, record):
        with pytest.raises(RuntimeError):
            with ledger.atomic():
                ledger.load_mut(record, ExecutorAuthority).add_order_hash(b"\x01" * 32)
                ledger.emit(ExecutorDelegated(owner=OWNER))
                raise RuntimeError("boom")
        assert ledger.load(record, ExecutorAuthority).is_empty()
        assert ledger.events == []

    def test_rollback_restores_custody(self, ledger, record):
        with pytest.raises(RuntimeError):
            with ledger.atomic():
                ledger.set_custody(record, Domain.EPHEMERAL)
                raise RuntimeError("boom")
        assert ledger.custody(record) is Domain.BASE

    def test_rollback_removes_allocations(self, ledger, programs):
        with pytest.raises(RuntimeError):
            with ledger.atomic():
                ledger.allocate(OTHER, ExecutorAuthority(owner=OWNER), programs.engine)
                raise RuntimeError("boom")
        assert not ledger.exists(OTHER)

    def test_commit_keeps_writes(self, ledger, record):
        with ledger.atomic():
            ledger.load_mut(record, ExecutorAuthority).add_order_hash(b"\x01" * 32)
        assert ledger.load(record, ExecutorAuthority).active_order_count == 1

    def test_nested_inner_failure_rolls_back_outer(self, ledger, record):
        with pytest.raises(RuntimeError):
            with ledger.atomic():
                ledger.load_mut(record, ExecutorAuthority).add_order_hash(b"\x01" * 32)
                with ledger.atomic():
                    raise RuntimeError("inner")
        assert ledger.load(record, ExecutorAuthority).is_empty()


class TestCustody:

    def test_base_cannot_write_delegated(self, ledger, record):
        ledger.set_custody(record, Domain.EPHEMERAL)
        with pytest.raises(AccountDelegatedError) as exc:
            ledger.load_mut(record, ExecutorAuthority)
        assert exc.value.kind == ErrorKind.AUTHORIZATION

    def test_ephemeral_writes_delegated(self, ledger, record):
        ledger.set_custody(record, Domain.EPHEMERAL)
        with ledger.in_domain(Domain.EPHEMERAL):
            ledger.load_mut(record, ExecutorAuthority).add_order_hash(b"\x02" * 32)
        assert ledger.domain is Domain.BASE

    def test_ephemeral_cannot_write_base(self, ledger, record):
        with ledger.in_domain(Domain.EPHEMERAL):
            with pytest.raises(AccountDelegatedError):
                ledger.load_mut(record, ExecutorAuthority)

    def test_reads_are_unrestricted(self, ledger, record):
        ledger.set_custody(record, Domain.EPHEMERAL)
        assert ledger.load(record, ExecutorAuthority).owner == OWNER

    def test_custody_syncs_flag(self, ledger, record):
        ledger.set_custody(record, Domain.EPHEMERAL)
        assert ledger.load(record, ExecutorAuthority).is_delegated
        ledger.set_custody(record, Domain.BASE)
        assert not ledger.load(record, ExecutorAuthority).is_delegated

    def test_close_requires_custody(self, ledger, record):
        ledger.set_custody(record, Domain.EPHEMERAL)
        with pytest.raises(AccountDelegatedError):
            ledger.close(record)


class TestInvoke:

    def test_unknown_program(self, ledger, programs, accounts):
        call = build_settlement_call(programs.settlement, accounts, 7, OrderSide.LONG, 1, False)
        with pytest.raises(SettlementCallFailedError):
            ledger.invoke(call, [KEEPER], 200_000)

    def test_program_failure_is_wrapped(self, ledger, programs, accounts, venue):
        venue.fail_with = "venue rejected order"
        call = build_settlement_call(programs.settlement, accounts, 7, OrderSide.LONG, 1, False)
        with pytest.raises(SettlementCallFailedError, match="venue rejected order") as exc:
            ledger.invoke(call, [KEEPER], 200_000)
        assert exc.value.kind == ErrorKind.SUBCALL_FAILURE

    def test_compute_budget(self, ledger, programs, accounts, venue):
        venue.units = 200_001
        call = build_settlement_call(programs.settlement, accounts, 7, OrderSide.LONG, 1, False)
        with pytest.raises(ComputeBudgetExceededError):
            ledger.invoke(call, [KEEPER], 200_000)

    def test_records_call(self, ledger, programs, accounts, venue):
        call = build_settlement_call(programs.settlement, accounts, 7, OrderSide.LONG, 1, False)
        assert ledger.invoke(call, [KEEPER], 200_000) == venue.units
        assert venue.calls == [(call, [KEEPER])]


# ============================================================================
#  Delegation protocol
# ============================================================================

class TestMagicProgram:

    def test_delegate(self, ledger, magic, record):
        magic.delegate(record)
        assert ledger.is_delegated(record)

    def test_delegate_twice(self, ledger, magic, record):
        magic.delegate(record)
        with pytest.raises(AccountDelegatedError):
            magic.delegate(record)

    def test_commit_requires_delegation(self, magic, record):
        with pytest.raises(MagicActionFailedError):
            magic.execute(MagicAction.commit(CommitType.standalone([record])), KEEPER)

    def test_commit_keeps_custody(self, ledger, magic, record):
        magic.delegate(record)
        with ledger.in_domain(Domain.EPHEMERAL):
            magic.execute(MagicAction.commit(CommitType.standalone([record])), KEEPER)
        assert ledger.is_delegated(record)

    def test_commit_and_undelegate(self, ledger, magic, record):
        magic.delegate(record)
        with ledger.in_domain(Domain.EPHEMERAL):
            magic.execute(MagicAction.commit_and_undelegate(CommitType.standalone([record])), KEEPER)
        assert ledger.custody(record) is Domain.BASE

    def test_handler_runs_with_escrow_signer(self, ledger, magic, record, programs, accounts, venue):
        magic.delegate(record)
        handler = settlement_handler(programs, accounts)
        with ledger.in_domain(Domain.EPHEMERAL):
            magic.execute(MagicAction.commit_and_undelegate(CommitType.with_handler([record], [handler])), KEEPER)
        assert len(venue.calls) == 1
        call, signers = venue.calls[0]
        assert signers == [KEEPER]
        assert call.data == handler.data

    def test_handler_failure_rolls_back_unit(self, ledger, magic, record, programs, accounts, venue):
        magic.delegate(record)
        venue.fail_with = "rejected"
        handler = settlement_handler(programs, accounts)
        with ledger.in_domain(Domain.EPHEMERAL):
            with pytest.raises(SettlementCallFailedError):
                with ledger.atomic():
                    ledger.load_mut(record, ExecutorAuthority).add_order_hash(b"\x03" * 32)
                    magic.execute(
                        MagicAction.commit_and_undelegate(CommitType.with_handler([record], [handler])), KEEPER,
                    )
        assert ledger.is_delegated(record)
        assert ledger.load(record, ExecutorAuthority).is_empty()

    def test_handler_budget(self, ledger, magic, record, programs, accounts, venue):
        magic.delegate(record)
        handler = settlement_handler(programs, accounts, units=venue.units - 1)
        with ledger.in_domain(Domain.EPHEMERAL):
            with pytest.raises(ComputeBudgetExceededError):
                magic.execute(MagicAction.commit(CommitType.with_handler([record], [handler])), KEEPER)

    def test_redelegate_handler_restores_custody(self, ledger, magic, record, programs):
        magic.delegate(record)
        handler = build_redelegate_handler(
            programs.delegation, KEEPER, record, [BUFFER, DELEGATION_RECORD, METADATA],
        )
        with ledger.in_domain(Domain.EPHEMERAL):
            magic.execute(MagicAction.commit_and_undelegate(CommitType.with_handler([record], [handler])), KEEPER)
        assert ledger.is_delegated(record)


class TestRedelegateCall:

    def test_data(self):
        data = build_redelegate_data()
        assert data == REDELEGATE_DISCRIMINATOR + bytes(8)
        assert data[:8].hex() == "90f67a117e8c4f00"

    def test_accounts(self, programs):
        handler = build_redelegate_handler(
            programs.delegation, KEEPER, RECORD, [BUFFER, DELEGATION_RECORD, METADATA],
        )
        assert [m.as_pair() for m in handler.accounts] == [
            (KEEPER, True),
            (RECORD, True),
            (BUFFER, True),
            (DELEGATION_RECORD, True),
            (METADATA, True),
            (SYSTEM_PROGRAM_ID, False),
        ]
        assert handler.destination_program == programs.delegation

    def test_compute_budget(self, programs, execution):
        accounts = [BUFFER, DELEGATION_RECORD, METADATA]
        assert build_redelegate_handler(programs.delegation, KEEPER, RECORD, accounts).compute_units == (
            execution.redelegate_compute_units
        )
        handler = build_redelegate_handler(programs.delegation, KEEPER, RECORD, accounts, compute_units=9_000)
        assert handler.compute_units == 9_000

    def test_missing_accounts(self, programs):
        with pytest.raises(MagicActionFailedError):
            build_redelegate_handler(programs.delegation, KEEPER, RECORD, [BUFFER, DELEGATION_RECORD])


class TestScheduler:

    def test_schedule(self, ledger, magic, programs):
        task = magic.schedule_task(1, programs.crank, "check_trigger", [RECORD, OTHER], 500, 3, KEEPER)
        assert ledger.tasks[1] is task
        assert task.next_run_ms == ledger.clock.unix_timestamp * 1000 + 500
        assert task.iterations_left == 3

    def test_duplicate_id(self, magic, programs):
        magic.schedule_task(1, programs.crank, "check_trigger", [RECORD, OTHER], 500, 3, KEEPER)
        with pytest.raises(SchedulingFailedError):
            magic.schedule_task(1, programs.crank, "check_trigger", [RECORD, OTHER], 500, 3, KEEPER)

    @pytest.mark.parametrize("interval,iterations", [(0, 1), (100, 0)])
    def test_non_positive(self, magic, programs, interval, iterations):
        with pytest.raises(SchedulingFailedError):
            magic.schedule_task(2, programs.crank, "check_trigger", [RECORD], interval, iterations, KEEPER)
