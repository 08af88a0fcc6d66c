"""
Instruction Runtime

Single entry point for submitting engine operations. An ``Instruction``
names a program, one of its operations, keyword arguments and the domain it
is submitted to. ``Runtime.process`` dispatches it, converts engine errors
into a failed ``ExecResult`` and reports the events the operation emitted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..exceptions import ErrorKind, GhostBridgeError
from .bridge import GhostBridgeProgram
from .crank import GhostCrankProgram
from .events import Event
from .ledger import Domain, Ledger, ScheduledTask

logger = logging.getLogger(__name__)


BRIDGE = "bridge"
CRANK = "crank"

OPERATIONS: Dict[str, frozenset] = {
    BRIDGE: frozenset({
        "init_executor",
        "delegate_executor",
        "undelegate_executor",
        "authorize_executor",
        "create_compressed_order",
        "consume_and_execute",
        "create_encrypted_order",
        "delegate_encrypted_order",
        "check_price_update",
        "trigger_and_execute",
        "cancel_encrypted_order",
        "close_encrypted_order",
        "schedule_encrypted_monitoring",
    }),
    CRANK: frozenset({
        "create_ghost_order",
        "delegate_order",
        "activate_order",
        "check_trigger",
        "mark_ready",
        "execute_with_commitment",
        "cancel_order",
        "expire_stale",
        "schedule_monitoring",
    }),
}


@dataclass(frozen=True)
class Instruction:
    program: str
    operation: str
    args: Dict[str, Any] = field(default_factory=dict)
    domain: Domain = Domain.BASE


class ExecResult:
    """Result of processing a single instruction."""

    __slots__ = ("success", "data", "error", "error_kind", "detail", "events")

    def __init__(
        self,
        success: bool = True,
        data: Any = None,
        error: str = "",
        error_kind: Optional[ErrorKind] = None,
        detail: str = "",
        events: Optional[List[Event]] = None,
    ):
        self.success = success
        self.data = data
        self.error = error
        self.error_kind = error_kind
        self.detail = detail
        self.events = events or []

    def __repr__(self) -> str:
        if self.success:
            return f"ExecResult(success=True, events={[e.name for e in self.events]})"
        return f"ExecResult(success=False, error={self.error!r})"


class Runtime:
    """Dispatches instructions to the bridge and crank programs."""

    def __init__(self, ledger: Ledger, bridge: GhostBridgeProgram, crank: GhostCrankProgram):
        self.ledger = ledger
        self._programs = {BRIDGE: bridge, CRANK: crank}

    @property
    def bridge(self) -> GhostBridgeProgram:
        return self._programs[BRIDGE]

    @property
    def crank(self) -> GhostCrankProgram:
        return self._programs[CRANK]

    def process(self, ix: Instruction) -> ExecResult:
        """
        Execute one instruction in its domain.

        Engine errors never escape: the operation's atomic unit has already
        been rolled back when the failed result is returned.
        """
        program = self._programs.get(ix.program)
        if program is None:
            return ExecResult(success=False, error=f"Unknown program: {ix.program}")
        if ix.operation not in OPERATIONS[ix.program]:
            return ExecResult(success=False, error=f"Unknown operation: {ix.program}.{ix.operation}")

        handler = getattr(program, ix.operation)
        start = len(self.ledger.events)
        try:
            with self.ledger.in_domain(ix.domain):
                data = handler(**ix.args)
        except GhostBridgeError as e:
            logger.warning("%s.%s rejected: %s", ix.program, ix.operation, e)
            return ExecResult(success=False, error=e.code, error_kind=e.kind, detail=e.detail)

        return ExecResult(success=True, data=data, events=list(self.ledger.events[start:]))

    # -- Scheduled tasks ----------------------------------------------------

    def task_instruction(self, task: ScheduledTask) -> Instruction:
        """Build the low-latency instruction for one run of a scheduled task."""
        if task.program_id == self.bridge.program_id:
            program = BRIDGE
        elif task.program_id == self.crank.program_id:
            program = CRANK
        else:
            raise ValueError(f"Task {task.task_id} targets an unknown program")
        order, feed = task.accounts[:2]
        return Instruction(program, task.operation, {"order": order, "feed": feed}, Domain.EPHEMERAL)

    def due_tasks(self) -> List[ScheduledTask]:
        now_ms = self.ledger.clock.unix_timestamp * 1000
        return sorted(
            (t for t in self.ledger.tasks.values() if not t.exhausted and t.next_run_ms <= now_ms),
            key=lambda t: (t.next_run_ms, t.task_id),
        )

    def run_task(self, task: ScheduledTask) -> ExecResult:
        """Run a scheduled task once and advance its schedule, whatever the outcome."""
        result = self.process(self.task_instruction(task))
        # a rollback replaces the task table
        task = self.ledger.tasks.get(task.task_id, task)
        task.runs += 1
        task.iterations_left -= 1
        task.next_run_ms += task.interval_ms
        if task.exhausted:
            logger.info("Task %d finished after %d run(s)", task.task_id, task.runs)
        return result
