"""
payroll_batch.domain.types -- frozen results of a bulk payroll run.

ZERO I/O.  Frozen dataclasses with enum status fields and tuples for
immutable collections.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from uuid import UUID

from payroll_kernel.domain.dtos import PayrollResult


class BulkRunStatus(str, Enum):
    """Outcome of a bulk payroll run."""

    COMPLETED = "completed"  # every employee succeeded
    PARTIALLY_COMPLETED = "partially_completed"  # some employees failed
    FAILED = "failed"  # no employee succeeded
    HALTED = "halted"  # a ComputationError stopped dispatch
    CANCELLED = "cancelled"  # request_abort() stopped dispatch


@dataclass(frozen=True)
class FailedEmployee:
    """One employee the run could not compute."""

    employee_id: UUID
    reason_code: str  # PayrollKernelError.code, or UNHANDLED_EXCEPTION
    message: str


@dataclass(frozen=True)
class BatchHalt:
    """
    Batch-level stop signal raised by a ComputationError.

    A malformed configuration would mis-compute every remaining employee,
    so the executor stops dispatching and surfaces this to the operator.
    """

    employee_id: UUID
    reason_code: str
    message: str


@dataclass(frozen=True)
class BulkPayrollResult:
    """Immutable result of ``BulkPayrollExecutor.compute_bulk_payroll()``."""

    batch_id: UUID
    pay_period: date
    status: BulkRunStatus
    succeeded: tuple[UUID, ...] = ()
    failed: tuple[FailedEmployee, ...] = ()
    skipped: tuple[UUID, ...] = ()  # never dispatched (halt or abort)
    halt: BatchHalt | None = None
    results: tuple[PayrollResult, ...] = ()
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0

    @property
    def processed_count(self) -> int:
        return len(self.succeeded) + len(self.failed)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    @property
    def total_count(self) -> int:
        return self.processed_count + len(self.skipped)

    def failure_for(self, employee_id: UUID) -> FailedEmployee | None:
        for failure in self.failed:
            if failure.employee_id == employee_id:
                return failure
        return None
