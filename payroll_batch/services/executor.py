"""
BulkPayrollExecutor -- bounded parallel payroll for many employees.

Contract:
    Dispatches ``PayrollEngine.compute_payroll`` for each employee to a
    bounded thread pool.  Each employee is its own unit of work with its
    own session; the executor never opens a transaction itself.

Architecture: payroll_batch/services.  Imports from payroll_batch.domain,
    payroll_services and the kernel.

Invariants enforced:
    - Failure containment: one employee's ValidationError, ConcurrencyError,
      PersistenceError or unexpected exception is recorded as a failed
      entry and never aborts the batch.
    - Halt on ComputationError: a malformed configuration stops dispatch
      and produces a ``BatchHalt``; employees already in flight finish and
      commit, undispatched employees are reported as skipped.
    - ``request_abort()`` stops dispatch the same way, without a halt.
    - Worker count defaults to the connection pool size.
    - All timestamps come from the injected Clock.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from datetime import date
from uuid import UUID, uuid4

from payroll_batch.domain.types import BatchHalt, BulkPayrollResult, BulkRunStatus, FailedEmployee
from payroll_kernel.db.engine import recommended_worker_count
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.dtos import PayrollResult
from payroll_kernel.domain.values import PayPeriod
from payroll_kernel.exceptions import ComputationError, PayrollKernelError
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_services.payroll_engine import PayrollEngine

logger = get_logger("batch.executor")

UNHANDLED_EXCEPTION = "UNHANDLED_EXCEPTION"


class BulkPayrollExecutor:
    """Bulk payroll runner with per-employee isolation.

    Contract:
        - ``compute_bulk_payroll()`` returns once every dispatched employee
          has finished.
        - ``request_abort()`` may be called from any thread.
        - ``on_complete`` receives the final ``BulkPayrollResult``.

    Non-goals:
        - Does NOT retry failed employees; PayrollEngine already retries
          transient persistence failures.
    """

    def __init__(
        self,
        payroll_engine: PayrollEngine,
        max_workers: int | None = None,
        clock: Clock | None = None,
        on_complete: Callable[[BulkPayrollResult], None] | None = None,
    ):
        if max_workers is not None and max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._engine = payroll_engine
        self._max_workers = max_workers
        self._clock = clock or SystemClock()
        self._on_complete = on_complete
        self._abort = threading.Event()

    def request_abort(self) -> None:
        """Stop dispatching new employees; in-flight employees finish."""
        self._abort.set()
        logger.warning("bulk_payroll_abort_requested")

    @property
    def abort_requested(self) -> bool:
        return self._abort.is_set()

    def worker_count(self) -> int:
        if self._max_workers is not None:
            return self._max_workers
        bind = self._engine.session_factory.kw.get("bind")
        return recommended_worker_count(bind)

    # -------------------------------------------------------------------------
    # Execute
    # -------------------------------------------------------------------------

    def compute_bulk_payroll(
        self,
        employee_ids: Iterable[UUID],
        pay_period: PayPeriod | date | str,
    ) -> BulkPayrollResult:
        """Compute payroll for every employee in ``employee_ids``."""
        period = PayPeriod.of(pay_period)
        batch_id = uuid4()
        self._abort.clear()

        pending = list(dict.fromkeys(employee_ids))
        workers = self.worker_count()
        start_time = time.monotonic()
        started_at = self._clock.now()

        succeeded: list[UUID] = []
        results: list[PayrollResult] = []
        failed: list[FailedEmployee] = []
        halt: BatchHalt | None = None

        with LogContext.bind(batch_id=batch_id, pay_period=period.code):
            logger.info(
                "bulk_payroll_started",
                extra={"employees": len(pending), "workers": workers},
            )

            in_flight: dict[Future, UUID] = {}
            next_index = 0
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="payroll") as pool:
                while True:
                    while (
                        next_index < len(pending)
                        and len(in_flight) < workers
                        and halt is None
                        and not self._abort.is_set()
                    ):
                        employee_id = pending[next_index]
                        next_index += 1
                        future = pool.submit(self._run_one, batch_id, employee_id, period)
                        in_flight[future] = employee_id

                    if not in_flight:
                        break

                    done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                    for future in done:
                        employee_id = in_flight.pop(future)
                        outcome = self._collect(future, employee_id)
                        match outcome:
                            case PayrollResult():
                                succeeded.append(employee_id)
                                results.append(outcome)
                            case BatchHalt():
                                failed.append(
                                    FailedEmployee(employee_id, outcome.reason_code, outcome.message)
                                )
                                if halt is None:
                                    halt = outcome
                            case FailedEmployee():
                                failed.append(outcome)

            skipped = tuple(pending[next_index:])
            status = self._final_status(
                succeeded=len(succeeded), failed=len(failed), halted=halt is not None, skipped=len(skipped),
            )
            result = BulkPayrollResult(
                batch_id=batch_id,
                pay_period=period.end,
                status=status,
                succeeded=tuple(succeeded),
                failed=tuple(failed),
                skipped=skipped,
                halt=halt,
                results=tuple(results),
                started_at=started_at,
                completed_at=self._clock.now(),
                duration_ms=int((time.monotonic() - start_time) * 1000),
            )

            logger.info(
                "bulk_payroll_completed",
                extra={
                    "status": status.value,
                    "succeeded": len(succeeded),
                    "failed": len(failed),
                    "skipped": len(skipped),
                    "duration_ms": result.duration_ms,
                },
            )

        if self._on_complete is not None:
            self._on_complete(result)
        return result

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _run_one(self, batch_id: UUID, employee_id: UUID, period: PayPeriod) -> PayrollResult:
        # Worker threads do not inherit the dispatcher's ContextVars.
        with LogContext.bind(batch_id=batch_id, pay_period=period.code):
            return self._engine.compute_payroll(employee_id, period)

    def _collect(self, future: Future, employee_id: UUID) -> PayrollResult | BatchHalt | FailedEmployee:
        try:
            return future.result()
        except ComputationError as exc:
            logger.critical(
                "operator_alert",
                extra={
                    "alert": "bulk_payroll_halted",
                    "employee_id": str(employee_id),
                    "reason_code": exc.code,
                    "error": str(exc),
                },
            )
            return BatchHalt(employee_id=employee_id, reason_code=exc.code, message=str(exc))
        except PayrollKernelError as exc:
            logger.warning(
                "bulk_payroll_employee_failed",
                extra={"employee_id": str(employee_id), "reason_code": exc.code, "error": str(exc)},
            )
            return FailedEmployee(employee_id=employee_id, reason_code=exc.code, message=str(exc))
        except Exception as exc:
            logger.exception(
                "bulk_payroll_employee_crashed",
                extra={"employee_id": str(employee_id), "error": str(exc)},
            )
            return FailedEmployee(employee_id=employee_id, reason_code=UNHANDLED_EXCEPTION, message=str(exc))

    def _final_status(self, *, succeeded: int, failed: int, halted: bool, skipped: int) -> BulkRunStatus:
        if halted:
            return BulkRunStatus.HALTED
        if self._abort.is_set() and skipped:
            return BulkRunStatus.CANCELLED
        if failed == 0:
            return BulkRunStatus.COMPLETED
        if succeeded == 0:
            return BulkRunStatus.FAILED
        return BulkRunStatus.PARTIALLY_COMPLETED
