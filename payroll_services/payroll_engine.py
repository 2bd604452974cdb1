"""
PayrollEngine -- gross-to-net payroll for one employee and one pay period.

Responsibility:
    Loads the employee's snapshot from the HR directory, runs the pure
    engines (salary, statutory deductions, income tax), and persists one
    PayrollRecord per active funding allocation together with the
    inter-subsidiary advances those records require.

Architecture position:
    Services -- imperative shell around ``payroll_engines``.  Owns the
    per-employee transaction boundary: ONE session, ONE transaction per
    ``compute_payroll`` call.

Invariants enforced:
    - Level-of-effort fractions of the active allocations sum to 1 (within
      1e-6); otherwise nothing is computed or persisted.
    - Idempotent regeneration: records are keyed by (employment, funding
      allocation, pay period) and updated in place on re-runs.  Records
      whose allocation dropped out are INVALIDATED and their pending
      advances cancelled.
    - Income tax and the compensation refund are computed employee-wide and
      apportioned so the parts sum exactly.  Statutory deductions (SSF,
      PVD / saving fund, health welfare) use each allocation's own gross.
    - All-or-nothing: a failed employee commits no records and no advances.
    - At most one in-process computation per (employee, pay period).

Failure modes:
    - ValidationError subclasses: bad or missing HR data, missing tax year.
    - ComputationError subclasses: malformed configuration (batch-fatal).
    - PayrollComputationInProgressError: the key is already being computed.
    - DuplicatePayrollRecordError: another process wrote the key first.
    - PersistenceError: the database failed on every retry attempt.
    - SettledAdvanceConflictError: regeneration hit a settled advance.

Audit relevance:
    Structured logs carry employee_id / pay_period through LogContext;
    negative net salaries are persisted with ``needs_review`` and logged.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from payroll_config.store import ConfigStore
from payroll_engines.apportionment import apportion, apportion_with_fallback
from payroll_engines.deductions import StatutoryDeductionCalculator, StatutoryDeductions
from payroll_engines.salary import AllocationSalaryCalculator, AllocationSalaryResult
from payroll_engines.tax import AnnualTaxResult, TaxCalculator
from payroll_kernel.db.engine import get_session_factory
from payroll_kernel.db.types import ZERO, round_money
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.dtos import (
    AdvancePreview,
    PayrollRecordData,
    PayrollRecordStatus,
    PayrollResult,
)
from payroll_kernel.domain.values import (
    SYSTEM_ACTOR_ID,
    Employee,
    EmploymentTerm,
    FundingAllocation,
    PayPeriod,
)
from payroll_kernel.exceptions import (
    DuplicatePayrollRecordError,
    EmployeeNotFoundError,
    LevelOfEffortMismatchError,
    MissingEmploymentFieldError,
    NoActiveAllocationsError,
    PayrollComputationInProgressError,
    PersistenceError,
)
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_kernel.models.payroll_record import PayrollRecordModel
from payroll_services.advance_detector import AdvanceDetector
from payroll_services.directory import EmployeeDirectory
from payroll_services.locks import KeyedLockRegistry

logger = get_logger("services.payroll_engine")

LOE_TOLERANCE = Decimal("0.000001")
MONTHS_PER_YEAR = Decimal("12")
PROVIDENT_MATCH_FACTOR = Decimal("2")


@dataclass(frozen=True)
class PayrollSnapshot:
    """Everything a computation reads, captured once per employee."""

    employee: Employee
    term: EmploymentTerm
    allocations: tuple[FundingAllocation, ...]
    pay_period: PayPeriod
    compensation_refund: Decimal


@dataclass(frozen=True)
class PayrollComputation:
    """Unpersisted records plus the figures behind them, one deduction set per allocation."""

    records: tuple[PayrollRecordData, ...]
    salaries: tuple[AllocationSalaryResult, ...]
    deductions: tuple[StatutoryDeductions, ...]
    tax: AnnualTaxResult


class PayrollEngine:
    """
    Computes and persists payroll for one employee-period at a time.

    Contract:
        - ``compute_payroll()`` commits its own transaction and returns the
          persisted records and live advances.
        - ``preview_advances()`` / ``compute_preview()`` persist nothing.
        - Thread-safe: each call opens its own session, so one engine is
          shared by every bulk-run worker.

    Non-goals:
        - Does NOT retry ConcurrencyError or any ValidationError.
    """

    def __init__(
        self,
        config_store: ConfigStore,
        directory: EmployeeDirectory,
        session_factory: sessionmaker[Session] | None = None,
        clock: Clock | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
        lock_registry: KeyedLockRegistry | None = None,
        max_persist_attempts: int = 3,
        retry_backoff_seconds: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_persist_attempts < 1:
            raise ValueError("max_persist_attempts must be at least 1")
        self._config_store = config_store
        self._directory = directory
        self._session_factory = session_factory or get_session_factory()
        self._clock = clock or SystemClock()
        self._actor_id = actor_id
        self._locks = lock_registry or KeyedLockRegistry()
        self._max_attempts = max_persist_attempts
        self._backoff = retry_backoff_seconds
        self._sleep = sleep

        self._salary = AllocationSalaryCalculator()
        self._deductions = StatutoryDeductionCalculator()
        self._tax = TaxCalculator()

    @property
    def config_store(self) -> ConfigStore:
        return self._config_store

    @property
    def session_factory(self) -> sessionmaker[Session]:
        return self._session_factory

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def compute_payroll(self, employee_id: UUID, pay_period: PayPeriod | date | str) -> PayrollResult:
        """
        Compute, persist and return payroll for ``employee_id``.

        Preconditions:
            - The directory holds the employee, one active employment term
              and allocations whose LOE sums to 1 on the closing date.
        Postconditions:
            - One ACTIVE record per active allocation, committed together
              with the advances of its cross-subsidiary records.
        Raises:
            See module docstring.
        """
        period = PayPeriod.of(pay_period)
        key = (employee_id, period)

        with LogContext.bind(employee_id=employee_id, pay_period=period.code, actor_id=self._actor_id):
            with self._locks.hold(
                key,
                on_conflict=lambda: PayrollComputationInProgressError(str(employee_id), period.code),
            ):
                t0 = time.monotonic()
                logger.info("payroll_computation_started", extra={"employee_id": str(employee_id)})

                snapshot = self._load_snapshot(employee_id, period)
                computation = self._compute(snapshot)
                result = self._persist_with_retry(snapshot, computation)

                logger.info(
                    "payroll_computation_completed",
                    extra={
                        "employee_id": str(employee_id),
                        "records": len(result.records),
                        "advances": len(result.advances),
                        "total_net_salary": str(result.total_net_salary),
                        "needs_review": result.needs_review,
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                    },
                )
                return result

    def compute_preview(self, employee_id: UUID, pay_period: PayPeriod | date | str) -> PayrollComputation:
        """Run the full computation without touching storage."""
        period = PayPeriod.of(pay_period)
        with LogContext.bind(employee_id=employee_id, pay_period=period.code):
            return self._compute(self._load_snapshot(employee_id, period))

    def preview_advances(self, employee_id: UUID, pay_period: PayPeriod | date | str) -> list[AdvancePreview]:
        """Advances a run would create, computed but never persisted."""
        computation = self.compute_preview(employee_id, pay_period)
        detector = AdvanceDetector(self._config_store.policy, self._clock, self._actor_id)
        previews = detector.preview(computation.records)
        logger.info(
            "advance_preview_computed",
            extra={"employee_id": str(employee_id), "advances": len(previews)},
        )
        return previews

    # -------------------------------------------------------------------------
    # Snapshot
    # -------------------------------------------------------------------------

    def _load_snapshot(self, employee_id: UUID, period: PayPeriod) -> PayrollSnapshot:
        as_of = period.end
        employee = self._directory.get_employee(employee_id)
        if employee is None:
            raise EmployeeNotFoundError(str(employee_id))

        term = self._directory.get_employment(employee_id, as_of)
        if term is None:
            raise MissingEmploymentFieldError(str(employee_id), "employment")
        for field_name in ("position_salary", "start_date"):
            if getattr(term, field_name) is None:
                logger.warning(
                    "employment_field_missing",
                    extra={"employment_id": str(term.employment_id), "field": field_name},
                )
                raise MissingEmploymentFieldError(str(employee_id), field_name)

        allocations = tuple(
            sorted(
                (
                    a for a in self._directory.get_allocations(term.employment_id, as_of)
                    if a.is_active_on(as_of)
                ),
                key=lambda a: (a.start_date, str(a.allocation_id)),
            )
        )
        if not allocations:
            raise NoActiveAllocationsError(str(employee_id), period.code)

        total_loe = sum((a.level_of_effort for a in allocations), ZERO)
        if abs(total_loe - Decimal("1")) > LOE_TOLERANCE:
            logger.warning(
                "level_of_effort_mismatch",
                extra={"employee_id": str(employee_id), "total_loe": str(total_loe)},
            )
            raise LevelOfEffortMismatchError(str(employee_id), period.code, total_loe)

        return PayrollSnapshot(
            employee=employee,
            term=term,
            allocations=allocations,
            pay_period=period,
            compensation_refund=round_money(
                self._directory.get_compensation_refund(employee_id, period)
            ),
        )

    # -------------------------------------------------------------------------
    # Computation
    # -------------------------------------------------------------------------

    def _compute(self, snapshot: PayrollSnapshot) -> PayrollComputation:
        period = snapshot.pay_period
        employee = snapshot.employee
        term = snapshot.term
        tax_config = self._config_store.get_tax_config(period.tax_year)
        policy = self._config_store.policy

        salaries = tuple(
            self._salary.compute_allocation(term=term, allocation=a, pay_period=period)
            for a in snapshot.allocations
        )
        loe = [a.level_of_effort for a in snapshot.allocations]
        gross = [s.allocation_salary for s in salaries]
        refunds = apportion(snapshot.compensation_refund, loe)
        total_income = [
            g + r + s.thirteenth_month_accrual for g, r, s in zip(gross, refunds, salaries)
        ]

        probation_passed = term.probation_passed_by(period.end)
        deductions = tuple(
            self._deductions.compute(
                gross=g,
                employee=employee,
                probation_passed=probation_passed,
                settings=tax_config.settings,
                policy=policy,
            )
            for g in gross
        )

        tax = self._tax.compute_annual_tax(
            annual_income=sum(total_income, ZERO) * MONTHS_PER_YEAR,
            filer_profile=employee.filer_profile,
            tax_config=tax_config,
        )
        income_tax = apportion_with_fallback(
            tax.monthly_tax, [max(t, ZERO) for t in total_income], loe,
        )

        records: list[PayrollRecordData] = []
        for i, allocation in enumerate(snapshot.allocations):
            d = deductions[i]
            total_deductions = d.employee_total + income_tax[i]
            net = total_income[i] - total_deductions
            records.append(
                PayrollRecordData(
                    record_id=None,
                    employee_id=employee.employee_id,
                    employment_id=term.employment_id,
                    funding_allocation_id=allocation.allocation_id,
                    pay_period=period.end,
                    home_subsidiary=employee.subsidiary,
                    funding_subsidiary=allocation.funding_subsidiary,
                    funding_kind=allocation.funding.kind,
                    funding_reference=allocation.funding.reference,
                    level_of_effort=allocation.level_of_effort,
                    fte=term.fte,
                    monthly_base=salaries[i].monthly_base,
                    gross_salary=gross[i],
                    compensation_refund=refunds[i],
                    thirteenth_month_accrual=salaries[i].thirteenth_month_accrual,
                    total_income=total_income[i],
                    pvd_employee=d.pvd_employee,
                    saving_fund_employee=d.saving_fund_employee,
                    ssf_employee=d.ssf_employee,
                    ssf_employer=d.ssf_employer,
                    health_welfare_employee=d.health_welfare_employee,
                    health_welfare_employer=d.health_welfare_employer,
                    income_tax=income_tax[i],
                    total_deductions=total_deductions,
                    net_salary=net,
                    employer_cost=total_income[i] + d.employer_total,
                    total_pvd_saving_fund=(d.pvd_employee + d.saving_fund_employee) * PROVIDENT_MATCH_FACTOR,
                    tax_year=period.tax_year,
                    needs_review=net < ZERO,
                )
            )
            if net < ZERO:
                logger.warning(
                    "negative_net_salary",
                    extra={
                        "employee_id": str(employee.employee_id),
                        "funding_allocation_id": str(allocation.allocation_id),
                        "net_salary": str(net),
                    },
                )

        return PayrollComputation(
            records=tuple(records),
            salaries=salaries,
            deductions=deductions,
            tax=tax,
        )

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _persist_with_retry(
        self, snapshot: PayrollSnapshot, computation: PayrollComputation,
    ) -> PayrollResult:
        employee_id = snapshot.employee.employee_id
        last_error = ""
        for attempt in range(1, self._max_attempts + 1):
            try:
                return self._persist(snapshot, computation)
            except IntegrityError as exc:
                logger.warning(
                    "payroll_record_conflict",
                    extra={"employee_id": str(employee_id), "error": str(exc.orig)},
                )
                raise DuplicatePayrollRecordError(
                    str(employee_id), snapshot.pay_period.code,
                ) from exc
            except (OperationalError, DBAPIError) as exc:
                last_error = str(exc.orig) if exc.orig is not None else str(exc)
                logger.warning(
                    "payroll_persist_retry",
                    extra={
                        "employee_id": str(employee_id),
                        "attempt": attempt,
                        "max_attempts": self._max_attempts,
                        "error": last_error,
                    },
                )
                if attempt < self._max_attempts:
                    self._sleep(self._backoff * attempt)

        logger.error(
            "payroll_persist_failed",
            extra={"employee_id": str(employee_id), "attempts": self._max_attempts},
        )
        raise PersistenceError(str(employee_id), self._max_attempts, last_error)

    def _persist(self, snapshot: PayrollSnapshot, computation: PayrollComputation) -> PayrollResult:
        period = snapshot.pay_period
        employee_id = snapshot.employee.employee_id
        detector = AdvanceDetector(self._config_store.policy, self._clock, self._actor_id)
        now = self._clock.now()

        with self._session_factory() as session, session.begin():
            # Keyed by employee so rows of a superseded employment term are
            # invalidated too.
            existing = {
                (row.employment_id, row.funding_allocation_id): row
                for row in session.execute(
                    select(PayrollRecordModel).where(
                        PayrollRecordModel.employee_id == employee_id,
                        PayrollRecordModel.pay_period == period.end,
                    )
                ).scalars()
            }

            rows: list[PayrollRecordModel] = []
            for dto in computation.records:
                row = existing.pop((dto.employment_id, dto.funding_allocation_id), None)
                if row is None:
                    row = PayrollRecordModel.from_dto(dto, created_by_id=self._actor_id)
                    row.created_at = now
                    row.updated_at = now
                    session.add(row)
                    action = "created"
                else:
                    row.apply_values(dto)
                    row.updated_at = now
                    row.updated_by_id = self._actor_id
                    action = "updated"
                rows.append(row)
                logger.debug(
                    "payroll_record_staged",
                    extra={"funding_allocation_id": str(dto.funding_allocation_id), "action": action},
                )
            session.flush()

            for stale in existing.values():
                if stale.status == PayrollRecordStatus.INVALIDATED.value:
                    continue
                stale.status = PayrollRecordStatus.INVALIDATED.value
                stale.updated_at = now
                stale.updated_by_id = self._actor_id
                detector.cancel_for_record(session, stale.id, reason="allocation no longer active")
                logger.info(
                    "payroll_record_invalidated",
                    extra={
                        "payroll_record_id": str(stale.id),
                        "employment_id": str(stale.employment_id),
                        "funding_allocation_id": str(stale.funding_allocation_id),
                    },
                )
            session.flush()

            records = tuple(row.to_dto() for row in rows)
            advances = tuple(detector.detect_advances(session, employee_id, period, records))

        logger.info(
            "payroll_record_persisted",
            extra={
                "employee_id": str(employee_id),
                "records": len(records),
                "advances": len(advances),
            },
        )
        return PayrollResult(
            employee_id=employee_id,
            pay_period=period.end,
            records=records,
            advances=advances,
            annual_taxable_income=computation.tax.taxable_income,
            annual_tax=computation.tax.annual_tax,
        )

