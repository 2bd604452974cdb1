"""
Allocation Salary Engine -- monthly base and per-allocation salary.

Pure functions over an ``EmploymentTerm`` snapshot and a ``PayPeriod``.

Monthly base (calendar-day pro-ration over the pay month):
    - Only days inside the employment window are paid, so a mid-month
      start or end pays the worked days only.
    - Worked days on or before the probation-pass date are paid at the
      probation salary; later days at the position salary.  Each day is
      worth ``salary / days_in_month``.
    - After 365 days of service (measured at the period closing date) the
      position salary carries a one-time 1% increment.  It never compounds.

Allocation salary:
    allocation_salary = round(monthly_base x level_of_effort, 2)

13th-month accrual:
    allocation_salary / 12 once six calendar months of service AND
    probation have both been completed by the closing date; zero before.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from payroll_engines.tracer import traced_engine
from payroll_kernel.db.types import ZERO, round_money
from payroll_kernel.domain.values import EmploymentTerm, FundingAllocation, PayPeriod, add_months
from payroll_kernel.logging_config import get_logger

logger = get_logger("engines.salary")

ANNUAL_INCREMENT_RATE = Decimal("0.01")
INCREMENT_SERVICE_DAYS = 365
THIRTEENTH_MONTH_SERVICE_MONTHS = 6


@dataclass(frozen=True)
class MonthlyBase:
    """Pro-rated monthly base with the day split that produced it."""

    amount: Decimal
    probation_days: int
    position_days: int
    days_in_month: int
    increment_applied: bool

    @property
    def worked_days(self) -> int:
        return self.probation_days + self.position_days


@dataclass(frozen=True)
class AllocationSalaryResult:
    """Salary figures for one funding allocation in one pay period."""

    allocation_id: UUID
    monthly_base: Decimal
    allocation_salary: Decimal
    thirteenth_month_accrual: Decimal
    probation_days: int
    position_days: int
    increment_applied: bool


def _days_between(first: date, last: date) -> int:
    """Inclusive day count; zero when ``last`` precedes ``first``."""
    if last < first:
        return 0
    return (last - first).days + 1


class AllocationSalaryCalculator:
    """
    Computes monthly base, LOE-weighted salary and 13th-month accrual.

    Pure: safe to share across threads.
    """

    def position_baseline(self, term: EmploymentTerm, pay_period: PayPeriod) -> tuple[Decimal, bool]:
        """Position salary with the annual increment when service qualifies."""
        salary = term.position_salary
        if salary is None:
            raise ValueError("position_salary is required")
        if term.service_days(pay_period.end) >= INCREMENT_SERVICE_DAYS:
            return salary * (Decimal("1") + ANNUAL_INCREMENT_RATE), True
        return salary, False

    def split_month(self, term: EmploymentTerm, pay_period: PayPeriod) -> MonthlyBase:
        """Pro-rate the month across probation and position days."""
        if term.start_date is None:
            raise ValueError("start_date is required")

        first = max(pay_period.start, term.start_date)
        last = pay_period.end if term.end_date is None else min(pay_period.end, term.end_date)
        baseline, increment_applied = self.position_baseline(term, pay_period)
        days = pay_period.days_in_month

        worked = _days_between(first, last)
        pass_date = term.effective_pass_probation_date
        probation_days = min(worked, _days_between(first, min(last, pass_date)))
        position_days = worked - probation_days

        probation_salary = term.effective_probation_salary
        if probation_days == 0 and position_days == days:
            amount = baseline
        elif position_days == 0 and probation_days == days:
            amount = probation_salary
        else:
            amount = (
                Decimal(probation_days) * probation_salary + Decimal(position_days) * baseline
            ) / Decimal(days)

        return MonthlyBase(
            amount=round_money(amount),
            probation_days=probation_days,
            position_days=position_days,
            days_in_month=days,
            increment_applied=increment_applied,
        )

    def compute_monthly_base(self, term: EmploymentTerm, pay_period: PayPeriod) -> Decimal:
        """Monthly base before LOE weighting, rounded to 2dp."""
        return self.split_month(term, pay_period).amount

    def thirteenth_month_eligible(self, term: EmploymentTerm, pay_period: PayPeriod) -> bool:
        if term.start_date is None:
            return False
        six_months_in = add_months(term.start_date, THIRTEENTH_MONTH_SERVICE_MONTHS)
        return six_months_in <= pay_period.end and term.probation_passed_by(pay_period.end)

    @traced_engine("allocation_salary", "1.0", fingerprint_fields=("term", "allocation", "pay_period"))
    def compute_allocation(
        self,
        *,
        term: EmploymentTerm,
        allocation: FundingAllocation,
        pay_period: PayPeriod,
    ) -> AllocationSalaryResult:
        """
        Salary attributable to ``allocation`` for ``pay_period``.

        Preconditions:
            - ``term.position_salary`` and ``term.start_date`` are set.
        Raises:
            ValueError: a required employment field is missing.
        """
        split = self.split_month(term, pay_period)
        allocation_salary = round_money(split.amount * allocation.level_of_effort)

        accrual = ZERO
        if self.thirteenth_month_eligible(term, pay_period):
            accrual = round_money(allocation_salary / Decimal("12"))

        logger.debug("allocation_salary_computed", extra={
            "allocation_id": str(allocation.allocation_id),
            "monthly_base": str(split.amount),
            "allocation_salary": str(allocation_salary),
            "probation_days": split.probation_days,
            "position_days": split.position_days,
            "increment_applied": split.increment_applied,
        })

        return AllocationSalaryResult(
            allocation_id=allocation.allocation_id,
            monthly_base=split.amount,
            allocation_salary=allocation_salary,
            thirteenth_month_accrual=accrual,
            probation_days=split.probation_days,
            position_days=split.position_days,
            increment_applied=split.increment_applied,
        )
