"""
Payroll DTOs -- immutable results crossing the service boundary.

``PayrollRecordData`` and ``AdvanceData`` mirror the persisted rows; the
ORM models convert to and from them via ``to_dto()`` / ``from_dto()``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from payroll_kernel.domain.values import FundingKind, Subsidiary


class PayrollRecordStatus(str, Enum):
    ACTIVE = "active"
    INVALIDATED = "invalidated"  # allocation dropped out of a regeneration


class AdvanceState(str, Enum):
    """Lifecycle of an inter-subsidiary advance."""

    PENDING = "pending"
    SETTLED = "settled"  # terminal, set by the external settlement workflow
    CANCELLED = "cancelled"  # terminal

    @property
    def is_terminal(self) -> bool:
        return self is not AdvanceState.PENDING


@dataclass(frozen=True)
class PayrollRecordData:
    """One allocation's payroll for one pay period."""

    record_id: UUID | None
    employee_id: UUID
    employment_id: UUID
    funding_allocation_id: UUID
    pay_period: date  # closing date of the pay month
    home_subsidiary: Subsidiary
    funding_subsidiary: Subsidiary
    funding_kind: FundingKind
    funding_reference: str
    level_of_effort: Decimal
    fte: Decimal
    monthly_base: Decimal
    gross_salary: Decimal
    compensation_refund: Decimal
    thirteenth_month_accrual: Decimal
    total_income: Decimal
    pvd_employee: Decimal
    saving_fund_employee: Decimal
    ssf_employee: Decimal
    ssf_employer: Decimal
    health_welfare_employee: Decimal
    health_welfare_employer: Decimal
    income_tax: Decimal
    total_deductions: Decimal
    net_salary: Decimal
    employer_cost: Decimal
    total_pvd_saving_fund: Decimal
    tax_year: int
    needs_review: bool = False
    status: PayrollRecordStatus = PayrollRecordStatus.ACTIVE

    @property
    def is_cross_subsidiary(self) -> bool:
        return self.funding_subsidiary != self.home_subsidiary

    def values_key(self) -> tuple:
        """Computed values only, ignoring identity (used for change detection)."""
        return (
            self.gross_salary,
            self.compensation_refund,
            self.thirteenth_month_accrual,
            self.total_income,
            self.pvd_employee,
            self.saving_fund_employee,
            self.ssf_employee,
            self.ssf_employer,
            self.health_welfare_employee,
            self.health_welfare_employer,
            self.income_tax,
            self.net_salary,
        )


@dataclass(frozen=True)
class AdvanceData:
    """A persisted inter-subsidiary advance."""

    advance_id: UUID
    payroll_record_id: UUID
    employee_id: UUID
    from_subsidiary: Subsidiary
    to_subsidiary: Subsidiary
    via_grant_id: str
    amount: Decimal
    pay_period: date
    state: AdvanceState
    advance_date: date
    settlement_date: date | None = None
    notes: str | None = None


@dataclass(frozen=True)
class AdvancePreview:
    """An advance that a run would create; never persisted."""

    funding_allocation_id: UUID
    from_subsidiary: Subsidiary
    to_subsidiary: Subsidiary
    via_grant_id: str
    amount: Decimal
    pay_period: date


@dataclass(frozen=True)
class PayrollResult:
    """Outcome of computing one employee for one pay period."""

    employee_id: UUID
    pay_period: date
    records: tuple[PayrollRecordData, ...]
    advances: tuple[AdvanceData, ...]
    annual_taxable_income: Decimal
    annual_tax: Decimal

    @property
    def needs_review(self) -> bool:
        return any(r.needs_review for r in self.records)

    @property
    def total_net_salary(self) -> Decimal:
        return sum((r.net_salary for r in self.records), Decimal("0"))
