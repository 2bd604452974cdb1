"""
PayrollReportingService -- read-only views over persisted payroll.

Only ACTIVE payroll records and non-cancelled advances are counted;
invalidated records and cancelled advances are history.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from payroll_config.store import ConfigStore
from payroll_engines.tax import AnnualTaxReconciliation, TaxCalculator
from payroll_kernel.db.types import ZERO
from payroll_kernel.domain.dtos import AdvanceData, AdvanceState, PayrollRecordData, PayrollRecordStatus
from payroll_kernel.domain.values import FilerProfile, PayPeriod
from payroll_kernel.logging_config import get_logger
from payroll_kernel.models.advance import InterSubsidiaryAdvanceModel
from payroll_kernel.models.payroll_record import PayrollRecordModel

logger = get_logger("services.reporting")


def _total(records: tuple[PayrollRecordData, ...], name: str) -> Decimal:
    return sum((getattr(r, name) for r in records), ZERO)


@dataclass(frozen=True)
class EmployeePayrollSummary:
    """One employee's payroll for one period, totalled across allocations."""

    employee_id: UUID
    pay_period: date
    records: tuple[PayrollRecordData, ...]

    @property
    def allocation_count(self) -> int:
        return len(self.records)

    @property
    def gross_salary(self) -> Decimal:
        return _total(self.records, "gross_salary")

    @property
    def compensation_refund(self) -> Decimal:
        return _total(self.records, "compensation_refund")

    @property
    def thirteenth_month_accrual(self) -> Decimal:
        return _total(self.records, "thirteenth_month_accrual")

    @property
    def total_income(self) -> Decimal:
        return _total(self.records, "total_income")

    @property
    def provident_fund_employee(self) -> Decimal:
        return _total(self.records, "pvd_employee") + _total(self.records, "saving_fund_employee")

    @property
    def ssf_employee(self) -> Decimal:
        return _total(self.records, "ssf_employee")

    @property
    def ssf_employer(self) -> Decimal:
        return _total(self.records, "ssf_employer")

    @property
    def health_welfare_employee(self) -> Decimal:
        return _total(self.records, "health_welfare_employee")

    @property
    def health_welfare_employer(self) -> Decimal:
        return _total(self.records, "health_welfare_employer")

    @property
    def income_tax(self) -> Decimal:
        return _total(self.records, "income_tax")

    @property
    def net_salary(self) -> Decimal:
        return _total(self.records, "net_salary")

    @property
    def employer_cost(self) -> Decimal:
        return _total(self.records, "employer_cost")

    @property
    def total_pvd_saving_fund(self) -> Decimal:
        return _total(self.records, "total_pvd_saving_fund")

    @property
    def needs_review(self) -> bool:
        return any(r.needs_review for r in self.records)


@dataclass(frozen=True)
class PayrollStatistics:
    """Aggregate payroll and advance figures for a date range."""

    start_date: date
    end_date: date
    record_count: int
    employee_count: int
    total_gross_salary: Decimal
    total_net_salary: Decimal
    total_deductions: Decimal
    total_employer_cost: Decimal
    total_employer_contributions: Decimal
    records_needing_review: int
    advance_count: int
    total_advance_amount: Decimal
    pending_settlements: int
    advances_by_subsidiary: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class AnnualTaxSummary:
    """Withheld tax for a year reconciled against the annual liability."""

    employee_id: UUID
    tax_year: int
    months_paid: int
    reconciliation: AnnualTaxReconciliation


class PayrollReportingService:
    """Queries over payroll records and advances.  Never writes."""

    def __init__(self, session_factory: sessionmaker[Session], tax_calculator: TaxCalculator | None = None):
        self._session_factory = session_factory
        self._tax = tax_calculator or TaxCalculator()

    def employee_records(self, employee_id: UUID, pay_period: PayPeriod | date | str) -> tuple[PayrollRecordData, ...]:
        period = PayPeriod.of(pay_period)
        with self._session_factory() as session:
            rows = session.execute(
                select(PayrollRecordModel)
                .where(
                    PayrollRecordModel.employee_id == employee_id,
                    PayrollRecordModel.pay_period == period.end,
                    PayrollRecordModel.status == PayrollRecordStatus.ACTIVE.value,
                )
                .order_by(PayrollRecordModel.created_at, PayrollRecordModel.id)
            ).scalars().all()
            return tuple(row.to_dto() for row in rows)

    def employee_advances(self, employee_id: UUID, pay_period: PayPeriod | date | str) -> tuple[AdvanceData, ...]:
        """Every advance of the employee for the period, cancelled ones included."""
        period = PayPeriod.of(pay_period)
        with self._session_factory() as session:
            rows = session.execute(
                select(InterSubsidiaryAdvanceModel)
                .where(
                    InterSubsidiaryAdvanceModel.employee_id == employee_id,
                    InterSubsidiaryAdvanceModel.pay_period == period.end,
                )
                .order_by(InterSubsidiaryAdvanceModel.created_at, InterSubsidiaryAdvanceModel.id)
            ).scalars().all()
            return tuple(row.to_dto() for row in rows)

    def employee_payroll_summary(self, employee_id: UUID, pay_period: PayPeriod | date | str) -> EmployeePayrollSummary:
        period = PayPeriod.of(pay_period)
        return EmployeePayrollSummary(
            employee_id=employee_id,
            pay_period=period.end,
            records=self.employee_records(employee_id, period),
        )

    def payroll_statistics(self, start_date: date, end_date: date) -> PayrollStatistics:
        """
        Totals for records with a pay period in [start_date, end_date] and
        live advances dated in the same range.
        """
        if end_date < start_date:
            raise ValueError("end_date precedes start_date")

        with self._session_factory() as session:
            records = [
                row.to_dto()
                for row in session.execute(
                    select(PayrollRecordModel).where(
                        PayrollRecordModel.pay_period >= start_date,
                        PayrollRecordModel.pay_period <= end_date,
                        PayrollRecordModel.status == PayrollRecordStatus.ACTIVE.value,
                    )
                ).scalars()
            ]
            advances = [
                row.to_dto()
                for row in session.execute(
                    select(InterSubsidiaryAdvanceModel).where(
                        InterSubsidiaryAdvanceModel.advance_date >= start_date,
                        InterSubsidiaryAdvanceModel.advance_date <= end_date,
                        InterSubsidiaryAdvanceModel.state != AdvanceState.CANCELLED.value,
                    )
                ).scalars()
            ]

        stats = PayrollStatistics(
            start_date=start_date,
            end_date=end_date,
            record_count=len(records),
            employee_count=len({r.employee_id for r in records}),
            total_gross_salary=sum((r.gross_salary for r in records), ZERO),
            total_net_salary=sum((r.net_salary for r in records), ZERO),
            total_deductions=sum((r.total_deductions for r in records), ZERO),
            total_employer_cost=sum((r.employer_cost for r in records), ZERO),
            total_employer_contributions=sum(
                (r.ssf_employer + r.health_welfare_employer for r in records), ZERO,
            ),
            records_needing_review=sum(1 for r in records if r.needs_review),
            advance_count=len(advances),
            total_advance_amount=sum((a.amount for a in advances), ZERO),
            pending_settlements=sum(1 for a in advances if a.state is AdvanceState.PENDING),
            advances_by_subsidiary=dict(Counter(a.from_subsidiary.value for a in advances)),
        )
        logger.info(
            "payroll_statistics_computed",
            extra={
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
                "records": stats.record_count,
                "advances": stats.advance_count,
            },
        )
        return stats

    def annual_tax_summary(
        self,
        employee_id: UUID,
        tax_year: int,
        filer_profile: FilerProfile,
        config_store: ConfigStore,
    ) -> AnnualTaxSummary:
        """Reconcile the tax withheld across ``tax_year`` with the year's liability."""
        with self._session_factory() as session:
            records = [
                row.to_dto()
                for row in session.execute(
                    select(PayrollRecordModel).where(
                        PayrollRecordModel.employee_id == employee_id,
                        PayrollRecordModel.tax_year == tax_year,
                        PayrollRecordModel.status == PayrollRecordStatus.ACTIVE.value,
                    )
                ).scalars()
            ]

        reconciliation = self._tax.reconcile_annual_tax(
            total_income=sum((r.total_income for r in records), ZERO),
            tax_paid=sum((r.income_tax for r in records), ZERO),
            filer_profile=filer_profile,
            tax_config=config_store.get_tax_config(tax_year),
        )
        return AnnualTaxSummary(
            employee_id=employee_id,
            tax_year=tax_year,
            months_paid=len({r.pay_period for r in records}),
            reconciliation=reconciliation,
        )
