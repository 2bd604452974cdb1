"""
PayrollRecord persistence model (``payroll_kernel.models.payroll_record``).

Responsibility:
    One row per (employment, funding allocation, pay period) holding the
    complete gross-to-net computation for that allocation.

Invariants enforced:
    - UNIQUE (employment_id, funding_allocation_id, pay_period): a
      regeneration updates the existing row in place, never inserts a
      second one.  A concurrent writer that slips past the in-process lock
      hits this constraint and is reported as a ConcurrencyError.
    - All monetary fields are Decimal (Numeric(38,9)), rounded to 2dp on
      the way out through ``to_dto()``.
    - Negative net salary is stored as computed, with ``needs_review`` set.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase
from payroll_kernel.db.types import round_money
from payroll_kernel.domain.dtos import PayrollRecordData, PayrollRecordStatus
from payroll_kernel.domain.values import FundingKind, Subsidiary

_MONEY_FIELDS = (
    "monthly_base",
    "gross_salary",
    "compensation_refund",
    "thirteenth_month_accrual",
    "total_income",
    "pvd_employee",
    "saving_fund_employee",
    "ssf_employee",
    "ssf_employer",
    "health_welfare_employee",
    "health_welfare_employer",
    "income_tax",
    "total_deductions",
    "net_salary",
    "employer_cost",
    "total_pvd_saving_fund",
)


class PayrollRecordModel(TrackedBase):
    """
    ORM model for ``PayrollRecordData``.

    Contract:
        Written only by PayrollEngine inside the per-employee unit of work.
        ``apply_values()`` overwrites the computed columns of an existing
        row; identity columns never change after insert.
    """

    __tablename__ = "payroll_records"

    employee_id: Mapped[UUID] = mapped_column(nullable=False)
    employment_id: Mapped[UUID] = mapped_column(nullable=False)
    funding_allocation_id: Mapped[UUID] = mapped_column(nullable=False)
    pay_period: Mapped[date] = mapped_column(Date, nullable=False)
    tax_year: Mapped[int] = mapped_column(Integer, nullable=False)

    home_subsidiary: Mapped[str] = mapped_column(String(50), nullable=False)
    funding_subsidiary: Mapped[str] = mapped_column(String(50), nullable=False)
    funding_kind: Mapped[str] = mapped_column(String(50), nullable=False)
    funding_reference: Mapped[str] = mapped_column(String(100), nullable=False)
    level_of_effort: Mapped[Decimal] = mapped_column(Numeric(12, 9), nullable=False)
    fte: Mapped[Decimal] = mapped_column(Numeric(12, 9), nullable=False)

    monthly_base: Mapped[Decimal] = mapped_column(nullable=False)
    gross_salary: Mapped[Decimal] = mapped_column(nullable=False)
    compensation_refund: Mapped[Decimal] = mapped_column(nullable=False)
    thirteenth_month_accrual: Mapped[Decimal] = mapped_column(nullable=False)
    total_income: Mapped[Decimal] = mapped_column(nullable=False)
    pvd_employee: Mapped[Decimal] = mapped_column(nullable=False)
    saving_fund_employee: Mapped[Decimal] = mapped_column(nullable=False)
    ssf_employee: Mapped[Decimal] = mapped_column(nullable=False)
    ssf_employer: Mapped[Decimal] = mapped_column(nullable=False)
    health_welfare_employee: Mapped[Decimal] = mapped_column(nullable=False)
    health_welfare_employer: Mapped[Decimal] = mapped_column(nullable=False)
    income_tax: Mapped[Decimal] = mapped_column(nullable=False)
    total_deductions: Mapped[Decimal] = mapped_column(nullable=False)
    net_salary: Mapped[Decimal] = mapped_column(nullable=False)
    employer_cost: Mapped[Decimal] = mapped_column(nullable=False)
    total_pvd_saving_fund: Mapped[Decimal] = mapped_column(nullable=False)

    needs_review: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PayrollRecordStatus.ACTIVE.value,
    )

    __table_args__ = (
        UniqueConstraint(
            "employment_id", "funding_allocation_id", "pay_period",
            name="uq_payroll_record_allocation_period",
        ),
        Index("idx_payroll_record_employee_period", "employee_id", "pay_period"),
        Index("idx_payroll_record_period", "pay_period"),
        Index("idx_payroll_record_review", "needs_review"),
    )

    def to_dto(self) -> PayrollRecordData:
        money = {name: round_money(Decimal(getattr(self, name))) for name in _MONEY_FIELDS}
        return PayrollRecordData(
            record_id=self.id,
            employee_id=self.employee_id,
            employment_id=self.employment_id,
            funding_allocation_id=self.funding_allocation_id,
            pay_period=self.pay_period,
            home_subsidiary=Subsidiary(self.home_subsidiary),
            funding_subsidiary=Subsidiary(self.funding_subsidiary),
            funding_kind=FundingKind(self.funding_kind),
            funding_reference=self.funding_reference,
            level_of_effort=Decimal(self.level_of_effort).normalize(),
            fte=Decimal(self.fte).normalize(),
            tax_year=self.tax_year,
            needs_review=bool(self.needs_review),
            status=PayrollRecordStatus(self.status),
            **money,
        )

    @classmethod
    def from_dto(cls, dto: PayrollRecordData, created_by_id: UUID) -> "PayrollRecordModel":
        model = cls(
            employee_id=dto.employee_id,
            employment_id=dto.employment_id,
            funding_allocation_id=dto.funding_allocation_id,
            pay_period=dto.pay_period,
            created_by_id=created_by_id,
        )
        if dto.record_id is not None:
            model.id = dto.record_id
        model.apply_values(dto)
        return model

    def apply_values(self, dto: PayrollRecordData) -> None:
        """Overwrite the computed columns with ``dto``'s values."""
        self.tax_year = dto.tax_year
        self.home_subsidiary = dto.home_subsidiary.value
        self.funding_subsidiary = dto.funding_subsidiary.value
        self.funding_kind = dto.funding_kind.value
        self.funding_reference = dto.funding_reference
        self.level_of_effort = dto.level_of_effort
        self.fte = dto.fte
        for name in _MONEY_FIELDS:
            setattr(self, name, getattr(dto, name))
        self.needs_review = dto.needs_review
        self.status = dto.status.value

    def __repr__(self) -> str:
        return (
            f"<PayrollRecordModel {self.employment_id}/{self.funding_allocation_id} "
            f"{self.pay_period}: net={self.net_salary} ({self.status})>"
        )
