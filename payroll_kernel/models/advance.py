"""
InterSubsidiaryAdvance persistence model (``payroll_kernel.models.advance``).

Responsibility:
    Tracks cash that a funding subsidiary owes the employing subsidiary,
    routed through the funding subsidiary's hub grant.

Invariants enforced:
    - At most one non-cancelled advance per payroll record (partial UNIQUE
      index on payroll_record_id WHERE state != 'cancelled').  Cancelled
      advances remain as history.
    - ``state`` stores the ``AdvanceState`` value; transitions are owned
      by AdvanceDetector (PENDING -> SETTLED | CANCELLED only).
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase
from payroll_kernel.db.types import round_money
from payroll_kernel.domain.dtos import AdvanceData, AdvanceState
from payroll_kernel.domain.values import Subsidiary

_LIVE_ADVANCE = text("state != 'cancelled'")


class InterSubsidiaryAdvanceModel(TrackedBase):
    """ORM model for ``AdvanceData``."""

    __tablename__ = "payroll_inter_subsidiary_advances"

    payroll_record_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_records.id"), nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(nullable=False)
    from_subsidiary: Mapped[str] = mapped_column(String(50), nullable=False)
    to_subsidiary: Mapped[str] = mapped_column(String(50), nullable=False)
    via_grant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    pay_period: Mapped[date] = mapped_column(Date, nullable=False)
    state: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AdvanceState.PENDING.value,
    )
    advance_date: Mapped[date] = mapped_column(Date, nullable=False)
    settlement_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    __table_args__ = (
        Index(
            "uq_advance_live_per_record",
            "payroll_record_id",
            unique=True,
            sqlite_where=_LIVE_ADVANCE,
            postgresql_where=_LIVE_ADVANCE,
        ),
        Index("idx_advance_period", "pay_period"),
        Index("idx_advance_state", "state"),
        Index("idx_advance_employee", "employee_id"),
    )

    def to_dto(self) -> AdvanceData:
        return AdvanceData(
            advance_id=self.id,
            payroll_record_id=self.payroll_record_id,
            employee_id=self.employee_id,
            from_subsidiary=Subsidiary(self.from_subsidiary),
            to_subsidiary=Subsidiary(self.to_subsidiary),
            via_grant_id=self.via_grant_id,
            amount=round_money(Decimal(self.amount)),
            pay_period=self.pay_period,
            state=AdvanceState(self.state),
            advance_date=self.advance_date,
            settlement_date=self.settlement_date,
            notes=self.notes,
        )

    @property
    def advance_state(self) -> AdvanceState:
        return AdvanceState(self.state)

    def __repr__(self) -> str:
        return (
            f"<InterSubsidiaryAdvanceModel {self.from_subsidiary}->{self.to_subsidiary} "
            f"via {self.via_grant_id}: {self.amount} ({self.state})>"
        )
