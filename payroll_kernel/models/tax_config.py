"""
Tax configuration tables (``payroll_kernel.models.tax_config``).

Brackets and settings per tax year, as maintained by payroll
administrators.  Read through ``payroll_config.sources.DatabaseTaxConfigSource``;
any write must be followed by ``ConfigStore.invalidate(tax_year)``.
"""

from decimal import Decimal

from sqlalchemy import Boolean, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase


class TaxBracketModel(TrackedBase):
    """One progressive income bracket; ``upper_bound`` NULL means unbounded."""

    __tablename__ = "payroll_tax_brackets"

    tax_year: Mapped[int] = mapped_column(Integer, nullable=False)
    bracket_order: Mapped[int] = mapped_column(Integer, nullable=False)
    lower_bound: Mapped[Decimal] = mapped_column(nullable=False)
    upper_bound: Mapped[Decimal | None] = mapped_column(nullable=True)
    rate: Mapped[Decimal] = mapped_column(Numeric(12, 9), nullable=False)
    base_tax: Mapped[Decimal | None] = mapped_column(nullable=True)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        UniqueConstraint("tax_year", "bracket_order", name="uq_tax_bracket_year_order"),
        Index("idx_tax_bracket_year", "tax_year"),
    )

    def __repr__(self) -> str:
        upper = self.upper_bound if self.upper_bound is not None else "inf"
        return f"<TaxBracketModel {self.tax_year}#{self.bracket_order} [{self.lower_bound}, {upper}) @ {self.rate}>"


class TaxSettingModel(TrackedBase):
    """
    A named numeric tax setting (allowance, rate, cap).

    ``is_selected`` = False switches the setting off for the year; it then
    contributes zero.
    """

    __tablename__ = "payroll_tax_settings"

    tax_year: Mapped[int] = mapped_column(Integer, nullable=False)
    setting_key: Mapped[str] = mapped_column(String(100), nullable=False)
    setting_value: Mapped[Decimal] = mapped_column(nullable=False)
    is_selected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("tax_year", "setting_key", name="uq_tax_setting_year_key"),
    )

    def __repr__(self) -> str:
        flag = "" if self.is_selected else " (off)"
        return f"<TaxSettingModel {self.tax_year} {self.setting_key}={self.setting_value}{flag}>"
