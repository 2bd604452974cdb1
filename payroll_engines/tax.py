"""
Income Tax Engine -- Thai progressive personal income tax.

Pure functions with no I/O: brackets and statutory settings arrive as a
validated ``TaxConfig`` from ``ConfigStore``.

Computation order (Thai Revenue Code):
    1. employment deduction = min(income x rate, cap)
    2. personal allowances  = personal + spouse + first child
                              + subsequent children + eligible parents
    3. taxable income       = max(0, income - deduction - allowances)
    4. bracket lookup       = binary search on lower bounds
                              (lower-inclusive, upper-exclusive)
    5. annual tax           = base_tax + (taxable - lower_bound) x rate
    6. monthly tax          = annual tax / 12, ROUND_HALF_UP to 2dp

Usage:
    from payroll_engines.tax import TaxCalculator
    from payroll_kernel.domain.values import FilerProfile

    result = TaxCalculator().compute_annual_tax(
        annual_income=Decimal("360000"),
        filer_profile=FilerProfile(),
        tax_config=store.get_tax_config(2025),
    )
    print(result.annual_tax)   # 2500.00
    print(result.monthly_tax)  # 208.33
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from decimal import Decimal

from payroll_config.schema import TaxConfig, TaxSettings
from payroll_engines.tracer import traced_engine
from payroll_kernel.db.types import ZERO, round_money
from payroll_kernel.domain.values import FilerProfile
from payroll_kernel.logging_config import get_logger

logger = get_logger("engines.tax")

MONTHS_PER_YEAR = Decimal("12")


@dataclass(frozen=True)
class PersonalAllowances:
    """Allowance breakdown for one filer profile."""

    personal: Decimal
    spouse: Decimal
    children: Decimal
    parents: Decimal

    @property
    def total(self) -> Decimal:
        return self.personal + self.spouse + self.children + self.parents


@dataclass(frozen=True)
class BracketSlice:
    """Income falling inside one bracket and the tax it produced."""

    order: int
    lower_bound: Decimal
    upper_bound: Decimal | None
    rate: Decimal
    taxable_in_bracket: Decimal
    tax_in_bracket: Decimal


@dataclass(frozen=True)
class AnnualTaxResult:
    """
    Complete annual tax computation.

    ``annual_tax`` and ``monthly_tax`` are rounded to 2dp; the
    intermediate figures are exact.
    """

    tax_year: int
    annual_income: Decimal
    employment_deduction: Decimal
    allowances: PersonalAllowances
    taxable_income: Decimal
    annual_tax: Decimal
    monthly_tax: Decimal
    bracket_order: int
    marginal_rate: Decimal
    slices: tuple[BracketSlice, ...] = ()

    @property
    def total_allowances(self) -> Decimal:
        return self.allowances.total

    @property
    def effective_rate(self) -> Decimal:
        """Annual tax as a fraction of annual income."""
        if self.annual_income <= ZERO:
            return ZERO
        return self.annual_tax / self.annual_income


@dataclass(frozen=True)
class AnnualTaxReconciliation:
    """Year-end comparison of tax withheld against tax owed."""

    tax_year: int
    total_income: Decimal
    tax_liability: Decimal
    tax_paid: Decimal

    @property
    def difference(self) -> Decimal:
        """Positive when more was withheld than owed."""
        return self.tax_paid - self.tax_liability

    @property
    def refund_due(self) -> Decimal:
        return max(self.difference, ZERO)

    @property
    def additional_tax_due(self) -> Decimal:
        return max(-self.difference, ZERO)


def employment_deduction(annual_income: Decimal, settings: TaxSettings) -> Decimal:
    """Standard employment expense deduction, capped."""
    if annual_income <= ZERO:
        return ZERO
    return min(annual_income * settings.employment_deduction_rate, settings.employment_deduction_cap)


def personal_allowances(profile: FilerProfile, settings: TaxSettings) -> PersonalAllowances:
    children = ZERO
    if profile.children >= 1:
        children = settings.child_allowance_first + settings.child_allowance_subsequent * max(
            0, profile.children - 1
        )
    return PersonalAllowances(
        personal=settings.personal_allowance,
        spouse=settings.spouse_allowance if profile.has_spouse else ZERO,
        children=children,
        parents=settings.parent_allowance * profile.eligible_parents,
    )


class TaxCalculator:
    """
    Annual and monthly income tax for one filer.

    Pure: no I/O, no clock, no database.  Safe to share across threads.
    """

    @traced_engine("income_tax", "1.0", fingerprint_fields=("annual_income", "filer_profile"))
    def compute_annual_tax(
        self,
        *,
        annual_income: Decimal,
        filer_profile: FilerProfile,
        tax_config: TaxConfig,
    ) -> AnnualTaxResult:
        """
        Compute annual and monthly tax on ``annual_income``.

        Preconditions:
            - ``tax_config`` has passed ``validate_tax_config``.
        Postconditions:
            - taxable income <= 0 yields zero tax.
            - Tax is monotone non-decreasing and continuous in income.
        """
        t0 = time.monotonic()
        logger.info("tax_calculation_started", extra={
            "tax_year": tax_config.tax_year,
            "config_version": tax_config.version,
            "annual_income": str(annual_income),
        })

        settings = tax_config.settings
        deduction = employment_deduction(annual_income, settings)
        allowances = personal_allowances(filer_profile, settings)
        taxable = max(ZERO, annual_income - deduction - allowances.total)

        bracket = tax_config.bracket_for(taxable)
        if taxable <= ZERO:
            raw_tax = ZERO
        else:
            raw_tax = bracket.base_tax + (taxable - bracket.lower_bound) * bracket.rate

        annual_tax = round_money(raw_tax)
        monthly_tax = round_money(annual_tax / MONTHS_PER_YEAR)

        result = AnnualTaxResult(
            tax_year=tax_config.tax_year,
            annual_income=annual_income,
            employment_deduction=deduction,
            allowances=allowances,
            taxable_income=taxable,
            annual_tax=annual_tax,
            monthly_tax=monthly_tax,
            bracket_order=bracket.order,
            marginal_rate=bracket.rate,
            slices=self._slices(taxable, tax_config),
        )

        duration_ms = round((time.monotonic() - t0) * 1000, 2)
        logger.info("tax_calculation_completed", extra={
            "tax_year": tax_config.tax_year,
            "taxable_income": str(taxable),
            "annual_tax": str(annual_tax),
            "monthly_tax": str(monthly_tax),
            "bracket_order": bracket.order,
            "duration_ms": duration_ms,
        })
        return result

    def compute_monthly_tax(
        self,
        *,
        annual_income: Decimal,
        filer_profile: FilerProfile,
        tax_config: TaxConfig,
    ) -> Decimal:
        return self.compute_annual_tax(
            annual_income=annual_income,
            filer_profile=filer_profile,
            tax_config=tax_config,
        ).monthly_tax

    def reconcile_annual_tax(
        self,
        *,
        total_income: Decimal,
        tax_paid: Decimal,
        filer_profile: FilerProfile,
        tax_config: TaxConfig,
    ) -> AnnualTaxReconciliation:
        """Compare a year's withheld tax with the liability on its actual income."""
        liability = self.compute_annual_tax(
            annual_income=total_income,
            filer_profile=filer_profile,
            tax_config=tax_config,
        ).annual_tax
        reconciliation = AnnualTaxReconciliation(
            tax_year=tax_config.tax_year,
            total_income=total_income,
            tax_liability=liability,
            tax_paid=round_money(tax_paid),
        )
        logger.info("tax_reconciliation_completed", extra={
            "tax_year": tax_config.tax_year,
            "tax_liability": str(reconciliation.tax_liability),
            "tax_paid": str(reconciliation.tax_paid),
            "difference": str(reconciliation.difference),
        })
        return reconciliation

    @staticmethod
    def _slices(taxable: Decimal, tax_config: TaxConfig) -> tuple[BracketSlice, ...]:
        slices: list[BracketSlice] = []
        for bracket in tax_config.brackets:
            if taxable <= bracket.lower_bound:
                break
            top = taxable if bracket.upper_bound is None else min(taxable, bracket.upper_bound)
            in_bracket = top - bracket.lower_bound
            slices.append(
                BracketSlice(
                    order=bracket.order,
                    lower_bound=bracket.lower_bound,
                    upper_bound=bracket.upper_bound,
                    rate=bracket.rate,
                    taxable_in_bracket=in_bracket,
                    tax_in_bracket=round_money(in_bracket * bracket.rate),
                )
            )
        return tuple(slices)
