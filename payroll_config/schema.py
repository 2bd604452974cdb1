"""
Payroll configuration schema.

Frozen dataclasses for everything a payroll run reads from configuration:
per-year tax brackets and settings (``TaxConfig``) and the year-independent
payroll policy (health-welfare tiers, employer health-welfare rules, and the
subsidiary -> hub grant routing table).

All rates are fractions (0.05 == 5%); all amounts are THB Decimals.
"""

from __future__ import annotations

import bisect
from dataclasses import dataclass, field, fields
from decimal import Decimal
from enum import Enum

from payroll_kernel.domain.values import ResidencyClass, Subsidiary

# ---------------------------------------------------------------------------
# Tax configuration (per tax year)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TaxBracket:
    """
    Progressive bracket covering [lower_bound, upper_bound).

    ``upper_bound`` None means unbounded.  ``base_tax`` is the cumulative
    tax owed on income up to ``lower_bound``.
    """

    order: int
    lower_bound: Decimal
    upper_bound: Decimal | None
    rate: Decimal
    base_tax: Decimal

    def contains(self, income: Decimal) -> bool:
        if income < self.lower_bound:
            return False
        return self.upper_bound is None or income < self.upper_bound


@dataclass(frozen=True)
class TaxSettings:
    """Statutory deduction, allowance and contribution parameters."""

    employment_deduction_rate: Decimal
    employment_deduction_cap: Decimal
    personal_allowance: Decimal
    spouse_allowance: Decimal
    child_allowance_first: Decimal
    child_allowance_subsequent: Decimal
    ssf_rate: Decimal
    ssf_min_salary: Decimal
    ssf_max_salary: Decimal
    ssf_monthly_cap: Decimal
    pvd_rate: Decimal
    pvd_cap: Decimal  # annual ceiling
    saving_fund_rate: Decimal
    saving_fund_cap: Decimal  # annual ceiling
    parent_allowance: Decimal = Decimal("0")

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    @classmethod
    def required_field_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls) if f.name != "parent_allowance")

    def as_dict(self) -> dict[str, Decimal]:
        return {name: getattr(self, name) for name in self.field_names()}


@dataclass(frozen=True)
class TaxConfig:
    """Validated tax configuration for one tax year."""

    tax_year: int
    brackets: tuple[TaxBracket, ...]
    settings: TaxSettings
    version: int = 1
    checksum: str = ""

    def bracket_for(self, taxable_income: Decimal) -> TaxBracket:
        """Binary search on lower bounds (lower-inclusive, upper-exclusive)."""
        lowers = [b.lower_bound for b in self.brackets]
        index = bisect.bisect_right(lowers, taxable_income) - 1
        return self.brackets[max(index, 0)]

    @property
    def top_bracket(self) -> TaxBracket:
        return self.brackets[-1]


# ---------------------------------------------------------------------------
# Payroll policy (year independent)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HealthWelfareTier:
    """Flat contribution for gross strictly above ``above``."""

    above: Decimal
    amount: Decimal


class EmployerContributionBasis(str, Enum):
    EMPLOYEE_TIER = "employee_tier"  # employer matches the employee tier
    NONE = "none"


@dataclass(frozen=True)
class EmployerHealthWelfareRule:
    subsidiary: Subsidiary
    residency_classes: frozenset[ResidencyClass]
    basis: EmployerContributionBasis

    def matches(self, subsidiary: Subsidiary, residency_class: ResidencyClass) -> bool:
        return subsidiary == self.subsidiary and residency_class in self.residency_classes


@dataclass(frozen=True)
class PayrollPolicy:
    """Health-welfare tables and the inter-subsidiary routing table."""

    health_welfare_tiers: tuple[HealthWelfareTier, ...]
    health_welfare_floor: Decimal
    employer_health_welfare_rules: tuple[EmployerHealthWelfareRule, ...] = ()
    hub_grants: dict[Subsidiary, str] = field(default_factory=dict)
    checksum: str = ""

    def health_welfare_for(self, gross: Decimal) -> Decimal:
        """Highest tier whose threshold the gross exceeds; floor otherwise."""
        for tier in sorted(self.health_welfare_tiers, key=lambda t: t.above, reverse=True):
            if gross > tier.above:
                return tier.amount
        return self.health_welfare_floor

    def employer_basis_for(
        self, subsidiary: Subsidiary, residency_class: ResidencyClass,
    ) -> EmployerContributionBasis:
        for rule in self.employer_health_welfare_rules:
            if rule.matches(subsidiary, residency_class):
                return rule.basis
        return EmployerContributionBasis.NONE

    def hub_grant_for(self, subsidiary: Subsidiary) -> str | None:
        return self.hub_grants.get(subsidiary)
