"""
Statutory Deduction Engine -- SSF, provident / saving fund, health welfare.

All figures are computed on the gross of ONE funding allocation; a
split-funded employee gets one set per allocation record.  Only income tax
is computed on combined income.

Rules:
    Social security (SSF)
        clamp(gross, ssf_min_salary, ssf_max_salary) x ssf_rate, capped
        at ssf_monthly_cap.  The employer contributes the same amount.
        Zero gross contributes zero.
    Provident fund / saving fund
        Only once probation has passed.  LOCAL_ID -> provident fund,
        LOCAL_NON_ID -> saving fund, EXPAT -> neither.  gross x rate,
        capped at the annual ceiling / 12.
    Health welfare (employee)
        Flat tier by gross from ``PayrollPolicy`` (60 / 100 / 150).
    Health welfare (employer)
        Looked up in the policy rule table by (subsidiary, residency class).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from payroll_config.schema import EmployerContributionBasis, PayrollPolicy, TaxSettings
from payroll_engines.tracer import traced_engine
from payroll_kernel.db.types import ZERO, round_money
from payroll_kernel.domain.values import Employee, ResidencyClass, Subsidiary
from payroll_kernel.logging_config import get_logger

logger = get_logger("engines.deductions")

MONTHS_PER_YEAR = Decimal("12")


@dataclass(frozen=True)
class StatutoryDeductions:
    """Monthly statutory figures for one allocation's gross."""

    gross: Decimal
    pvd_employee: Decimal
    saving_fund_employee: Decimal
    ssf_employee: Decimal
    ssf_employer: Decimal
    health_welfare_employee: Decimal
    health_welfare_employer: Decimal

    @property
    def employee_total(self) -> Decimal:
        """Employee-side deductions, excluding income tax."""
        return (
            self.pvd_employee
            + self.saving_fund_employee
            + self.ssf_employee
            + self.health_welfare_employee
        )

    @property
    def employer_total(self) -> Decimal:
        return self.ssf_employer + self.health_welfare_employer


class StatutoryDeductionCalculator:
    """Pure statutory deduction rules.  Safe to share across threads."""

    def social_security(self, gross: Decimal, settings: TaxSettings) -> Decimal:
        if gross <= ZERO:
            return ZERO
        base = min(max(gross, settings.ssf_min_salary), settings.ssf_max_salary)
        return min(round_money(base * settings.ssf_rate), settings.ssf_monthly_cap)

    def health_welfare_employee(self, gross: Decimal, policy: PayrollPolicy) -> Decimal:
        return policy.health_welfare_for(gross)

    def health_welfare_employer(
        self,
        employee_tier: Decimal,
        subsidiary: Subsidiary,
        residency_class: ResidencyClass,
        policy: PayrollPolicy,
    ) -> Decimal:
        match policy.employer_basis_for(subsidiary, residency_class):
            case EmployerContributionBasis.EMPLOYEE_TIER:
                return employee_tier
            case EmployerContributionBasis.NONE:
                return ZERO

    def provident_contribution(
        self,
        gross: Decimal,
        residency_class: ResidencyClass,
        probation_passed: bool,
        settings: TaxSettings,
    ) -> tuple[Decimal, Decimal]:
        """Return ``(pvd_employee, saving_fund_employee)``."""
        if not probation_passed or gross <= ZERO:
            return ZERO, ZERO
        match residency_class:
            case ResidencyClass.LOCAL_ID:
                monthly_cap = round_money(settings.pvd_cap / MONTHS_PER_YEAR)
                return min(round_money(gross * settings.pvd_rate), monthly_cap), ZERO
            case ResidencyClass.LOCAL_NON_ID:
                monthly_cap = round_money(settings.saving_fund_cap / MONTHS_PER_YEAR)
                return ZERO, min(round_money(gross * settings.saving_fund_rate), monthly_cap)
            case ResidencyClass.EXPAT:
                return ZERO, ZERO

    @traced_engine("statutory_deductions", "1.0", fingerprint_fields=("gross", "employee", "probation_passed"))
    def compute(
        self,
        *,
        gross: Decimal,
        employee: Employee,
        probation_passed: bool,
        settings: TaxSettings,
        policy: PayrollPolicy,
    ) -> StatutoryDeductions:
        """
        All statutory figures for one allocation's monthly gross.

        Postconditions:
            - ``ssf_employee <= settings.ssf_monthly_cap``.
            - ``ssf_employer == ssf_employee``.
        """
        ssf = self.social_security(gross, settings)
        hw_employee = self.health_welfare_employee(gross, policy)
        hw_employer = self.health_welfare_employer(
            hw_employee, employee.subsidiary, employee.residency_class, policy,
        )
        pvd, saving = self.provident_contribution(
            gross, employee.residency_class, probation_passed, settings,
        )

        result = StatutoryDeductions(
            gross=gross,
            pvd_employee=pvd,
            saving_fund_employee=saving,
            ssf_employee=ssf,
            ssf_employer=ssf,
            health_welfare_employee=hw_employee,
            health_welfare_employer=hw_employer,
        )
        logger.debug("statutory_deductions_computed", extra={
            "employee_id": str(employee.employee_id),
            "gross": str(gross),
            "ssf": str(ssf),
            "pvd": str(pvd),
            "saving_fund": str(saving),
            "health_welfare_employee": str(hw_employee),
            "health_welfare_employer": str(hw_employer),
        })
        return result
