"""
Tests for statutory deductions.

Covers:
- Social security clamp, rate and monthly cap
- Health-welfare employee tiers and employer rules
- Provident fund / saving fund by residency class and probation
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from payroll_engines.deductions import StatutoryDeductionCalculator
from payroll_kernel.domain.values import Employee, ResidencyClass, Subsidiary


class TestSocialSecurity:
    def setup_method(self):
        self.calculator = StatutoryDeductionCalculator()

    @pytest.mark.parametrize("gross, expected", [
        ("10000", "500.00"),
        ("15000", "750.00"),
        ("80000", "750.00"),
        ("1000", "82.50"),  # clamped up to the minimum base
        ("0", "0"),
    ])
    def test_contribution(self, tax_config_2025, gross, expected):
        assert self.calculator.social_security(Decimal(gross), tax_config_2025.settings) == Decimal(expected)

    def test_never_exceeds_cap(self, tax_config_2025):
        settings = tax_config_2025.settings
        for gross in ("14999.99", "15000.01", "250000", "9999999"):
            assert self.calculator.social_security(Decimal(gross), settings) <= settings.ssf_monthly_cap


class TestHealthWelfare:
    def setup_method(self):
        self.calculator = StatutoryDeductionCalculator()

    @pytest.mark.parametrize("gross, expected", [
        ("5000", "60"),
        ("5000.01", "100"),
        ("10000", "100"),
        ("15000", "100"),
        ("20000", "150"),
        ("0", "60"),
    ])
    def test_employee_tier(self, config_store, gross, expected):
        assert self.calculator.health_welfare_employee(Decimal(gross), config_store.policy) == Decimal(expected)

    @pytest.mark.parametrize("subsidiary, residency, expected", [
        (Subsidiary.SMRU, ResidencyClass.LOCAL_NON_ID, "150"),
        (Subsidiary.SMRU, ResidencyClass.EXPAT, "150"),
        (Subsidiary.SMRU, ResidencyClass.LOCAL_ID, "0"),
        (Subsidiary.BHF, ResidencyClass.LOCAL_NON_ID, "0"),
        (Subsidiary.BHF, ResidencyClass.EXPAT, "0"),
    ])
    def test_employer_rules(self, config_store, subsidiary, residency, expected):
        amount = self.calculator.health_welfare_employer(
            Decimal("150"), subsidiary, residency, config_store.policy,
        )

        assert amount == Decimal(expected)


class TestProvidentContribution:
    def setup_method(self):
        self.calculator = StatutoryDeductionCalculator()

    def test_local_id_pays_provident_fund(self, tax_config_2025):
        pvd, saving = self.calculator.provident_contribution(
            Decimal("30000"), ResidencyClass.LOCAL_ID, True, tax_config_2025.settings,
        )

        assert pvd == Decimal("2250.00")
        assert saving == Decimal("0")

    def test_local_non_id_pays_saving_fund(self, tax_config_2025):
        pvd, saving = self.calculator.provident_contribution(
            Decimal("30000"), ResidencyClass.LOCAL_NON_ID, True, tax_config_2025.settings,
        )

        assert pvd == Decimal("0")
        assert saving == Decimal("2250.00")

    def test_expat_pays_neither(self, tax_config_2025):
        assert self.calculator.provident_contribution(
            Decimal("30000"), ResidencyClass.EXPAT, True, tax_config_2025.settings,
        ) == (Decimal("0"), Decimal("0"))

    def test_nothing_during_probation(self, tax_config_2025):
        assert self.calculator.provident_contribution(
            Decimal("30000"), ResidencyClass.LOCAL_ID, False, tax_config_2025.settings,
        ) == (Decimal("0"), Decimal("0"))

    def test_capped_at_monthly_share_of_annual_ceiling(self, tax_config_2025):
        pvd, _ = self.calculator.provident_contribution(
            Decimal("1000000"), ResidencyClass.LOCAL_ID, True, tax_config_2025.settings,
        )

        assert pvd == Decimal("41666.67")


class TestCompute:
    def test_compute(self, tax_config_2025, config_store):
        employee = Employee(
            employee_id=uuid4(),
            subsidiary=Subsidiary.SMRU,
            residency_class=ResidencyClass.LOCAL_NON_ID,
        )

        result = StatutoryDeductionCalculator().compute(
            gross=Decimal("25000"),
            employee=employee,
            probation_passed=True,
            settings=tax_config_2025.settings,
            policy=config_store.policy,
        )

        assert result.ssf_employee == result.ssf_employer == Decimal("750.00")
        assert result.health_welfare_employee == Decimal("150")
        assert result.health_welfare_employer == Decimal("150")
        assert result.saving_fund_employee == Decimal("1875.00")
        assert result.pvd_employee == Decimal("0")
        assert result.employee_total == Decimal("2775.00")
        assert result.employer_total == Decimal("900.00")
