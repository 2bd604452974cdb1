"""Tests for the read-only payroll reporting views."""

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from payroll_kernel.domain.dtos import AdvanceState, PayrollRecordStatus
from payroll_kernel.domain.values import FilerProfile, Subsidiary
from payroll_services.reporting import PayrollReportingService

from conftest import grant, org


@pytest.fixture
def reporting(session_factory):
    return PayrollReportingService(session_factory)


@pytest.fixture
def split_funded(hire):
    return hire(allocations=[(grant(Subsidiary.BHF, "G-BHF-01"), "0.2"), (org(Subsidiary.SMRU), "0.8")])


class TestEmployeeViews:
    def test_records_exclude_invalidated(self, payroll_engine, reporting, directory, split_funded):
        payroll_engine.compute_payroll(split_funded.employee_id, "2025-06")
        smru_only = [a for a in split_funded.allocations if a.funding_subsidiary is Subsidiary.SMRU]
        directory.replace_allocations(
            split_funded.term.employment_id,
            [replace(a, level_of_effort=Decimal("1")) for a in smru_only],
        )
        payroll_engine.compute_payroll(split_funded.employee_id, "2025-06")

        records = reporting.employee_records(split_funded.employee_id, "2025-06")

        assert len(records) == 1
        assert records[0].status is PayrollRecordStatus.ACTIVE
        assert records[0].funding_subsidiary is Subsidiary.SMRU

    def test_advances_include_cancelled(self, payroll_engine, reporting, directory, split_funded):
        payroll_engine.compute_payroll(split_funded.employee_id, "2025-06")
        smru_only = [a for a in split_funded.allocations if a.funding_subsidiary is Subsidiary.SMRU]
        directory.replace_allocations(
            split_funded.term.employment_id,
            [replace(a, level_of_effort=Decimal("1")) for a in smru_only],
        )
        payroll_engine.compute_payroll(split_funded.employee_id, "2025-06")

        advances = reporting.employee_advances(split_funded.employee_id, "2025-06")

        assert [a.state for a in advances] == [AdvanceState.CANCELLED]

    def test_summary_totals_across_allocations(self, payroll_engine, reporting, split_funded):
        payroll_engine.compute_payroll(split_funded.employee_id, "2025-06")

        summary = reporting.employee_payroll_summary(split_funded.employee_id, "2025-06")

        assert summary.allocation_count == 2
        assert summary.gross_salary == Decimal("25000")
        assert summary.net_salary == Decimal("21915.00")
        assert summary.employer_cost == Decimal("26000.00")
        assert summary.provident_fund_employee == Decimal("1875.00")
        assert not summary.needs_review

    def test_empty_period(self, reporting, hire):
        employee = hire()

        summary = reporting.employee_payroll_summary(employee.employee_id, "2025-06")

        assert summary.records == ()
        assert summary.net_salary == Decimal("0")


class TestPayrollStatistics:
    def test_range_totals(self, payroll_engine, reporting, hire, split_funded, captured_logs):
        other = hire()
        payroll_engine.compute_payroll(split_funded.employee_id, "2025-06")
        payroll_engine.compute_payroll(other.employee_id, "2025-06")

        stats = reporting.payroll_statistics(date(2025, 6, 1), date(2025, 6, 30))

        assert stats.record_count == 3
        assert stats.employee_count == 2
        assert stats.total_gross_salary == Decimal("50000")
        assert stats.total_net_salary == Decimal("44140.00")
        assert stats.total_employer_cost == Decimal("51750.00")
        assert stats.total_employer_contributions == Decimal("1750.00")
        assert stats.records_needing_review == 0
        assert stats.advance_count == 1
        assert stats.total_advance_amount == Decimal("4315.00")
        assert stats.pending_settlements == 1
        assert stats.advances_by_subsidiary == {"BHF": 1}
        assert any(r["message"] == "payroll_statistics_computed" for r in captured_logs())

    def test_range_excludes_other_months(self, payroll_engine, reporting, hire):
        employee = hire()
        payroll_engine.compute_payroll(employee.employee_id, "2025-05")

        stats = reporting.payroll_statistics(date(2025, 6, 1), date(2025, 6, 30))

        assert stats.record_count == 0
        assert stats.total_net_salary == Decimal("0")

    def test_reversed_range(self, reporting):
        with pytest.raises(ValueError, match="precedes"):
            reporting.payroll_statistics(date(2025, 6, 30), date(2025, 6, 1))


class TestAnnualTaxSummary:
    def test_reconciles_withheld_tax(self, payroll_engine, reporting, config_store, hire):
        """Two months withheld at a full-year rate; two months' income owes nothing."""
        employee = hire(position_salary=Decimal("60000"))
        payroll_engine.compute_payroll(employee.employee_id, "2025-05")
        payroll_engine.compute_payroll(employee.employee_id, "2025-06")

        summary = reporting.annual_tax_summary(employee.employee_id, 2025, FilerProfile(), config_store)

        assert summary.months_paid == 2
        assert summary.reconciliation.tax_paid == Decimal("6083.34")
        assert summary.reconciliation.tax_liability == Decimal("0")
        assert summary.reconciliation.refund_due == Decimal("6083.34")
