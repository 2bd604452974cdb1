"""
Tests for the payroll exception hierarchy.

The bulk executor routes failures by category, so every concrete error
must sit under the right base class and carry a stable code.
"""

from decimal import Decimal

import pytest

from payroll_kernel.exceptions import (
    AdvanceError,
    AdvanceNotFoundError,
    ComputationError,
    ConcurrencyError,
    DuplicatePayrollRecordError,
    EmployeeNotFoundError,
    HubGrantNotFoundError,
    InvalidAdvanceTransitionError,
    LevelOfEffortMismatchError,
    MalformedBracketConfigError,
    MalformedSettingsError,
    MissingEmploymentFieldError,
    NoActiveAllocationsError,
    PayrollComputationInProgressError,
    PayrollKernelError,
    PersistenceError,
    SettledAdvanceConflictError,
    TaxConfigNotFoundError,
    ValidationError,
)


class TestHierarchy:
    @pytest.mark.parametrize("error, base, code", [
        (EmployeeNotFoundError("E1"), ValidationError, "EMPLOYEE_NOT_FOUND"),
        (MissingEmploymentFieldError("E1", "start_date"), ValidationError, "MISSING_EMPLOYMENT_FIELD"),
        (NoActiveAllocationsError("E1", "2025-06"), ValidationError, "NO_ACTIVE_ALLOCATIONS"),
        (LevelOfEffortMismatchError("E1", "2025-06", Decimal("0.9")), ValidationError, "LOE_SUM_MISMATCH"),
        (TaxConfigNotFoundError(2030), ValidationError, "TAX_CONFIG_NOT_FOUND"),
        (HubGrantNotFoundError("BHF"), ValidationError, "HUB_GRANT_NOT_FOUND"),
        (MalformedBracketConfigError(2025, ["gap"]), ComputationError, "MALFORMED_BRACKET_CONFIG"),
        (MalformedSettingsError(2025, ["missing"]), ComputationError, "MALFORMED_SETTINGS"),
        (PayrollComputationInProgressError("E1", "2025-06"), ConcurrencyError, "COMPUTATION_IN_PROGRESS"),
        (DuplicatePayrollRecordError("E1", "2025-06"), ConcurrencyError, "DUPLICATE_PAYROLL_RECORD"),
        (PersistenceError("E1", 3, "locked"), PayrollKernelError, "PERSISTENCE_ERROR"),
        (AdvanceNotFoundError("A1"), AdvanceError, "ADVANCE_NOT_FOUND"),
        (InvalidAdvanceTransitionError("A1", "settled", "cancelled"), AdvanceError, "INVALID_ADVANCE_TRANSITION"),
        (SettledAdvanceConflictError("A1", Decimal("10"), Decimal("12")), AdvanceError, "SETTLED_ADVANCE_CONFLICT"),
    ])
    def test_category_and_code(self, error, base, code):
        """Each error belongs to its category and exposes its code."""
        assert isinstance(error, base)
        assert isinstance(error, PayrollKernelError)
        assert error.code == code

    def test_validation_and_computation_are_disjoint(self):
        """A ComputationError must never be mistaken for a per-employee failure."""
        assert not issubclass(ComputationError, ValidationError)
        assert not issubclass(ValidationError, ComputationError)


class TestStructuredAttributes:
    def test_loe_mismatch_carries_total(self):
        error = LevelOfEffortMismatchError("E1", "2025-06", Decimal("0.95"))

        assert error.total == Decimal("0.95")
        assert "0.95" in str(error)

    def test_malformed_brackets_lists_problems(self):
        error = MalformedBracketConfigError(2025, ["gap between 150000 and 160000", "last bracket must be unbounded"])

        assert error.tax_year == 2025
        assert len(error.problems) == 2
        assert "gap between 150000 and 160000" in str(error)

    def test_persistence_error_reports_attempts(self):
        error = PersistenceError("E1", 3, "database is locked")

        assert error.attempts == 3
        assert error.reason == "database is locked"
        assert "3 attempt(s)" in str(error)

    def test_missing_field_names_field(self):
        with pytest.raises(MissingEmploymentFieldError, match="position_salary"):
            raise MissingEmploymentFieldError("E1", "position_salary")
