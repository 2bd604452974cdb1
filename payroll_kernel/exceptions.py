"""
Typed exception hierarchy for the payroll kernel.

Every error carries a machine-readable ``code`` class attribute and its
context as structured attributes, so bulk runs can report a reason code
per employee without parsing messages.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PayrollKernelError (base)
    |
    +-- ValidationError                 scope: this employee only
    |   +-- EmployeeNotFoundError
    |   +-- MissingEmploymentFieldError
    |   +-- NoActiveAllocationsError
    |   +-- LevelOfEffortMismatchError
    |   +-- TaxConfigNotFoundError
    |   +-- HubGrantNotFoundError
    |
    +-- ComputationError                scope: fatal to the whole batch
    |   +-- MalformedBracketConfigError
    |   +-- MalformedSettingsError
    |
    +-- ConcurrencyError                rejected, never retried
    |   +-- PayrollComputationInProgressError
    |   +-- DuplicatePayrollRecordError
    |
    +-- PersistenceError                retried with backoff, then failed
    |
    +-- AdvanceError
        +-- AdvanceNotFoundError
        +-- InvalidAdvanceTransitionError
        +-- SettledAdvanceConflictError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                        | When Raised
-------------|-----------------------------|------------------------------------------
Validation   | EMPLOYEE_NOT_FOUND          | Directory has no such employee
             | MISSING_EMPLOYMENT_FIELD    | No active term, or a required field unset
             | NO_ACTIVE_ALLOCATIONS       | No allocation valid on the period date
             | LOE_SUM_MISMATCH            | Level-of-effort fractions do not sum to 1
             | TAX_CONFIG_NOT_FOUND        | No tax configuration for the tax year
             | HUB_GRANT_NOT_FOUND         | Subsidiary missing from the routing table
-------------|-----------------------------|------------------------------------------
Computation  | MALFORMED_BRACKET_CONFIG    | Gap, overlap or non-monotonic rates
             | MALFORMED_SETTINGS          | Required tax setting missing or invalid
-------------|-----------------------------|------------------------------------------
Concurrency  | COMPUTATION_IN_PROGRESS     | Same (employee, period) already running
             | DUPLICATE_PAYROLL_RECORD    | Unique record key taken by another writer
-------------|-----------------------------|------------------------------------------
Persistence  | PERSISTENCE_ERROR           | Transactional write failed after retries
-------------|-----------------------------|------------------------------------------
Advance      | ADVANCE_NOT_FOUND           | Advance id does not exist
             | INVALID_ADVANCE_TRANSITION  | Transition not allowed from current state
             | SETTLED_ADVANCE_CONFLICT    | Regeneration would change a settled amount
"""

from __future__ import annotations

from decimal import Decimal


class PayrollKernelError(Exception):
    """
    Base exception for all payroll kernel errors.

    All subclasses must define a ``code`` class attribute.
    """

    code: str = "PAYROLL_KERNEL_ERROR"


# Validation errors -- abort one employee, the batch continues


class ValidationError(PayrollKernelError):
    """Input for one employee-period is unusable."""

    code: str = "VALIDATION_ERROR"


class EmployeeNotFoundError(ValidationError):
    code: str = "EMPLOYEE_NOT_FOUND"

    def __init__(self, employee_id: str):
        self.employee_id = employee_id
        super().__init__(f"Employee not found: {employee_id}")


class MissingEmploymentFieldError(ValidationError):
    """A required employment term field is missing."""

    code: str = "MISSING_EMPLOYMENT_FIELD"

    def __init__(self, employee_id: str, field_name: str):
        self.employee_id = employee_id
        self.field_name = field_name
        super().__init__(
            f"Employee {employee_id} is missing employment field '{field_name}'"
        )


class NoActiveAllocationsError(ValidationError):
    code: str = "NO_ACTIVE_ALLOCATIONS"

    def __init__(self, employee_id: str, pay_period: str):
        self.employee_id = employee_id
        self.pay_period = pay_period
        super().__init__(
            f"Employee {employee_id} has no active funding allocations "
            f"for {pay_period}"
        )


class LevelOfEffortMismatchError(ValidationError):
    """Active allocations do not account for exactly 100% of effort."""

    code: str = "LOE_SUM_MISMATCH"

    def __init__(self, employee_id: str, pay_period: str, total: Decimal):
        self.employee_id = employee_id
        self.pay_period = pay_period
        self.total = total
        super().__init__(
            f"Level of effort for employee {employee_id} in {pay_period} "
            f"sums to {total}, expected 1.0"
        )


class TaxConfigNotFoundError(ValidationError):
    code: str = "TAX_CONFIG_NOT_FOUND"

    def __init__(self, tax_year: int):
        self.tax_year = tax_year
        super().__init__(f"No tax configuration for tax year {tax_year}")


class HubGrantNotFoundError(ValidationError):
    code: str = "HUB_GRANT_NOT_FOUND"

    def __init__(self, subsidiary: str):
        self.subsidiary = subsidiary
        super().__init__(f"No hub grant configured for subsidiary {subsidiary}")


# Computation errors -- configuration level, halt the batch


class ComputationError(PayrollKernelError):
    """Configuration fault that would mis-compute every employee."""

    code: str = "COMPUTATION_ERROR"


class MalformedBracketConfigError(ComputationError):
    """Tax brackets have a gap, an overlap, or non-monotonic rates."""

    code: str = "MALFORMED_BRACKET_CONFIG"

    def __init__(self, tax_year: int, problems: list[str]):
        self.tax_year = tax_year
        self.problems = problems
        super().__init__(
            f"Tax brackets for {tax_year} are malformed: " + "; ".join(problems)
        )


class MalformedSettingsError(ComputationError):
    code: str = "MALFORMED_SETTINGS"

    def __init__(self, tax_year: int, problems: list[str]):
        self.tax_year = tax_year
        self.problems = problems
        super().__init__(
            f"Tax settings for {tax_year} are malformed: " + "; ".join(problems)
        )


# Concurrency errors


class ConcurrencyError(PayrollKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class PayrollComputationInProgressError(ConcurrencyError):
    """Another computation for the same employee and period is in flight."""

    code: str = "COMPUTATION_IN_PROGRESS"

    def __init__(self, employee_id: str, pay_period: str):
        self.employee_id = employee_id
        self.pay_period = pay_period
        super().__init__(
            f"Payroll for employee {employee_id} in {pay_period} is already "
            "being computed"
        )


class DuplicatePayrollRecordError(ConcurrencyError):
    """A concurrent writer stored the same record key first."""

    code: str = "DUPLICATE_PAYROLL_RECORD"

    def __init__(self, employee_id: str, pay_period: str):
        self.employee_id = employee_id
        self.pay_period = pay_period
        super().__init__(
            f"Payroll records for employee {employee_id} in {pay_period} were "
            "written concurrently by another process"
        )


# Persistence errors


class PersistenceError(PayrollKernelError):
    """Transactional write failed (after bounded retries)."""

    code: str = "PERSISTENCE_ERROR"

    def __init__(self, employee_id: str, attempts: int, reason: str):
        self.employee_id = employee_id
        self.attempts = attempts
        self.reason = reason
        super().__init__(
            f"Persisting payroll for employee {employee_id} failed after "
            f"{attempts} attempt(s): {reason}"
        )


# Advance errors


class AdvanceError(PayrollKernelError):
    """Base exception for inter-subsidiary advance errors."""

    code: str = "ADVANCE_ERROR"


class AdvanceNotFoundError(AdvanceError):
    code: str = "ADVANCE_NOT_FOUND"

    def __init__(self, advance_id: str):
        self.advance_id = advance_id
        super().__init__(f"Inter-subsidiary advance not found: {advance_id}")


class InvalidAdvanceTransitionError(AdvanceError):
    code: str = "INVALID_ADVANCE_TRANSITION"

    def __init__(self, advance_id: str, from_state: str, to_state: str):
        self.advance_id = advance_id
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Advance {advance_id} cannot move from {from_state} to {to_state}"
        )


class SettledAdvanceConflictError(AdvanceError):
    """Regeneration would change the amount of an already settled advance."""

    code: str = "SETTLED_ADVANCE_CONFLICT"

    def __init__(
        self,
        advance_id: str,
        settled_amount: Decimal,
        new_amount: Decimal,
    ):
        self.advance_id = advance_id
        self.settled_amount = settled_amount
        self.new_amount = new_amount
        super().__init__(
            f"Advance {advance_id} was settled at {settled_amount}; "
            f"regenerated amount {new_amount} differs"
        )
