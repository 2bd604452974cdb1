"""
Pytest fixtures for the payroll test suite.

Provides:
- Structured log capture
- In-memory SQLite engine and session factory (tables created per test)
- ConfigStore over the bundled tax-year YAML sets
- InMemoryEmployeeDirectory plus a ``hire`` helper for registering staff
- A PayrollEngine wired to all of the above with a deterministic clock
"""

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import UUID, uuid4

import pytest

from payroll_config.store import ConfigStore
from payroll_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from payroll_kernel.domain.clock import DeterministicClock
from payroll_kernel.domain.values import (
    Employee,
    EmploymentTerm,
    FilerProfile,
    FundingAllocation,
    FundingSource,
    GrantFunding,
    OrgFunding,
    ResidencyClass,
    Subsidiary,
)
from payroll_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from payroll_services.directory import InMemoryEmployeeDirectory
from payroll_services.payroll_engine import PayrollEngine

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture payroll_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, payroll_engine):
            payroll_engine.compute_payroll(...)
            logs = captured_logs()
            assert any(r["message"] == "payroll_computation_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("payroll_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Time and configuration
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(datetime(2025, 6, 30, 17, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def config_store():
    """Store backed by the bundled ``payroll_config/sets`` directory."""
    return ConfigStore.from_directory()


@pytest.fixture
def tax_config_2025(config_store):
    return config_store.get_tax_config(2025)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def db_engine():
    """Fresh in-memory SQLite database with every payroll table."""
    reset_engine()
    engine = init_engine_from_url("sqlite:///:memory:")
    create_tables()
    yield engine
    reset_engine()


@pytest.fixture
def session_factory(db_engine):
    return get_session_factory()


# =============================================================================
# HR directory
# =============================================================================


@dataclass(frozen=True)
class Hire:
    """An employee registered in the test directory."""

    employee: Employee
    term: EmploymentTerm
    allocations: tuple[FundingAllocation, ...]

    @property
    def employee_id(self) -> UUID:
        return self.employee.employee_id

    def allocation_funded_by(self, subsidiary: Subsidiary) -> FundingAllocation:
        return next(a for a in self.allocations if a.funding_subsidiary == subsidiary)


def grant(subsidiary: Subsidiary, grant_id: str = "G-001") -> GrantFunding:
    return GrantFunding(grant_id=grant_id, subsidiary=subsidiary)


def org(subsidiary: Subsidiary) -> OrgFunding:
    return OrgFunding(fund_id=f"{subsidiary.value}-CORE", subsidiary=subsidiary)


@pytest.fixture
def directory():
    return InMemoryEmployeeDirectory()


@pytest.fixture
def hire(directory):
    """
    Register an employee, an employment term and funding allocations.

    ``allocations`` is a list of ``(FundingSource, level_of_effort)`` pairs;
    the default is a single SMRU org-funded allocation at 100%.
    """

    def _hire(
        *,
        subsidiary: Subsidiary = Subsidiary.SMRU,
        residency_class: ResidencyClass = ResidencyClass.LOCAL_ID,
        position_salary: Decimal | None = Decimal("25000"),
        start_date: date | None = date(2025, 1, 1),
        probation_salary: Decimal | None = None,
        pass_probation_date: date | None = None,
        end_date: date | None = None,
        filer_profile: FilerProfile | None = None,
        allocations: list[tuple[FundingSource, str]] | None = None,
        allocation_start: date = date(2025, 1, 1),
    ) -> Hire:
        employee = Employee(
            employee_id=uuid4(),
            subsidiary=subsidiary,
            residency_class=residency_class,
            filer_profile=filer_profile or FilerProfile(),
        )
        term = EmploymentTerm(
            employment_id=uuid4(),
            employee_id=employee.employee_id,
            position_salary=position_salary,
            start_date=start_date,
            probation_salary=probation_salary,
            pass_probation_date=pass_probation_date,
            end_date=end_date,
        )
        lines = allocations if allocations is not None else [(org(subsidiary), "1")]
        funded = tuple(
            FundingAllocation(
                allocation_id=uuid4(),
                employment_id=term.employment_id,
                funding=funding,
                level_of_effort=Decimal(loe),
                start_date=allocation_start,
            )
            for funding, loe in lines
        )
        directory.add_employee(employee)
        directory.add_employment(term)
        for allocation in funded:
            directory.add_allocation(allocation)
        return Hire(employee=employee, term=term, allocations=funded)

    return _hire


# =============================================================================
# Payroll engine
# =============================================================================


@pytest.fixture
def payroll_engine(config_store, directory, session_factory, deterministic_clock):
    return PayrollEngine(
        config_store=config_store,
        directory=directory,
        session_factory=session_factory,
        clock=deterministic_clock,
        actor_id=TEST_ACTOR_ID,
        sleep=lambda seconds: None,
    )
