"""
payroll_services -- stateful services around the pure payroll engines.

``PayrollEngine`` owns the per-employee unit of work; ``AdvanceDetector``
maintains inter-subsidiary advances; ``PayrollReportingService`` reads.
"""

from payroll_services.advance_detector import AdvanceDetector
from payroll_services.directory import EmployeeDirectory, InMemoryEmployeeDirectory
from payroll_services.locks import KeyedLockRegistry
from payroll_services.payroll_engine import PayrollComputation, PayrollEngine, PayrollSnapshot
from payroll_services.reporting import (
    AnnualTaxSummary,
    EmployeePayrollSummary,
    PayrollReportingService,
    PayrollStatistics,
)

__all__ = [
    "AdvanceDetector",
    "AnnualTaxSummary",
    "EmployeeDirectory",
    "EmployeePayrollSummary",
    "InMemoryEmployeeDirectory",
    "KeyedLockRegistry",
    "PayrollComputation",
    "PayrollEngine",
    "PayrollReportingService",
    "PayrollSnapshot",
    "PayrollStatistics",
]
