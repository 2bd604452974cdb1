"""
payroll_batch -- bulk payroll runs over many employees.

Usage:
    from payroll_batch import BulkPayrollExecutor

    executor = BulkPayrollExecutor(payroll_engine)
    result = executor.compute_bulk_payroll(employee_ids, "2025-03")
    if result.halt is not None:
        ...  # configuration problem; operator attention required
"""

from payroll_batch.domain.types import BatchHalt, BulkPayrollResult, BulkRunStatus, FailedEmployee
from payroll_batch.services.executor import BulkPayrollExecutor

__all__ = [
    "BatchHalt",
    "BulkPayrollExecutor",
    "BulkPayrollResult",
    "BulkRunStatus",
    "FailedEmployee",
]
