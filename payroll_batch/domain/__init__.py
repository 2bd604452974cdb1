"""Pure bulk-run result types."""

from payroll_batch.domain.types import BatchHalt, BulkPayrollResult, BulkRunStatus, FailedEmployee

__all__ = ["BatchHalt", "BulkPayrollResult", "BulkRunStatus", "FailedEmployee"]
