"""Bulk payroll execution."""

from payroll_batch.services.executor import BulkPayrollExecutor

__all__ = ["BulkPayrollExecutor"]
