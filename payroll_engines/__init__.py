"""
payroll_engines -- pure payroll calculation engines.

No I/O, no database, no clock.  Every input arrives as a parameter, so the
engines are deterministic and safe to share across bulk-run workers.
"""

from payroll_engines.apportionment import apportion, apportion_with_fallback
from payroll_engines.deductions import StatutoryDeductionCalculator, StatutoryDeductions
from payroll_engines.salary import AllocationSalaryCalculator, AllocationSalaryResult, MonthlyBase
from payroll_engines.tax import (
    AnnualTaxReconciliation,
    AnnualTaxResult,
    BracketSlice,
    PersonalAllowances,
    TaxCalculator,
)
from payroll_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "AllocationSalaryCalculator",
    "AllocationSalaryResult",
    "AnnualTaxReconciliation",
    "AnnualTaxResult",
    "BracketSlice",
    "MonthlyBase",
    "PersonalAllowances",
    "StatutoryDeductionCalculator",
    "StatutoryDeductions",
    "TaxCalculator",
    "apportion",
    "apportion_with_fallback",
    "compute_input_fingerprint",
    "traced_engine",
]
