"""Persisted payroll models."""

from payroll_kernel.models.advance import InterSubsidiaryAdvanceModel
from payroll_kernel.models.payroll_record import PayrollRecordModel
from payroll_kernel.models.tax_config import TaxBracketModel, TaxSettingModel

__all__ = [
    "PayrollRecordModel",
    "InterSubsidiaryAdvanceModel",
    "TaxBracketModel",
    "TaxSettingModel",
    "import_all_models",
]


def import_all_models() -> None:
    """Ensure every model is registered on ``Base.metadata`` (idempotent)."""
    import payroll_kernel.models.advance  # noqa: F401
    import payroll_kernel.models.payroll_record  # noqa: F401
    import payroll_kernel.models.tax_config  # noqa: F401
