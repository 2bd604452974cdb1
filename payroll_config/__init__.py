"""
payroll_config -- tax-year configuration and payroll policy.

Responsibility:
    Provides ``ConfigStore``, the single runtime entry point for tax
    brackets, statutory settings and payroll policy.  YAML parsing and
    database reads are internal to the store's sources.

Architecture position:
    Configuration -- sits above ``payroll_kernel`` and below
    ``payroll_engines`` callers and ``payroll_services``.  The kernel MUST
    NEVER import from ``payroll_config``.

Usage:
    from payroll_config import ConfigStore

    store = ConfigStore.from_directory()
    config = store.get_tax_config(2025)
    store.invalidate(2025)  # after any change to the 2025 tables
"""

from payroll_config.schema import (
    EmployerContributionBasis,
    EmployerHealthWelfareRule,
    HealthWelfareTier,
    PayrollPolicy,
    TaxBracket,
    TaxConfig,
    TaxSettings,
)
from payroll_config.sources import DatabaseTaxConfigSource, TaxConfigSource, YamlTaxConfigSource
from payroll_config.store import DEFAULT_CONFIG_DIR, ConfigStore
from payroll_config.validator import ConfigValidationResult, check_thai_compliance, validate_tax_config

__all__ = [
    "ConfigStore",
    "ConfigValidationResult",
    "DEFAULT_CONFIG_DIR",
    "DatabaseTaxConfigSource",
    "EmployerContributionBasis",
    "EmployerHealthWelfareRule",
    "HealthWelfareTier",
    "PayrollPolicy",
    "TaxBracket",
    "TaxConfig",
    "TaxConfigSource",
    "TaxSettings",
    "YamlTaxConfigSource",
    "check_thai_compliance",
    "validate_tax_config",
]
