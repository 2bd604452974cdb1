"""
Configuration Validator (``payroll_config.validator``).

Responsibility
--------------
Structural validation of a ``TaxConfig`` at load time, plus the Thai
statutory compliance report used by administrators.

Invariants enforced
-------------------
* Brackets start at 0, are contiguous (each lower bound equals the previous
  upper bound), have positive width, and only the last is unbounded.
* Rates lie in [0, 1) and are non-decreasing across brackets.
* Every ``base_tax`` equals the cumulative tax of the brackets below it.
  Together these make tax continuous and monotone in taxable income.

Failure modes
-------------
* Structural violations raise ``MalformedBracketConfigError`` or
  ``MalformedSettingsError`` (both ``ComputationError``): a bad table
  would mis-tax every employee, so the whole bulk run must halt.
* Compliance deviations are reported, never raised.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from payroll_config.schema import TaxConfig, TaxSettings
from payroll_kernel.exceptions import MalformedBracketConfigError, MalformedSettingsError

BASE_TAX_TOLERANCE = Decimal("0.01")

THAI_BRACKET_COUNT = 8
THAI_TOP_RATE = Decimal("0.35")
THAI_SSF_RATE = Decimal("0.05")
THAI_SSF_MONTHLY_CAP = Decimal("750")


@dataclass
class ConfigValidationResult:
    """
    Result of a compliance check.

    ``is_valid`` is True only when ``errors`` is empty.  Warnings should be
    reviewed but do not block use.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def bracket_problems(config: TaxConfig) -> list[str]:
    """List every structural problem in the bracket table (empty when sound)."""
    problems: list[str] = []
    brackets = config.brackets
    if not brackets:
        return ["no brackets defined"]

    orders = [b.order for b in brackets]
    if len(set(orders)) != len(orders):
        problems.append("duplicate bracket order")

    if brackets[0].lower_bound != 0:
        problems.append(f"first bracket starts at {brackets[0].lower_bound}, expected 0")

    expected_base = Decimal("0")
    for index, bracket in enumerate(brackets):
        label = f"bracket {bracket.order}"
        is_last = index == len(brackets) - 1

        if not Decimal("0") <= bracket.rate < Decimal("1"):
            problems.append(f"{label} rate {bracket.rate} outside [0, 1)")

        if bracket.upper_bound is None:
            if not is_last:
                problems.append(f"{label} is unbounded but is not the last bracket")
        elif bracket.upper_bound <= bracket.lower_bound:
            problems.append(f"{label} has non-positive width")

        if index > 0:
            prev = brackets[index - 1]
            if prev.upper_bound is not None:
                if bracket.lower_bound > prev.upper_bound:
                    problems.append(
                        f"gap between {prev.upper_bound} and {bracket.lower_bound}"
                    )
                elif bracket.lower_bound < prev.upper_bound:
                    problems.append(
                        f"overlap: {label} starts at {bracket.lower_bound} "
                        f"before {prev.upper_bound}"
                    )
            if bracket.rate < prev.rate:
                problems.append(
                    f"non-monotonic rates: {label} rate {bracket.rate} "
                    f"below previous {prev.rate}"
                )

        if abs(bracket.base_tax - expected_base) > BASE_TAX_TOLERANCE:
            problems.append(
                f"{label} base tax {bracket.base_tax} inconsistent with "
                f"cumulative {expected_base}"
            )
        if bracket.upper_bound is not None:
            expected_base = bracket.base_tax + (bracket.upper_bound - bracket.lower_bound) * bracket.rate

    if brackets[-1].upper_bound is not None:
        problems.append("last bracket must be unbounded")
    return problems


def settings_problems(settings: TaxSettings) -> list[str]:
    problems: list[str] = []
    for name in ("employment_deduction_rate", "ssf_rate", "pvd_rate", "saving_fund_rate"):
        rate = getattr(settings, name)
        if not Decimal("0") <= rate <= Decimal("1"):
            problems.append(f"{name} {rate} outside [0, 1]")
    for name, value in settings.as_dict().items():
        if value < 0:
            problems.append(f"{name} is negative")
    if settings.ssf_min_salary > settings.ssf_max_salary:
        problems.append("ssf_min_salary exceeds ssf_max_salary")
    return problems


def validate_tax_config(config: TaxConfig) -> TaxConfig:
    """
    Reject a structurally unsound tax configuration.

    Preconditions:
        - ``config`` was parsed by the loader or a database source.
    Postconditions:
        - Returns ``config`` unchanged when sound.
    Raises:
        MalformedBracketConfigError: gaps, overlaps, bad bases or rates.
        MalformedSettingsError: out-of-range settings.
    """
    problems = bracket_problems(config)
    if problems:
        raise MalformedBracketConfigError(config.tax_year, problems)
    problems = settings_problems(config.settings)
    if problems:
        raise MalformedSettingsError(config.tax_year, problems)
    return config


def check_thai_compliance(config: TaxConfig) -> ConfigValidationResult:
    """
    Compare a configuration against the Thai statutory shape.

    Errors: top bracket bounded or not 35%, SSF rate other than 5%, SSF cap
    above 750.  Warnings: bracket count other than 8.
    """
    result = ConfigValidationResult()
    for problem in bracket_problems(config):
        result.add_error(problem)

    if len(config.brackets) != THAI_BRACKET_COUNT:
        result.add_warning(
            f"Expected {THAI_BRACKET_COUNT} tax brackets for Thai system, "
            f"found {len(config.brackets)}"
        )
    if config.brackets:
        top = config.top_bracket
        if top.upper_bound is not None:
            result.add_error("Highest tax bracket must have unlimited maximum income")
        if top.rate != THAI_TOP_RATE:
            result.add_error(f"Highest tax bracket must be 35%, got {top.rate * 100}%")

    settings = config.settings
    if settings.ssf_rate != THAI_SSF_RATE:
        result.add_error(f"Social security rate must be 5%, got {settings.ssf_rate * 100}%")
    if settings.ssf_monthly_cap > THAI_SSF_MONTHLY_CAP:
        result.add_error(
            f"Social security monthly cap must not exceed {THAI_SSF_MONTHLY_CAP}, "
            f"got {settings.ssf_monthly_cap}"
        )
    return result
