"""
Payroll Domain Values (``payroll_kernel.domain.values``).

Responsibility
--------------
Frozen dataclass snapshots of the collaborator data a payroll run reads:
employees, employment terms, funding allocations, and the pay period.

Architecture position
---------------------
**Kernel > Domain** -- pure data definitions with ZERO I/O.  Supplied by
the external HR directory, consumed by the engines and PayrollEngine.

Invariants enforced
-------------------
* All snapshots are ``frozen=True``; a run never sees a half-edited record.
* All monetary and fractional fields are ``Decimal`` -- NEVER ``float``.
* A funding source is exactly one of ``GrantFunding`` / ``OrgFunding``.
* Level of effort lies in (0, 1]; allocation windows are [start, end).

Failure modes
-------------
* Construction with out-of-range values raises ``ValueError``.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from payroll_kernel.logging_config import get_logger

logger = get_logger("domain.values")


class Subsidiary(str, Enum):
    """Organizational units that employ staff and own funding."""

    SMRU = "SMRU"
    BHF = "BHF"


class ResidencyClass(str, Enum):
    """Tax / benefit residency class of an employee."""

    LOCAL_ID = "local_id"  # Thai ID holder -> provident fund
    LOCAL_NON_ID = "local_non_id"  # resident without Thai ID -> saving fund
    EXPAT = "expat"  # neither fund


class FundingKind(str, Enum):
    GRANT = "grant"
    ORG_FUNDED = "org_funded"


def add_months(start: date, months: int) -> date:
    """Calendar month arithmetic, clamping the day to the target month's length."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


@dataclass(frozen=True, order=True)
class PayPeriod:
    """A calendar pay month, identified by its closing date."""

    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"month must be 1..12, got {self.month}")

    @classmethod
    def of(cls, value: PayPeriod | date | str) -> PayPeriod:
        """Coerce a PayPeriod, any date inside the month, or 'YYYY-MM'."""
        if isinstance(value, PayPeriod):
            return value
        if isinstance(value, date):
            return cls(value.year, value.month)
        if isinstance(value, str):
            parts = value.split("-")
            if len(parts) < 2:
                raise ValueError(f"Cannot parse pay period from {value!r}")
            return cls(int(parts[0]), int(parts[1]))
        raise ValueError(f"Cannot parse pay period from {value!r}")

    @property
    def start(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def end(self) -> date:
        """Closing date (last calendar day of the month)."""
        return date(self.year, self.month, self.days_in_month)

    @property
    def days_in_month(self) -> int:
        return calendar.monthrange(self.year, self.month)[1]

    @property
    def tax_year(self) -> int:
        return self.year

    @property
    def code(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    def __str__(self) -> str:
        return self.code


@dataclass(frozen=True)
class FilerProfile:
    """Tax-filing profile used for personal allowances."""

    has_spouse: bool = False
    children: int = 0
    eligible_parents: int = 0

    def __post_init__(self) -> None:
        if self.children < 0:
            raise ValueError("children cannot be negative")
        if not 0 <= self.eligible_parents <= 4:
            raise ValueError("eligible_parents must be between 0 and 4")


@dataclass(frozen=True)
class Employee:
    """An employee as seen by a payroll run."""

    employee_id: UUID
    subsidiary: Subsidiary
    residency_class: ResidencyClass
    filer_profile: FilerProfile = field(default_factory=FilerProfile)
    staff_code: str | None = None


@dataclass(frozen=True)
class EmploymentTerm:
    """
    The active employment contract of an employee.

    Salary and date fields are optional because they arrive from an
    external HR system; PayrollEngine rejects a term whose required
    fields are unset.
    """

    employment_id: UUID
    employee_id: UUID
    position_salary: Decimal | None
    start_date: date | None
    probation_salary: Decimal | None = None
    pass_probation_date: date | None = None
    end_date: date | None = None
    fte: Decimal = Decimal("1")

    def __post_init__(self) -> None:
        if self.position_salary is not None and self.position_salary < 0:
            logger.warning(
                "employment_term_invalid",
                extra={"employment_id": str(self.employment_id), "field": "position_salary"},
            )
            raise ValueError("position_salary cannot be negative")
        if self.probation_salary is not None and self.probation_salary < 0:
            raise ValueError("probation_salary cannot be negative")
        if not Decimal("0") < self.fte <= Decimal("1"):
            raise ValueError(f"fte must be in (0, 1], got {self.fte}")
        if (
            self.start_date is not None
            and self.end_date is not None
            and self.end_date < self.start_date
        ):
            raise ValueError("end_date cannot precede start_date")

    @property
    def effective_probation_salary(self) -> Decimal | None:
        if self.probation_salary is not None:
            return self.probation_salary
        return self.position_salary

    @property
    def effective_pass_probation_date(self) -> date | None:
        """Pass date, defaulting to three calendar months after start."""
        if self.pass_probation_date is not None:
            return self.pass_probation_date
        if self.start_date is None:
            return None
        return add_months(self.start_date, 3)

    def probation_passed_by(self, as_of: date) -> bool:
        pass_date = self.effective_pass_probation_date
        return pass_date is not None and pass_date <= as_of

    def service_days(self, as_of: date) -> int:
        if self.start_date is None or as_of < self.start_date:
            return 0
        return (as_of - self.start_date).days


@dataclass(frozen=True)
class GrantFunding:
    """Allocation funded by an external grant held by a subsidiary."""

    grant_id: str
    subsidiary: Subsidiary

    @property
    def kind(self) -> FundingKind:
        return FundingKind.GRANT

    @property
    def reference(self) -> str:
        return self.grant_id


@dataclass(frozen=True)
class OrgFunding:
    """Allocation funded from a subsidiary's own organizational fund."""

    fund_id: str
    subsidiary: Subsidiary

    @property
    def kind(self) -> FundingKind:
        return FundingKind.ORG_FUNDED

    @property
    def reference(self) -> str:
        return self.fund_id


FundingSource = GrantFunding | OrgFunding


def funding_from_parts(kind: FundingKind | str, reference: str, subsidiary: Subsidiary | str) -> FundingSource:
    """Rebuild the tagged union from its persisted columns."""
    sub = Subsidiary(subsidiary)
    match FundingKind(kind):
        case FundingKind.GRANT:
            return GrantFunding(grant_id=reference, subsidiary=sub)
        case FundingKind.ORG_FUNDED:
            return OrgFunding(fund_id=reference, subsidiary=sub)


@dataclass(frozen=True)
class FundingAllocation:
    """One funding line of an employment, valid over [start_date, end_date)."""

    allocation_id: UUID
    employment_id: UUID
    funding: FundingSource
    level_of_effort: Decimal
    start_date: date
    end_date: date | None = None

    def __post_init__(self) -> None:
        if not Decimal("0") < self.level_of_effort <= Decimal("1"):
            logger.warning(
                "funding_allocation_invalid",
                extra={
                    "allocation_id": str(self.allocation_id),
                    "level_of_effort": str(self.level_of_effort),
                },
            )
            raise ValueError(
                f"level_of_effort must be in (0, 1], got {self.level_of_effort}"
            )
        if self.end_date is not None and self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")

    @property
    def funding_subsidiary(self) -> Subsidiary:
        return self.funding.subsidiary

    def is_active_on(self, as_of: date) -> bool:
        if as_of < self.start_date:
            return False
        return self.end_date is None or as_of < self.end_date


# Actor recorded on rows written by automated payroll runs
SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000001")
