"""
EmployeeDirectory -- the HR collaborator a payroll run reads from.

The HR system owns employees, employment contracts and funding
allocations; payroll only ever sees frozen snapshots of them through this
protocol.  ``InMemoryEmployeeDirectory`` backs tests and batch imports.
"""

from __future__ import annotations

import threading
from datetime import date
from decimal import Decimal
from typing import Protocol, runtime_checkable
from uuid import UUID

from payroll_kernel.domain.values import Employee, EmploymentTerm, FundingAllocation, PayPeriod


@runtime_checkable
class EmployeeDirectory(Protocol):
    """Read-only snapshot access to HR records."""

    def get_employee(self, employee_id: UUID) -> Employee | None:
        ...

    def get_employment(self, employee_id: UUID, as_of: date) -> EmploymentTerm | None:
        """The employment term active on ``as_of``, if any."""
        ...

    def get_allocations(self, employment_id: UUID, as_of: date) -> list[FundingAllocation]:
        """Funding allocations of ``employment_id`` active on ``as_of``."""
        ...

    def get_compensation_refund(self, employee_id: UUID, pay_period: PayPeriod) -> Decimal:
        """Employee-level refund or adjustment for the period (0 when none)."""
        ...


class InMemoryEmployeeDirectory:
    """Dictionary-backed directory.  Writes are thread-safe."""

    def __init__(self) -> None:
        self._employees: dict[UUID, Employee] = {}
        self._terms: dict[UUID, list[EmploymentTerm]] = {}
        self._allocations: dict[UUID, list[FundingAllocation]] = {}
        self._refunds: dict[tuple[UUID, PayPeriod], Decimal] = {}
        self._lock = threading.Lock()

    def add_employee(self, employee: Employee) -> None:
        with self._lock:
            self._employees[employee.employee_id] = employee

    def add_employment(self, term: EmploymentTerm) -> None:
        with self._lock:
            self._terms.setdefault(term.employee_id, []).append(term)

    def add_allocation(self, allocation: FundingAllocation) -> None:
        with self._lock:
            self._allocations.setdefault(allocation.employment_id, []).append(allocation)

    def replace_allocations(self, employment_id: UUID, allocations: list[FundingAllocation]) -> None:
        with self._lock:
            self._allocations[employment_id] = list(allocations)

    def set_compensation_refund(self, employee_id: UUID, pay_period: PayPeriod, amount: Decimal) -> None:
        with self._lock:
            self._refunds[(employee_id, PayPeriod.of(pay_period))] = amount

    def get_employee(self, employee_id: UUID) -> Employee | None:
        return self._employees.get(employee_id)

    def get_employment(self, employee_id: UUID, as_of: date) -> EmploymentTerm | None:
        # Latest-starting term that has begun and not ended by as_of.
        # A term with no start date is returned so the engine can report it.
        candidates = []
        for term in self._terms.get(employee_id, []):
            if term.start_date is None:
                candidates.append((date.min, term))
                continue
            if term.start_date > as_of:
                continue
            if term.end_date is not None and term.end_date < PayPeriod.of(as_of).start:
                continue
            candidates.append((term.start_date, term))
        if not candidates:
            return None
        return max(candidates, key=lambda pair: pair[0])[1]

    def get_allocations(self, employment_id: UUID, as_of: date) -> list[FundingAllocation]:
        return [a for a in self._allocations.get(employment_id, []) if a.is_active_on(as_of)]

    def get_compensation_refund(self, employee_id: UUID, pay_period: PayPeriod) -> Decimal:
        return self._refunds.get((employee_id, PayPeriod.of(pay_period)), Decimal("0"))
