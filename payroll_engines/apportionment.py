"""
Apportionment -- split an employee-level amount across allocation records.

Responsibility:
    Employee-wide figures (monthly income tax, compensation refund) are
    computed once and then divided across the employee's allocation
    records in proportion to a weight per record.

Invariants enforced:
    - The parts always sum EXACTLY to the (2dp) total.  Each part is first
      truncated to whole satang; the leftover satang go one at a time to
      the parts with the largest truncated remainders (ties go to the
      earlier part), so no single record silently absorbs the residual.
    - Deterministic: the same total and weights give the same parts.

Failure modes:
    - ValueError when weights are empty, negative, or sum to zero.  Callers
      decide the fallback weighting (PayrollEngine falls back to LOE).
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import ROUND_DOWN, Decimal

from payroll_kernel.db.types import MONEY_DECIMAL_PLACES, ZERO, round_money

_SATANG = Decimal(10) ** -MONEY_DECIMAL_PLACES


def apportion(total: Decimal, weights: Sequence[Decimal]) -> list[Decimal]:
    """
    Split ``total`` into ``len(weights)`` 2dp parts proportional to ``weights``.

    Preconditions:
        - ``weights`` is non-empty, every weight >= 0, and sum(weights) > 0.
    Postconditions:
        - ``sum(result) == round_money(total)``.
        - ``result[i] == 0`` wherever ``weights[i] == 0``.
    Raises:
        ValueError: invalid weights.
    """
    if not weights:
        raise ValueError("Cannot apportion across zero weights")
    if any(w < ZERO for w in weights):
        raise ValueError(f"Weights must be non-negative, got {list(weights)}")
    weight_sum = sum(weights, ZERO)
    if weight_sum == ZERO:
        raise ValueError("Weights sum to zero")

    target = round_money(total)
    sign = Decimal("-1") if target < ZERO else Decimal("1")
    magnitude = abs(target)

    raw = [magnitude * w / weight_sum for w in weights]
    floors = [r.quantize(_SATANG, rounding=ROUND_DOWN) for r in raw]
    leftover = int((magnitude - sum(floors, ZERO)) / _SATANG)

    # Largest remainder first; earlier index wins a tie.
    order = sorted(
        range(len(weights)),
        key=lambda i: (-(raw[i] - floors[i]), i),
    )
    for i in order[:leftover]:
        floors[i] += _SATANG

    return [sign * part for part in floors]


def apportion_with_fallback(
    total: Decimal,
    weights: Sequence[Decimal],
    fallback_weights: Sequence[Decimal],
) -> list[Decimal]:
    """``apportion`` by ``weights``, or by ``fallback_weights`` when those sum to zero."""
    if sum(weights, ZERO) == ZERO:
        return apportion(total, fallback_weights)
    return apportion(total, weights)
