"""
Module: payroll_kernel.db.types
Responsibility: Money constants and the single sanctioned rounding helper
    for payroll amounts.
Architecture position: Kernel > DB.  Imported by models, engines and
    services.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats anywhere.  Monetary amounts are Decimal stored as
      Numeric(38, 9) and presented in whole satang (2 decimal places).
    - round_money() is the ONLY rounding function for payroll figures;
      ROUND_HALF_UP matches statutory THB rounding.
"""

from decimal import ROUND_HALF_UP, Decimal

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    Preconditions: value is a Decimal.
    Postconditions: value quantized with ``rounding`` (ROUND_HALF_UP).
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places else "1"
    return value.quantize(Decimal(quantize_str), rounding=rounding)
