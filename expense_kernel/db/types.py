"""
Module: expense_kernel.db.types
Responsibility: Monetary precision constants and the single sanctioned
    rounding function.  Centralizes precision so that the ORM,
    the canonical encoder and the service layer agree on one representation.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    CRITICAL: No floats anywhere in the expense kernel.  All monetary amounts
        use Decimal with explicit precision.
    - round_money() is the ONLY sanctioned rounding function.  Amounts are
      rounded once, at draft creation; the canonical encoder uses it only to
      check that a stored amount already sits at the fixed scale.
"""

from decimal import ROUND_HALF_UP, Decimal

# Rounding constants
AMOUNT_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP


def round_money(
    value: Decimal,
    decimal_places: int = AMOUNT_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to specified decimal places.

    This is the ONLY sanctioned rounding function for monetary values in the
    kernel.

    Args:
        value: The Decimal value to round.
        decimal_places: Number of decimal places to round to.
        rounding: Rounding mode (default: ROUND_HALF_UP).

    Returns:
        Rounded Decimal value.
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places else "1"
    return value.quantize(Decimal(quantize_str), rounding=rounding)
