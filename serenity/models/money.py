"""
Money helpers shared by models and the budget engine.

DESIGN DECISION: Every amount is a Decimal rounded to the cent with
ROUND_HALF_UP. Banker's rounding would make the "last item absorbs the
remainder" rule produce different splits than the ones users see.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def quantize(value: Decimal) -> Decimal:
    """Round to 2 decimal places, half up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_amount(value: Any) -> Decimal:
    """
    Convert user input into a cent-rounded Decimal.

    Accepts ints, floats, Decimals and strings. Strings may use a comma
    as decimal separator ("12,50") and may contain spaces.

    Raises:
        ValueError: If the value is not a finite number
    """
    if isinstance(value, bool) or value is None:
        raise ValueError("Amount must be a number")

    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, int):
        number = Decimal(value)
    elif isinstance(value, float):
        number = Decimal(str(value))
    elif isinstance(value, str):
        cleaned = value.strip().replace(" ", "").replace(",", ".")
        if not cleaned:
            raise ValueError("Amount must be a number")
        try:
            number = Decimal(cleaned)
        except InvalidOperation:
            raise ValueError(f"Amount must be a number, got {value!r}")
    else:
        raise ValueError(f"Amount must be a number, got {type(value).__name__}")

    if not number.is_finite():
        raise ValueError("Amount must be a finite number")

    return quantize(number)
