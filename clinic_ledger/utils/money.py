from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from clinic_ledger.common.exceptions import InvalidAmountError

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")


def quantize(value: Any) -> Decimal:
    """Coerce to Decimal rounded half-up to 2 places. Floats go through str() to avoid binary noise."""
    if isinstance(value, Decimal):
        dec = value
    elif isinstance(value, float):
        dec = Decimal(str(value))
    else:
        dec = Decimal(value)
    return dec.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def to_amount(value: Any, field: str = "amount") -> Decimal:
    """Validate a posting amount: must be a finite number > 0."""
    try:
        amount = quantize(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmountError(f"{field} must be a number, got {value!r}")
    if not amount.is_finite() or amount <= 0:
        raise InvalidAmountError(f"{field} must be greater than zero, got {value}")
    return amount


def to_non_negative(value: Any, field: str = "amount") -> Decimal:
    try:
        amount = quantize(value if value is not None else 0)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmountError(f"{field} must be a number, got {value!r}")
    if amount < 0:
        raise InvalidAmountError(f"{field} cannot be negative, got {value}")
    return amount
