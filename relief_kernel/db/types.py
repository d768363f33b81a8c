"""
Module: relief_kernel.db.types
Responsibility: Annotated column aliases and the single sanctioned rounding
    helper for monetary values.
Architecture position: Kernel > DB.  Imported by models, domain, engines.

Invariants enforced:
    - round_money() is the ONLY rounding function used for money.
    - No floats: amounts and quantities are Decimal end to end.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated, Any

from sqlalchemy import Numeric, String

from relief_kernel.exceptions import ValidationError

Money = Annotated[Decimal, Numeric(38, 9)]

# Ingredient quantities (kg, litres, units) share money precision
Quantity = Annotated[Decimal, Numeric(38, 9)]

Currency = Annotated[str, String(3)]

ShortCode = Annotated[str, String(50)]

LongText = Annotated[str, String(4000)]

DEFAULT_ROUNDING = ROUND_HALF_UP


def round_money(
    value: Decimal,
    decimal_places: int = 2,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """Round a monetary value to the currency minor unit."""
    exponent = Decimal(1).scaleb(-decimal_places)
    return value.quantize(exponent, rounding=rounding)


def to_decimal(value: Any, field: str) -> Decimal:
    """
    Coerce client input (str / int / Decimal) to Decimal.

    Floats are refused: they cannot represent currency exactly.

    Raises:
        ValidationError: on floats, bools, NaN / infinity, or unparsable input.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(field, f"expected decimal string or integer, got {type(value).__name__}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(field, f"not a number: {value!r}") from None
    if not result.is_finite():
        raise ValidationError(field, "must be finite")
    return result
