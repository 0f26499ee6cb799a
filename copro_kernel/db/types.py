"""
Module: copro_kernel.db.types
Responsibility: Annotated column types and the money helpers every service uses
    to turn caller input into Decimal amounts.
Architecture position: Kernel > DB.  May be imported by every other layer.

Invariants enforced:
    - No floats are ever stored.  parse_amount() converts floats through
      their shortest string form and rejects NaN / infinity.
    - round_money() is the ONLY sanctioned rounding function for amounts.

Failure modes:
    - InvalidAmountError on non-numeric, boolean, NaN or infinite input.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated

from sqlalchemy import Numeric, String

from copro_kernel.exceptions import InvalidAmountError

# Monetary amount: 38 digits, 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

# Short identifier strings (account codes, journal codes, key codes)
ShortCode = Annotated[str, String(50)]

# Free text labels
LongText = Annotated[str, String(4000)]

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP
ZERO = Decimal("0")


def parse_amount(value: object, field: str = "amount") -> Decimal:
    """
    Convert caller input to a Decimal amount.

    Accepts Decimal, int, str and float (converted via ``str()`` so that
    ``0.1`` becomes ``Decimal("0.1")``).  Sign is NOT checked here; callers
    apply their own range rules.

    Raises:
        InvalidAmountError: If the value is missing, boolean, non-numeric,
            NaN or infinite.
    """
    if value is None:
        raise InvalidAmountError(field, value, "value is required")
    if isinstance(value, bool):
        raise InvalidAmountError(field, value, "boolean is not an amount")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = _to_decimal(str(value), field, value)
    elif isinstance(value, str):
        text = value.strip().replace(" ", "")
        # Accept the French decimal comma ("150,50")
        if "," in text and "." not in text:
            text = text.replace(",", ".")
        result = _to_decimal(text, field, value)
    else:
        raise InvalidAmountError(field, value, f"unsupported type {type(value).__name__}")

    if not result.is_finite():
        raise InvalidAmountError(field, value, "amount must be finite")
    return result


def _to_decimal(text: str, field: str, original: object) -> Decimal:
    try:
        return Decimal(text)
    except InvalidOperation:
        raise InvalidAmountError(field, original, "not a number") from None


def parse_non_negative(value: object, field: str = "amount") -> Decimal:
    """parse_amount() that also rejects negative values."""
    result = parse_amount(value, field)
    if result < ZERO:
        raise InvalidAmountError(field, value, "must not be negative")
    return result


def parse_positive(value: object, field: str = "amount") -> Decimal:
    """parse_amount() that requires a strictly positive value."""
    result = parse_amount(value, field)
    if result <= ZERO:
        raise InvalidAmountError(field, value, "must be greater than zero")
    return result


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to ``decimal_places`` (ROUND_HALF_UP).

    This is the only sanctioned rounding function for amounts.
    """
    quantize_str = "1." + "0" * decimal_places if decimal_places else "1"
    return Decimal(value).quantize(Decimal(quantize_str), rounding=rounding)
