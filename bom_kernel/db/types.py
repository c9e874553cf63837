"""
Module: bom_kernel.db.types
Responsibility: Annotated type aliases and the single rounding helper used for
    costing columns.  Centralizes precision and rounding so that every model
    and the costing calculator use identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - Money values (prices, labour cost, purchase totals) are stored with
      MONEY_DECIMAL_PLACES after rounding; durations with
      DURATION_DECIMAL_PLACES.
    - Rounding is half away from zero (ROUND_HALF_UP on Decimal).
    - No floats: every quantity, time and amount is a Decimal.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import BigInteger, Numeric, String, Text

# Monetary amount: prices, hourly rates, labour and purchase totals
Money = Annotated[Decimal, Numeric(38, 9)]

# Quantities, times, coefficients, dimensions
Quantity = Annotated[Decimal, Numeric(38, 9)]

# Percentages (VAT)
Percent = Annotated[Decimal, Numeric(9, 4)]

# Monotonic sequence number for ordering
Sequence = Annotated[int, BigInteger]

# SHA-256 hash as hex string (64 characters)
PayloadHash = Annotated[str, String(64)]

# Short identifier strings (codes, statuses)
ShortCode = Annotated[str, String(50)]

# Designations and names
Label = Annotated[str, String(255)]

# Free text (comments)
LongText = Annotated[str, Text]


MONEY_DECIMAL_PLACES = 2
DURATION_DECIMAL_PLACES = 3
DEFAULT_ROUNDING = ROUND_HALF_UP


def to_decimal(value) -> Decimal:
    """
    Coerce an int / str / Decimal to Decimal.

    Floats are converted through ``str`` so that ``0.1`` becomes
    ``Decimal("0.1")`` and not its binary expansion.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def quantize(
    value: Decimal,
    decimal_places: int,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a Decimal to ``decimal_places`` using half-away-from-zero.

    This is the ONLY rounding function for stored derived values; the
    costing calculator delegates to it.

    Example:
        quantize(Decimal("2.675"), 2) -> Decimal("2.68")
        quantize(Decimal("-2.675"), 2) -> Decimal("-2.68")
    """
    exponent = Decimal(1).scaleb(-decimal_places)
    return to_decimal(value).quantize(exponent, rounding=rounding)
