"""
Module: citation_kernel.db.types
Responsibility: Annotated type aliases and money helpers shared by models,
    domain and services, so that every fine amount uses identical precision.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats anywhere in the citation kernel.  All fine amounts use
      Decimal; money_from_value() refuses floats outright.
    - round_money() is the ONLY sanctioned rounding function.

Failure modes:
    - TypeError if a float is passed to money_from_value().
    - decimal.InvalidOperation on non-numeric strings.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import BigInteger, Numeric, String

# 38 digits total, 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

# Monotonic counter value
Sequence = Annotated[int, BigInteger]

# Human-readable document numbers, e.g. TCT-2025-000001
DocumentNo = Annotated[str, String(32)]

ShortCode = Annotated[str, String(50)]

LongText = Annotated[str, String(4000)]

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def money_from_value(value: Decimal | int | str) -> Decimal:
    """
    Coerce a schedule or payment value to Decimal.

    Floats are rejected: their binary representation cannot carry an exact
    peso amount.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"Monetary values must not be float/bool: {value!r}")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """Round a monetary value to the given number of decimal places."""
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)
