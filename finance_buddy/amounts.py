"""
Amount Handling Module

Decimal amounts with a fixed two-digit precision for balances and
transaction amounts. NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from typing import Union
import re

# Set global decimal context for financial precision
getcontext().prec = 28

AMOUNT_PRECISION = 2
AMOUNT_QUANTUM = Decimal('0.1') ** AMOUNT_PRECISION
ZERO = Decimal('0.00')

# Largest magnitude accepted for an amount or a balance
MAX_AMOUNT = Decimal('999999999999999.99')

# Characters ignored in user-typed amounts
CURRENCY_NOISE = re.compile(r'[\s$€£¥]')
THOUSANDS_GROUPED = re.compile(r'[+-]?\d{1,3}(,\d{3})+')

AmountLike = Union[Decimal, int, float, str]


def to_amount(value: AmountLike) -> Decimal:
    """
    Convert a value to a Decimal rounded to ledger precision

    Floats go through str() so 0.1 becomes Decimal('0.10'), not its
    binary expansion.

    Raises:
        ValueError: If the value is not a finite number or its magnitude
            exceeds MAX_AMOUNT
    """
    if isinstance(value, bool):
        raise ValueError(f"Cannot use {value!r} as an amount")
    if not isinstance(value, Decimal):
        try:
            value = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"Cannot convert '{value}' to Decimal")
    if not value.is_finite():
        raise ValueError(f"Amount must be finite, got {value}")
    try:
        amount = value.quantize(AMOUNT_QUANTUM, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValueError(f"Amount out of range: {value}")
    if abs(amount) > MAX_AMOUNT:
        raise ValueError(f"Amount out of range: {value}")
    return amount


def format_amount(value: Decimal) -> str:
    """Render an amount with exactly two fractional digits"""
    return f"{value.quantize(AMOUNT_QUANTUM, rounding=ROUND_HALF_UP):.{AMOUNT_PRECISION}f}"


def decimal_from_string(value: str) -> Decimal:
    """
    Safely convert user-typed text to an amount, handling common formats

    Whitespace and currency symbols are ignored. Commas are read as
    thousands separators when they group digits by three, or as the
    decimal point when a single comma is followed by at most two digits.
    Exponent notation such as 1e3 is accepted.

    Args:
        value: String representation of number

    Returns:
        Decimal value rounded to ledger precision

    Raises:
        ValueError: If string cannot be converted to valid Decimal
    """
    if not value or not isinstance(value, str):
        raise ValueError("Value must be a non-empty string")

    clean_value = CURRENCY_NOISE.sub('', value)

    if ',' in clean_value:
        integer_part, dot, fraction = clean_value.partition('.')
        comma_parts = clean_value.split(',')
        if not dot and len(comma_parts) == 2 and len(comma_parts[1]) <= 2:
            # Single comma used as decimal separator (European format)
            clean_value = clean_value.replace(',', '.')
        elif THOUSANDS_GROUPED.fullmatch(integer_part):
            clean_value = integer_part.replace(',', '') + dot + fraction
        else:
            raise ValueError(f"Cannot convert '{value}' to Decimal")

    if not clean_value:
        raise ValueError(f"Cannot convert '{value}' to Decimal")

    return to_amount(clean_value)
