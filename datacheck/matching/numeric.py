"""
Decimal helpers for numeric matcher functions.

All arithmetic is done with ``decimal.Decimal`` in a context wide enough to
keep subtraction exact, so comparisons never suffer from float rounding.
"""

import re
from decimal import Decimal, Context, InvalidOperation, MAX_PREC, ROUND_HALF_UP
from typing import Optional

# Lexical shapes used by the @{isNumber}, @{isInteger} and @{isFloat} sentinels
NUMBER_PATTERN = re.compile(
    r"[+-]?(\d+([.,]\d*)?|[.,]\d+)([eE][+-]?\d+)?[fFdDlL]?|[+-]?0[xX][0-9a-fA-F]+[lL]?"
)
FLOAT_PATTERN = re.compile(r"[+-]?\d+[,.]\d+")
INTEGER_PATTERN = re.compile(r"[+-]?\d+")

# Plain decimal literal, no type qualifier: the last character must be a digit
_PLAIN_NUMBER_PATTERN = re.compile(r"[+-]?(\d+(\.\d+)?|\.\d+)([eE][+-]?\d+)?")

EXACT_CONTEXT = Context(prec=MAX_PREC, rounding=ROUND_HALF_UP)

# Largest decimal exponent (and rounding scale) accepted; keeps exact arithmetic bounded
MAX_EXPONENT = 1000


def is_number_without_qualifier(value: Optional[str]) -> bool:
    """
    Check that value is a plain decimal number.

    Values with a trailing type qualifier such as ``1.5f`` or ``10L`` are
    rejected, as are hexadecimal literals and blank strings.

    Example:
        >>> is_number_without_qualifier("-12.50")
        True
        >>> is_number_without_qualifier("12f")
        False
    """
    if value is None:
        return False
    return _PLAIN_NUMBER_PATTERN.fullmatch(value) is not None


def to_decimal(value: Optional[str]) -> Optional[Decimal]:
    """
    Parse a plain decimal number, returning None when value is not one.

    Numbers whose magnitude is beyond 10**MAX_EXPONENT (or below
    10**-MAX_EXPONENT) are not accepted either.
    """
    if not is_number_without_qualifier(value):
        return None
    try:
        number = Decimal(value)
    except InvalidOperation:
        return None
    if abs(number.adjusted()) > MAX_EXPONENT:
        return None
    return number


def round_half_up(value: Decimal, scale: int) -> Decimal:
    """Round value to the given number of decimal places, half up."""
    return value.quantize(Decimal(1).scaleb(-scale), rounding=ROUND_HALF_UP, context=EXACT_CONTEXT)


def numbers_equal(
    expected: Decimal,
    actual: Decimal,
    scale: Optional[int] = None,
    margin: Optional[Decimal] = None,
    absolute: bool = False,
) -> bool:
    """
    Compare two decimals with optional absolute values, rounding and margin.

    Args:
        expected: Expected number
        actual: Actual number
        scale: When given, both sides are rounded half up to this many places
        margin: When given, match requires |expected - actual| < margin
        absolute: Compare absolute values of both operands

    Returns:
        bool: True if numbers are considered equal
    """
    if absolute:
        expected = abs(expected)
        actual = abs(actual)

    if scale is not None:
        expected = round_half_up(expected, scale)
        actual = round_half_up(actual, scale)

    if margin is None:
        return expected.compare(actual) == 0

    difference = EXACT_CONTEXT.abs(EXACT_CONTEXT.subtract(expected, actual))
    return difference < margin


def within_precision(expected: Decimal, actual: Decimal, precision: Decimal) -> bool:
    """Check |expected - actual| <= precision (precision 0 means exact equality)."""
    difference = EXACT_CONTEXT.abs(EXACT_CONTEXT.subtract(expected, actual))
    return difference <= precision
