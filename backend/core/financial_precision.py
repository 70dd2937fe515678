"""
DECIMAL PRECISION & FINANCIAL UTILITIES

This module provides:
1. Decimal precision lock (2-decimal places)
2. Safe financial calculations (sums, differences, ratios)
3. Value validation (no negative amounts)
4. Rounding at calculation boundary only

Amounts are stored as floats in MongoDB. Every calculation converts them to
Decimal via their string form, so sums of cent-exact amounts never drift.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Iterable, Mapping, Union
from bson import Decimal128
import logging

from core.errors import LedgerValidationError

logger = logging.getLogger(__name__)

# Precision configuration
DECIMAL_PLACES = 2
QUANTIZE_PATTERN = Decimal('0.01')
RATIO_PATTERN = Decimal('0.0001')

Numeric = Union[float, int, str, Decimal, Decimal128, None]


def to_decimal(value: Numeric) -> Decimal:
    """
    Convert any numeric value to Decimal.
    Does NOT round - preserves full precision for intermediate calculations.
    None counts as zero.
    """
    if value is None:
        return Decimal('0')
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, Decimal128):
        result = value.to_decimal()
    elif isinstance(value, bool):
        raise LedgerValidationError(f"Cannot convert boolean {value!r} to an amount")
    elif isinstance(value, (int, float)):
        # Convert via string to avoid float precision issues
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value)
        except InvalidOperation:
            raise LedgerValidationError(f"Invalid amount: {value!r}")
    else:
        raise LedgerValidationError(f"Cannot convert {type(value).__name__} to an amount")

    # inf and nan cannot be rounded or compared
    if not result.is_finite():
        raise LedgerValidationError(f"Amount must be a finite number: {value!r}", {"value": str(value)})
    return result


def round_financial(value: Numeric) -> Decimal:
    """
    Round a value to 2 decimal places (half up).
    This should be called ONLY at calculation boundaries.
    """
    return to_decimal(value).quantize(QUANTIZE_PATTERN, rounding=ROUND_HALF_UP)


def to_float(value: Numeric) -> float:
    """
    Convert to float for MongoDB storage / JSON output.
    Rounds to 2 decimal places first.
    """
    return float(round_financial(value))


def validate_non_negative(value: Numeric, field_name: str) -> None:
    """Raise LedgerValidationError if a financial value is negative"""
    if to_decimal(value) < Decimal('0'):
        raise LedgerValidationError(
            f"Financial value '{field_name}' cannot be negative: {value}",
            {"field": field_name, "value": value}
        )


def safe_add(*values: Numeric) -> Decimal:
    """Safe addition of multiple values"""
    result = Decimal('0')
    for v in values:
        result += to_decimal(v)
    return result


def safe_subtract(a: Numeric, b: Numeric) -> Decimal:
    """Safe subtraction preserving precision"""
    return to_decimal(a) - to_decimal(b)


def safe_divide(numerator: Numeric, denominator: Numeric) -> Decimal:
    """Safe division, 0 when the denominator is 0"""
    denom = to_decimal(denominator)
    if denom == Decimal('0'):
        return Decimal('0')
    return to_decimal(numerator) / denom


def floor_at_zero(value: Numeric) -> Decimal:
    """max(0, value)"""
    return max(Decimal('0'), to_decimal(value))


def sum_field(items: Iterable[Mapping[str, Any]], field: str = "amount") -> Decimal:
    """Sum one numeric field across a list of embedded documents"""
    total = Decimal('0')
    for item in items or []:
        total += to_decimal(item.get(field))
    return total


def ratio(numerator: Numeric, denominator: Numeric) -> float:
    """numerator / denominator rounded to 4 places, 0.0 when denominator is 0"""
    return float(safe_divide(numerator, denominator).quantize(RATIO_PATTERN, rounding=ROUND_HALF_UP))


def percentage(numerator: Numeric, denominator: Numeric) -> int:
    """Whole-number percentage, 0 when denominator is 0"""
    value = safe_divide(numerator, denominator) * Decimal('100')
    return int(value.quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def whole_average(total: Numeric, count: int) -> int:
    """Average rounded half up to a whole number, 0 for an empty set"""
    if not count:
        return 0
    value = to_decimal(total) / Decimal(count)
    return int(value.quantize(Decimal('1'), rounding=ROUND_HALF_UP))
