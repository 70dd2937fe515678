from decimal import Decimal

import pytest
from bson import Decimal128

from core.errors import LedgerValidationError
from core.financial_precision import (
    floor_at_zero,
    percentage,
    ratio,
    round_financial,
    safe_add,
    safe_divide,
    sum_field,
    to_decimal,
    to_float,
    validate_non_negative,
    whole_average,
)


class TestConversion:

    def test_float_goes_through_string(self):
        assert to_decimal(0.1) == Decimal("0.1")
        assert safe_add(0.1, 0.2) == Decimal("0.3")

    def test_none_is_zero(self):
        assert to_decimal(None) == Decimal("0")

    def test_decimal128(self):
        assert to_decimal(Decimal128("12.34")) == Decimal("12.34")

    def test_invalid_values_rejected(self):
        with pytest.raises(LedgerValidationError):
            to_decimal("twelve")
        with pytest.raises(LedgerValidationError):
            to_decimal(True)
        with pytest.raises(LedgerValidationError):
            to_decimal([1])

    def test_non_finite_values_rejected(self):
        for value in (float("inf"), float("-inf"), float("nan"), "NaN", "Infinity", Decimal("Infinity")):
            with pytest.raises(LedgerValidationError):
                to_decimal(value)
        with pytest.raises(LedgerValidationError):
            validate_non_negative(float("nan"), "amount")
        with pytest.raises(LedgerValidationError):
            to_float(1e999)

    def test_rounding_is_half_up(self):
        assert round_financial("2.675") == Decimal("2.68")
        assert to_float("1.005") == 1.01


class TestArithmetic:

    def test_divide_by_zero_is_zero(self):
        assert safe_divide(10, 0) == Decimal("0")
        assert ratio(10, 0) == 0.0
        assert percentage(10, 0) == 0

    def test_ratio_and_percentage(self):
        assert ratio(1, 3) == 0.3333
        assert percentage(1, 3) == 33
        assert percentage(2, 3) == 67

    def test_floor_at_zero(self):
        assert floor_at_zero(-5) == Decimal("0")
        assert floor_at_zero("3.5") == Decimal("3.5")

    def test_sum_field_skips_missing_amounts(self):
        assert sum_field([{"amount": 1.1}, {"amount": 2.2}, {}]) == Decimal("3.3")
        assert sum_field([{"compensation": 5}], "compensation") == Decimal("5")
        assert sum_field(None) == Decimal("0")

    def test_whole_average(self):
        assert whole_average(5, 2) == 3
        assert whole_average(5, 0) == 0

    def test_validate_non_negative(self):
        validate_non_negative(0, "amount")
        with pytest.raises(LedgerValidationError) as exc_info:
            validate_non_negative(-0.01, "amount")
        assert exc_info.value.details["field"] == "amount"
