"""Tests for the Decimal amount helpers."""

from decimal import Decimal

import pytest

from statement_kernel.domain.amounts import (
    fits_currency,
    percentage,
    round_currency,
    sum_codes,
    to_amount,
    within_tolerance,
)


class TestToAmount:
    """Conversion of raw values to finite Decimals."""

    def test_none_is_zero(self):
        assert to_amount(None) == Decimal("0")

    def test_float_goes_through_str(self):
        """0.1 must not become its binary expansion."""
        assert to_amount(0.1) == Decimal("0.1")

    def test_int_and_str(self):
        assert to_amount(250000) == Decimal("250000")
        assert to_amount("180000.50") == Decimal("180000.50")

    def test_decimal_passes_through(self):
        value = Decimal("12.345")
        assert to_amount(value) is value

    @pytest.mark.parametrize("value", ["NaN", "Infinity", float("inf"), Decimal("-Infinity")])
    def test_non_finite_rejected(self, value):
        with pytest.raises(ValueError):
            to_amount(value)

    @pytest.mark.parametrize("value", ["abc", True, object()])
    def test_unreadable_rejected(self, value):
        with pytest.raises(ValueError):
            to_amount(value)


class TestRounding:
    """Currency rounding and comparisons."""

    def test_round_half_up(self):
        assert round_currency(Decimal("1.005")) == Decimal("1.01")
        assert round_currency(Decimal("-1.005")) == Decimal("-1.01")

    def test_negative_zero_normalized(self):
        result = round_currency(Decimal("-0.001"))
        assert result == Decimal("0")
        assert not result.is_signed()

    def test_custom_places(self):
        assert round_currency(Decimal("1.23456"), 3) == Decimal("1.235")

    def test_values_beyond_context_precision_still_round(self):
        result = round_currency(Decimal("1E+30"))
        assert result == Decimal("1E+30")
        assert result.as_tuple().exponent == -2

    def test_fits_currency(self):
        assert fits_currency(Decimal("1E+25"))
        assert fits_currency(Decimal("0.001"))
        assert not fits_currency(Decimal("1E+26"))
        assert not fits_currency(Decimal("NaN"))

    def test_within_tolerance(self):
        assert within_tolerance(Decimal("100.00"), Decimal("100.01"))
        assert not within_tolerance(Decimal("100.00"), Decimal("100.02"))

    def test_sum_codes_missing_is_zero(self):
        totals = {"A": Decimal("1"), "B": Decimal("2")}
        assert sum_codes(totals, ["A", "B", "C"]) == Decimal("3")
        assert sum_codes(totals, []) == Decimal("0")

    def test_percentage(self):
        assert percentage(Decimal("120000"), Decimal("100000")) == Decimal("120.00")
        assert percentage(Decimal("1"), Decimal("3")) == Decimal("33.33")
